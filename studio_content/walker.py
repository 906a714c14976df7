"""Discovery of project directories under the configured categories."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

from .config import CategorySpec
from .models import SourceProject
from .utils import natural_sort_key

logger = logging.getLogger("studio_content")


def _list_entries(directory: Path) -> List[Path]:
    entries = [
        entry for entry in directory.iterdir() if not entry.name.startswith(".")
    ]
    return sorted(entries, key=lambda entry: natural_sort_key(entry.name))


def discover_category(source_root: Path, spec: CategorySpec) -> List[SourceProject]:
    """Return every project directory inside one category directory."""
    category_dir = source_root / spec.directory
    if not category_dir.is_dir():
        logger.info(
            "Category directory %s not found; no %s projects",
            category_dir,
            spec.category,
        )
        return []

    try:
        entries = _list_entries(category_dir)
    except OSError as exc:
        logger.warning("Cannot read category directory %s: %s", category_dir, exc)
        return []

    projects: List[SourceProject] = []
    for entry in entries:
        try:
            is_dir = entry.is_dir()
        except OSError as exc:
            logger.warning("Skipping %s: %s", entry, exc)
            continue
        if not is_dir:
            continue
        projects.append(
            SourceProject(
                source_path=entry, category=spec.category, raw_name=entry.name
            )
        )
    logger.debug(
        "Found %d %s project(s) in %s", len(projects), spec.category, category_dir
    )
    return projects


def discover_projects(
    source_root: Path, categories: Iterable[CategorySpec]
) -> List[SourceProject]:
    """Walk categories in the configured order and collect their projects."""
    projects: List[SourceProject] = []
    for spec in categories:
        projects.extend(discover_category(source_root, spec))
    return projects
