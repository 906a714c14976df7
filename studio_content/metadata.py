"""Project descriptor lookup and front-matter parsing."""

from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .models import ProjectMetadata

logger = logging.getLogger("studio_content")

DESCRIPTOR_SUFFIXES = {".md", ".markdown"}
FRONT_MATTER_FENCE = "---"


def find_descriptor(project_dir: Path) -> Optional[Path]:
    """Return the project's descriptor document, if it has one.

    When several descriptors exist the first by file name wins; which one is
    picked is not meant to be relied on.
    """
    try:
        candidates = sorted(
            entry
            for entry in project_dir.iterdir()
            if entry.suffix.lower() in DESCRIPTOR_SUFFIXES and entry.is_file()
        )
    except OSError as exc:
        logger.warning("Cannot list %s for a descriptor: %s", project_dir, exc)
        return None
    if not candidates:
        return None
    if len(candidates) > 1:
        logger.debug(
            "Multiple descriptors in %s; using %s", project_dir, candidates[0].name
        )
    return candidates[0]


def parse_front_matter(text: str) -> Dict[str, Any]:
    """Parse a leading ``---`` fenced YAML block into a mapping."""
    text = text.lstrip("\ufeff")
    lines = text.splitlines()
    if not lines or lines[0].strip() != FRONT_MATTER_FENCE:
        return {}
    for idx in range(1, len(lines)):
        if lines[idx].strip() == FRONT_MATTER_FENCE:
            block = "\n".join(lines[1:idx])
            break
    else:
        return {}

    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as exc:
        logger.warning("Ignoring unparseable front matter: %s", exc)
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def _coerce_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_year(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, dt.date):
        return value.year
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    logger.warning("Ignoring non-numeric year %r", value)
    return None


def metadata_from_mapping(data: Dict[str, Any]) -> ProjectMetadata:
    return ProjectMetadata(
        title=_coerce_text(data.get("title")),
        description=_coerce_text(data.get("description")),
        year=_coerce_year(data.get("year")),
        location=_coerce_text(data.get("location")),
    )


def extract_metadata(project_dir: Path) -> ProjectMetadata:
    """Read front matter for a project; missing pieces are left as ``None``."""
    descriptor = find_descriptor(project_dir)
    if descriptor is None:
        logger.info("No descriptor in %s; using defaults", project_dir.name)
        return ProjectMetadata()

    try:
        text = descriptor.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Cannot read descriptor %s: %s", descriptor, exc)
        return ProjectMetadata()
    return metadata_from_mapping(parse_front_matter(text))
