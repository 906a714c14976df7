"""Manifest serialization and read-only queries over a written manifest."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import ProjectRecord

logger = logging.getLogger("studio_content")

MANIFEST_INDENT = 2


class ManifestError(Exception):
    """Raised when a manifest cannot be read or is malformed."""


class ManifestNotFoundError(ManifestError):
    """Raised when no manifest exists at the requested path."""


def build_manifest(
    records: Iterable[ProjectRecord],
) -> Tuple[List[ProjectRecord], List[ProjectRecord]]:
    """Split records into those with images and those dropped for having none."""
    kept: List[ProjectRecord] = []
    dropped: List[ProjectRecord] = []
    for record in records:
        if record.images:
            kept.append(record)
        else:
            logger.warning("Omitting %s from manifest: no usable images", record.id)
            dropped.append(record)
    return kept, dropped


def render_manifest(records: Sequence[ProjectRecord]) -> str:
    payload = [record.to_dict() for record in records]
    return json.dumps(payload, indent=MANIFEST_INDENT, ensure_ascii=False) + "\n"


def write_manifest(path: Path, records: Sequence[ProjectRecord]) -> None:
    """Replace the manifest at ``path`` in one step.

    The content is written to a temporary file next to the target and renamed
    over it, so readers never see a partially written manifest.
    """
    text = render_manifest(records)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.info("Wrote manifest with %d project(s) to %s", len(records), path)


def load_manifest(path: Path) -> List[Dict[str, Any]]:
    """Load a manifest written by :func:`write_manifest`."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ManifestNotFoundError(f"Projects data not found at {path}") from exc
    except OSError as exc:
        raise ManifestError(f"Cannot read {path}: {exc}") from exc

    try:
        projects = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(projects, list):
        raise ManifestError(f"{path} does not contain a list of projects")
    return projects


def find_project(
    projects: Iterable[Dict[str, Any]], slug: str
) -> Optional[Dict[str, Any]]:
    for project in projects:
        if project.get("slug") == slug:
            return project
    return None


def filter_by_category(
    projects: Iterable[Dict[str, Any]], category: str
) -> List[Dict[str, Any]]:
    return [project for project in projects if project.get("category") == category]
