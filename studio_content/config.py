"""Configuration objects and constants for the content pipeline."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger("studio_content")

SOURCE_DIR_ENV = "CONTENT_SOURCE_DIR"
DEFAULT_SOURCE_DIR = Path("CONTENT")
DEFAULT_OUTPUT_DIR = Path("public/projects")
DEFAULT_MANIFEST_PATH = Path("src/data/projects.json")
DEFAULT_PUBLIC_PREFIX = "/projects"

FULL_SIZE = (1920, 1080)
THUMBNAIL_SIZE = (600, 400)

# Output formats in manifest order: name -> file extension.
IMAGE_FORMATS: Dict[str, str] = {"avif": "avif", "webp": "webp", "jpeg": "jpg"}

FULL_QUALITY: Dict[str, int] = {"jpeg": 85, "webp": 80, "avif": 60}
THUMBNAIL_QUALITY: Dict[str, int] = {"jpeg": 80, "webp": 75, "avif": 55}


@dataclass(frozen=True)
class CategorySpec:
    """Maps a top-level source directory to a project category."""

    directory: str
    category: str


DEFAULT_CATEGORIES: Tuple[CategorySpec, ...] = (
    CategorySpec("3_RESIDENTIAL", "residential"),
    CategorySpec("6_UNBUILT (ARCHIVE)", "unbuilt"),
)


@dataclass
class ProcessConfig:
    """Top-level settings that control a single pipeline run."""

    source_root: Path
    output_root: Path = DEFAULT_OUTPUT_DIR
    manifest_path: Path = DEFAULT_MANIFEST_PATH
    categories: List[CategorySpec] = field(
        default_factory=lambda: list(DEFAULT_CATEGORIES)
    )
    force: bool = False
    full_size: Tuple[int, int] = FULL_SIZE
    thumbnail_size: Tuple[int, int] = THUMBNAIL_SIZE
    full_quality: Dict[str, int] = field(default_factory=lambda: dict(FULL_QUALITY))
    thumbnail_quality: Dict[str, int] = field(
        default_factory=lambda: dict(THUMBNAIL_QUALITY)
    )
    public_prefix: str = DEFAULT_PUBLIC_PREFIX
    timeout: Optional[float] = None


def parse_category_option(value: str) -> CategorySpec:
    """Parse a ``DIRECTORY=label`` command-line value."""
    directory, sep, category = value.partition("=")
    directory = directory.strip()
    category = category.strip()
    if not sep or not directory or not category:
        raise ValueError(
            f"Invalid category mapping {value!r}; expected DIRECTORY=label"
        )
    return CategorySpec(directory=directory, category=category)


def resolve_source_dir(explicit: Optional[Path] = None) -> Path:
    """Pick the content root from the CLI, the environment or the default."""
    if explicit is not None:
        return explicit
    override = os.getenv(SOURCE_DIR_ENV)
    if override:
        override_path = Path(override).expanduser()
        if override_path.is_dir():
            logger.debug("%s override detected at %s", SOURCE_DIR_ENV, override_path)
            return override_path
        logger.warning(
            "%s is set to %s but the directory does not exist; falling back to %s",
            SOURCE_DIR_ENV,
            override_path,
            DEFAULT_SOURCE_DIR,
        )
    return DEFAULT_SOURCE_DIR
