"""Data models used throughout the content pipeline."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .utils import format_project_name


@dataclass
class SourceProject:
    """A project directory discovered under a category directory."""

    source_path: Path
    category: str
    raw_name: str


@dataclass
class ProjectMetadata:
    """Front-matter fields for a project; ``None`` means not provided."""

    title: Optional[str] = None
    description: Optional[str] = None
    year: Optional[int] = None
    location: Optional[str] = None

    def with_defaults(
        self, raw_name: str, today: Optional[dt.date] = None
    ) -> "ProjectMetadata":
        """Return a copy with every missing field filled in."""
        today = today or dt.date.today()
        return ProjectMetadata(
            title=self.title or format_project_name(raw_name),
            description=self.description or "",
            year=self.year if self.year is not None else today.year,
            location=self.location or "",
        )


@dataclass
class ImageArtifactSet:
    """Derived renditions of one source photograph."""

    src: Dict[str, str]
    thumbnail: Dict[str, str]
    alt: str
    width: int
    height: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "src": dict(self.src),
            "thumbnail": dict(self.thumbnail),
            "alt": self.alt,
            "width": self.width,
            "height": self.height,
        }


@dataclass
class ProjectRecord:
    """A processed project as written to the manifest."""

    id: str
    title: str
    description: str
    category: str
    year: int
    location: str
    images: List[ImageArtifactSet] = field(default_factory=list)

    @property
    def slug(self) -> str:
        return self.id

    @property
    def thumbnail(self) -> Optional[ImageArtifactSet]:
        return self.images[0] if self.images else None

    def to_dict(self) -> Dict[str, Any]:
        thumbnail = self.thumbnail
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "year": self.year,
            "location": self.location,
            "images": [image.to_dict() for image in self.images],
            "thumbnail": thumbnail.to_dict() if thumbnail else None,
            "slug": self.slug,
        }


@dataclass
class ProcessSummary:
    """Counters reported at the end of a run."""

    projects_found: int = 0
    projects_written: int = 0
    projects_dropped: int = 0
    images_encoded: int = 0
    images_cached: int = 0
    images_failed: int = 0
    total_seconds: float = 0.0
