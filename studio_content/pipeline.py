"""High-level orchestration: walk, extract, transcode, then write the manifest."""

from __future__ import annotations

import datetime as dt
import logging
import time
from typing import List, Optional, Set, Tuple

from .config import ProcessConfig
from .images import TranscodeResult, transcode_project
from .manifest import build_manifest, write_manifest
from .metadata import extract_metadata
from .models import ProcessSummary, ProjectRecord, SourceProject
from .utils import disambiguate, generate_slug
from .walker import discover_projects

logger = logging.getLogger("studio_content")


class PipelineError(Exception):
    """Raised when a run cannot produce a manifest at all."""


def assign_slug(project: SourceProject, taken: Set[str]) -> str:
    """Derive the project's slug, suffixing ``-2``, ``-3`` on collisions."""
    slug = generate_slug(project.raw_name)
    unique = disambiguate(slug, taken)
    if unique != slug:
        logger.warning(
            "Slug %s already used in this run; %s will be published as %s",
            slug,
            project.source_path,
            unique,
        )
    taken.add(unique)
    return unique


def process_project(
    project: SourceProject,
    config: ProcessConfig,
    taken_slugs: Set[str],
    today: Optional[dt.date] = None,
) -> Tuple[Optional[ProjectRecord], TranscodeResult]:
    """Build the record for one project; ``None`` if its output dir is unusable."""
    slug = assign_slug(project, taken_slugs)
    logger.info("Processing %s (%s)", project.raw_name, project.category)

    metadata = extract_metadata(project.source_path).with_defaults(
        project.raw_name, today
    )

    try:
        result = transcode_project(
            project.source_path, config.output_root / slug, slug, config
        )
    except OSError as exc:
        logger.error("Cannot write assets for %s: %s", project.raw_name, exc)
        return None, TranscodeResult()

    record = ProjectRecord(
        id=slug,
        title=metadata.title,
        description=metadata.description,
        category=project.category,
        year=metadata.year,
        location=metadata.location,
        images=result.images,
    )
    return record, result


def _prepare_output_dirs(config: ProcessConfig) -> None:
    for directory in (config.output_root, config.manifest_path.parent):
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PipelineError(f"Cannot create directory {directory}: {exc}") from exc


def run_pipeline(
    config: ProcessConfig, today: Optional[dt.date] = None
) -> Tuple[List[ProjectRecord], ProcessSummary]:
    """Process every project and write the manifest; returns what was written."""
    start = time.perf_counter()
    _prepare_output_dirs(config)
    mode = "forced" if config.force else "incremental"
    logger.info("Processing content from %s (%s mode)", config.source_root, mode)

    projects = discover_projects(config.source_root, config.categories)
    summary = ProcessSummary(projects_found=len(projects))

    taken_slugs: Set[str] = set()
    records: List[ProjectRecord] = []
    for project in projects:
        record, result = process_project(project, config, taken_slugs, today)
        summary.images_encoded += result.encoded
        summary.images_cached += result.cached
        summary.images_failed += len(result.failed)
        if record is None:
            summary.projects_dropped += 1
            continue
        records.append(record)

    kept, dropped = build_manifest(records)
    summary.projects_written = len(kept)
    summary.projects_dropped += len(dropped)

    try:
        write_manifest(config.manifest_path, kept)
    except OSError as exc:
        raise PipelineError(
            f"Cannot write manifest {config.manifest_path}: {exc}"
        ) from exc

    summary.total_seconds = time.perf_counter() - start
    logger.info(
        "Processed %d of %d project(s) in %.2fs (%d dropped); images: %d encoded, "
        "%d up to date, %d failed",
        summary.projects_written,
        summary.projects_found,
        summary.total_seconds,
        summary.projects_dropped,
        summary.images_encoded,
        summary.images_cached,
        summary.images_failed,
    )
    return kept, summary
