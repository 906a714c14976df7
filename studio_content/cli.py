"""Command-line entry point for the content pipeline."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Iterable, Sequence

from .config import (
    DEFAULT_CATEGORIES,
    DEFAULT_MANIFEST_PATH,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PUBLIC_PREFIX,
    ProcessConfig,
    parse_category_option,
    resolve_source_dir,
)
from .manifest import ManifestError, filter_by_category, find_project, load_manifest
from .pipeline import PipelineError, run_pipeline

logger = logging.getLogger("studio_content.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return ("process",)
    first = argv[0]
    if first in commands or first in ("-h", "--help"):
        return argv
    return ("process", *argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def _add_manifest_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--manifest",
        default=DEFAULT_MANIFEST_PATH,
        type=Path,
        help="Path of the projects manifest (default: %(default)s)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_process_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--source",
        type=Path,
        default=None,
        help="Content root holding the category directories "
        "(default: $CONTENT_SOURCE_DIR or ./CONTENT)",
    )
    parser.add_argument(
        "--output",
        default=DEFAULT_OUTPUT_DIR,
        type=Path,
        help="Directory where derived images are written (default: %(default)s)",
    )
    parser.add_argument(
        "--category",
        dest="categories",
        action="append",
        type=parse_category_option,
        metavar="DIR=LABEL",
        help="Map a source directory to a category; repeat to configure several. "
        "Replaces the built-in residential/unbuilt mapping.",
    )
    parser.add_argument(
        "--public-prefix",
        default=DEFAULT_PUBLIC_PREFIX,
        help="URL prefix for image paths in the manifest (default: %(default)s)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-encode every image even when its artifacts are up to date",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Encode each image in a child process and kill it after this many "
        "seconds; the image is skipped and the run continues",
    )
    _add_manifest_argument(parser)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Build optimized project images and the projects manifest "
        "from the studio content tree.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    process_parser = subparsers.add_parser(
        "process", help="Transcode project images and write the manifest"
    )
    _add_process_arguments(process_parser)

    list_parser = subparsers.add_parser(
        "list", help="Print projects from an existing manifest"
    )
    list_parser.add_argument(
        "--category", default=None, help="Only print projects in this category"
    )
    _add_manifest_argument(list_parser)

    show_parser = subparsers.add_parser(
        "show", help="Print a single project from an existing manifest"
    )
    show_parser.add_argument("slug", help="Project slug")
    _add_manifest_argument(show_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _print_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")
    sys.stdout.flush()


def _run_process(args: argparse.Namespace) -> int:
    config = ProcessConfig(
        source_root=resolve_source_dir(args.source).resolve(),
        output_root=Path(args.output).resolve(),
        manifest_path=Path(args.manifest).resolve(),
        categories=list(args.categories or DEFAULT_CATEGORIES),
        force=args.force,
        public_prefix=args.public_prefix,
        timeout=args.timeout,
    )
    try:
        _, summary = run_pipeline(config)
    except PipelineError as exc:
        logger.error("Content build failed: %s", exc)
        return 1

    if summary.images_failed or summary.projects_dropped:
        logger.warning(
            "Completed with %d skipped image(s) and %d dropped project(s)",
            summary.images_failed,
            summary.projects_dropped,
        )
    return 0


def _run_list(args: argparse.Namespace) -> int:
    try:
        projects = load_manifest(args.manifest)
    except ManifestError as exc:
        logger.error("%s", exc)
        return 1
    if args.category:
        projects = filter_by_category(projects, args.category)
    _print_json(projects)
    return 0


def _run_show(args: argparse.Namespace) -> int:
    try:
        projects = load_manifest(args.manifest)
    except ManifestError as exc:
        logger.error("%s", exc)
        return 1
    project = find_project(projects, args.slug)
    if project is None:
        logger.error("Project not found: %s", args.slug)
        return 1
    _print_json(project)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    if args.command == "process":
        return _run_process(args)
    if args.command == "list":
        return _run_list(args)
    return _run_show(args)


if __name__ == "__main__":
    sys.exit(main())
