"""Image discovery, validation and multi-format transcoding."""

from __future__ import annotations

import logging
import multiprocessing
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple, TypeVar

from filetype import guess
from PIL import Image, ImageOps

from .config import IMAGE_FORMATS, ProcessConfig
from .models import ImageArtifactSet
from .utils import disambiguate, natural_sort_key, sanitize_basename

logger = logging.getLogger("studio_content")

SOURCE_IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".tif", ".tiff"}
ARCHIVE_MARKER = "archive"
THUMBNAIL_PREFIX = "thumb_"
PIL_FORMATS = {"jpeg": "JPEG", "webp": "WEBP", "avif": "AVIF"}

T = TypeVar("T")

_SPAWN = multiprocessing.get_context("spawn")


class TranscodeError(Exception):
    """Raised when a single source image cannot be turned into artifacts."""


class TranscodeTimeout(TranscodeError):
    """Raised when a source image exceeds its processing deadline."""


@dataclass
class OutputPaths:
    """Expected artifact locations for one source image, keyed by format."""

    full: Dict[str, Path]
    thumbnail: Dict[str, Path]

    def all(self) -> List[Path]:
        return list(self.full.values()) + list(self.thumbnail.values())


@dataclass
class TranscodeResult:
    """Artifacts produced for one project plus per-file outcome counts."""

    images: List[ImageArtifactSet] = field(default_factory=list)
    encoded: int = 0
    cached: int = 0
    failed: List[str] = field(default_factory=list)


def detect_image_format(path: Path) -> Optional[str]:
    """Detect image type from the file signature; returns a lowercase extension."""
    kind = guess(str(path))
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


def is_source_image(path: Path) -> bool:
    """Whether a directory entry should be transcoded."""
    name = path.name.lower()
    if name.startswith("."):
        return False
    if path.suffix.lower() not in SOURCE_IMAGE_SUFFIXES:
        return False
    if ARCHIVE_MARKER in name or name.startswith(THUMBNAIL_PREFIX):
        return False
    return path.is_file()


def list_source_images(project_dir: Path) -> List[Path]:
    """Return qualifying images in natural file-name order."""
    images = [entry for entry in project_dir.iterdir() if is_source_image(entry)]
    return sorted(images, key=lambda entry: natural_sort_key(entry.name))


def assign_basenames(sources: List[Path]) -> List[Tuple[Path, str]]:
    """Pair each source with a sanitized output base name unique in the project."""
    taken: Set[str] = set()
    assigned: List[Tuple[Path, str]] = []
    for source in sources:
        base = sanitize_basename(source.name)
        unique = disambiguate(base, taken, separator="_")
        if unique != base:
            logger.warning(
                "Output name %s already used in %s; writing %s as %s",
                base,
                source.parent.name,
                source.name,
                unique,
            )
        taken.add(unique)
        assigned.append((source, unique))
    return assigned


def expected_outputs(output_dir: Path, base: str) -> OutputPaths:
    return OutputPaths(
        full={fmt: output_dir / f"{base}.{ext}" for fmt, ext in IMAGE_FORMATS.items()},
        thumbnail={
            fmt: output_dir / f"{THUMBNAIL_PREFIX}{base}.{ext}"
            for fmt, ext in IMAGE_FORMATS.items()
        },
    )


def is_up_to_date(source: Path, outputs: OutputPaths) -> bool:
    """True when every artifact exists and is strictly newer than the source."""
    source_mtime = source.stat().st_mtime_ns
    for path in outputs.all():
        try:
            if path.stat().st_mtime_ns <= source_mtime:
                return False
        except FileNotFoundError:
            return False
    return True


def read_dimensions(path: Path) -> Tuple[int, int]:
    """Read an image's size from its header without decoding pixels."""
    with Image.open(path) as image:
        return image.size


def _flatten(image: Image.Image) -> Image.Image:
    """Convert to RGB, compositing any transparency onto white."""
    has_alpha = image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    )
    if has_alpha:
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def render_full_size(image: Image.Image, max_size: Tuple[int, int]) -> Image.Image:
    """Fit inside ``max_size`` keeping the aspect ratio; never enlarges."""
    rendition = image.copy()
    rendition.thumbnail(max_size, Image.Resampling.LANCZOS)
    return rendition


def render_thumbnail(image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Fill ``size`` exactly, cropping the overflow around the centre."""
    return ImageOps.fit(image, size, method=Image.Resampling.LANCZOS)


def _save_options(fmt: str, quality: int) -> Dict[str, object]:
    if fmt == "jpeg":
        return {"quality": quality, "progressive": True, "optimize": True}
    if fmt == "webp":
        return {"quality": quality, "method": 6}
    return {"quality": quality}


def save_atomic(image: Image.Image, destination: Path, fmt: str, quality: int) -> None:
    """Encode to a temporary sibling, then rename over ``destination``."""
    tmp_path = destination.with_name(f".{destination.name}.tmp")
    try:
        image.save(tmp_path, format=PIL_FORMATS[fmt], **_save_options(fmt, quality))
        os.replace(tmp_path, destination)
    finally:
        tmp_path.unlink(missing_ok=True)


def transcode_image(
    source: Path, outputs: OutputPaths, config: ProcessConfig
) -> Tuple[int, int]:
    """Write all six artifacts for ``source``; returns the full-size dimensions.

    Runs in a child process when a deadline is set, so it must stay a picklable
    module-level function.
    """
    if detect_image_format(source) is None:
        raise TranscodeError("file contents are not a recognized image")

    with Image.open(source) as opened:
        opened.load()
        image = _flatten(ImageOps.exif_transpose(opened))

    full = render_full_size(image, config.full_size)
    for fmt, path in outputs.full.items():
        save_atomic(full, path, fmt, config.full_quality[fmt])

    thumbnail = render_thumbnail(image, config.thumbnail_size)
    for fmt, path in outputs.thumbnail.items():
        save_atomic(thumbnail, path, fmt, config.thumbnail_quality[fmt])
    return full.size


def run_with_deadline(func: Callable[..., T], timeout: Optional[float], *args) -> T:
    """Call ``func`` and fail with TranscodeTimeout if it outlives ``timeout``.

    With a deadline the call runs in a single-worker spawned process that is
    terminated when the deadline passes, so a stuck codec cannot hold up the
    run. ``func`` and ``args`` must be picklable.
    """
    if timeout is None:
        return func(*args)
    with _SPAWN.Pool(processes=1) as pool:
        pending = pool.apply_async(func, args)
        try:
            return pending.get(timeout=timeout)
        except multiprocessing.TimeoutError as exc:
            raise TranscodeTimeout(f"exceeded {timeout:g}s deadline") from exc


def discard_partial_outputs(outputs: OutputPaths) -> None:
    """Remove temporary files left by an encode that was killed mid-write."""
    for path in outputs.all():
        path.with_name(f".{path.name}.tmp").unlink(missing_ok=True)


def public_path(config: ProcessConfig, slug: str, path: Path) -> str:
    return f"{config.public_prefix.rstrip('/')}/{slug}/{path.name}"


def build_artifact_set(
    config: ProcessConfig,
    slug: str,
    source: Path,
    outputs: OutputPaths,
    size: Tuple[int, int],
) -> ImageArtifactSet:
    width, height = size
    return ImageArtifactSet(
        src={
            fmt: public_path(config, slug, path) for fmt, path in outputs.full.items()
        },
        thumbnail={
            fmt: public_path(config, slug, path)
            for fmt, path in outputs.thumbnail.items()
        },
        alt=f"{slug} - {source.stem}",
        width=width,
        height=height,
    )


def _cached_size(source: Path, outputs: OutputPaths) -> Optional[Tuple[int, int]]:
    if not is_up_to_date(source, outputs):
        return None
    try:
        return read_dimensions(outputs.full["jpeg"])
    except (OSError, ValueError) as exc:
        logger.debug(
            "Cached artifact for %s is unreadable (%s); re-encoding", source.name, exc
        )
        return None


def transcode_project(
    project_dir: Path,
    output_dir: Path,
    slug: str,
    config: ProcessConfig,
) -> TranscodeResult:
    """Produce artifact sets for every qualifying image in a project directory."""
    result = TranscodeResult()
    try:
        sources = list_source_images(project_dir)
    except OSError as exc:
        logger.warning("Cannot read project directory %s: %s", project_dir, exc)
        return result
    if not sources:
        return result

    output_dir.mkdir(parents=True, exist_ok=True)

    for source, base in assign_basenames(sources):
        outputs = expected_outputs(output_dir, base)
        try:
            size = None if config.force else _cached_size(source, outputs)
            if size is not None:
                logger.debug("Up to date: %s", source.name)
                result.cached += 1
            else:
                logger.debug("Encoding %s -> %s", source.name, base)
                size = run_with_deadline(
                    transcode_image, config.timeout, source, outputs, config
                )
                result.encoded += 1
        except TranscodeTimeout as exc:
            discard_partial_outputs(outputs)
            logger.warning(
                "Failed to process image %s/%s: %s", project_dir.name, source.name, exc
            )
            result.failed.append(source.name)
            continue
        except (
            OSError,
            ValueError,
            Image.DecompressionBombError,
            TranscodeError,
        ) as exc:
            logger.warning(
                "Failed to process image %s/%s: %s", project_dir.name, source.name, exc
            )
            result.failed.append(source.name)
            continue
        except Exception:  # pylint: disable=broad-except
            logger.exception(
                "Unexpected error processing image %s/%s", project_dir.name, source.name
            )
            result.failed.append(source.name)
            continue

        result.images.append(build_artifact_set(config, slug, source, outputs, size))
    return result
