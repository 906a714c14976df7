"""Utility helpers for slug, title and file name normalization."""

from __future__ import annotations

import re
import unicodedata
from typing import Container, List, Tuple, Union

SLUG_STRIP_PATTERN = re.compile(r"[^a-z0-9\s-]")
WHITESPACE_PATTERN = re.compile(r"\s+")
HYPHEN_RUN_PATTERN = re.compile(r"-+")
LEADING_INDEX_PATTERN = re.compile(r"^\d+_?\s*")
UNSAFE_FILENAME_PATTERN = re.compile(r"[^a-zA-Z0-9\-_]")
UNDERSCORE_RUN_PATTERN = re.compile(r"_+")
DIGIT_RUN_PATTERN = re.compile(r"(\d+)")


def _ascii_fold(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value)
    return normalized.encode("ascii", "ignore").decode("ascii")


def generate_slug(name: str, fallback: str = "project") -> str:
    """Derive a lowercase, hyphen-separated, URL-safe slug from a directory name.

    Underscores and punctuation are dropped rather than replaced, so
    ``6_KIAWAH`` becomes ``6kiawah`` while ``Beach House`` becomes
    ``beach-house``.
    """
    slug = _ascii_fold(name).lower()
    slug = SLUG_STRIP_PATTERN.sub("", slug)
    slug = WHITESPACE_PATTERN.sub("-", slug)
    slug = HYPHEN_RUN_PATTERN.sub("-", slug).strip("-")
    return slug or fallback


def format_project_name(name: str) -> str:
    """Turn a directory name such as ``6_KIAWAH_HOUSE`` into ``Kiawah House``."""
    words = " ".join(part[:1].upper() + part[1:].lower() for part in name.split("_"))
    title = LEADING_INDEX_PATTERN.sub("", words).strip()
    return title or name


def sanitize_basename(filename: str, fallback: str = "image") -> str:
    """Strip the extension and replace unsafe characters with underscores.

    Distinct inputs may map to the same result (``a b.jpg`` and ``a_b.png``);
    callers that need unique names must disambiguate.
    """
    stem, dot, _ = filename.rpartition(".")
    if not dot or not stem:
        stem = filename
    sanitized = UNSAFE_FILENAME_PATTERN.sub("_", stem)
    sanitized = UNDERSCORE_RUN_PATTERN.sub("_", sanitized)
    return sanitized or fallback


def natural_sort_key(name: str) -> Tuple[List[Tuple[int, Union[int, str]]], str]:
    """Sort key that orders ``2.jpg`` before ``10.jpg``.

    Names that only differ in case or zero padding (``a.JPG``/``a.jpg``,
    ``1.jpg``/``01.jpg``) fall back to the raw name, so the order never
    depends on directory enumeration.
    """
    # Parts are tagged with their kind so numbers and text never compare directly.
    key: List[Tuple[int, Union[int, str]]] = []
    for chunk in DIGIT_RUN_PATTERN.split(name.lower()):
        if not chunk:
            continue
        key.append((0, int(chunk)) if chunk.isdigit() else (1, chunk))
    return key, name


def disambiguate(name: str, taken: Container[str], separator: str = "-") -> str:
    """Return ``name`` or the first ``name<sep>N`` (N >= 2) not in ``taken``."""
    if name not in taken:
        return name
    index = 2
    while f"{name}{separator}{index}" in taken:
        index += 1
    return f"{name}{separator}{index}"
