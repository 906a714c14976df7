import logging
import os
import time
from pathlib import Path

import pytest
from PIL import Image

from studio_content.config import CategorySpec, ProcessConfig

# Source files are back-dated so artifacts written during a test are always
# strictly newer, whatever the filesystem timestamp granularity.
SOURCE_AGE_SECONDS = 3600


def set_mtime(path: Path, seconds_ago: float) -> None:
    stamp = time.time() - seconds_ago
    os.utime(path, (stamp, stamp))


def make_image(
    path: Path,
    size=(64, 48),
    color=(120, 80, 40),
    fmt: str = "JPEG",
    mode: str = "RGB",
) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if mode == "RGB":
        Image.new(mode, size, color).save(path, format=fmt)
    else:
        Image.new(mode, size).save(path, format=fmt)
    set_mtime(path, SOURCE_AGE_SECONDS)
    return path


@pytest.fixture
def make_config(tmp_path: Path):
    def _make(**overrides) -> ProcessConfig:
        values = dict(
            source_root=tmp_path / "content",
            output_root=tmp_path / "public" / "projects",
            manifest_path=tmp_path / "data" / "projects.json",
            categories=[
                CategorySpec("residential", "residential"),
                CategorySpec("unbuilt", "unbuilt"),
            ],
            full_size=(80, 60),
            thumbnail_size=(30, 20),
        )
        values.update(overrides)
        return ProcessConfig(**values)

    return _make


@pytest.fixture(autouse=True)
def restore_root_logging():
    # cli.main() reconfigures the root logger with force=True.
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            root.removeHandler(handler)
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
