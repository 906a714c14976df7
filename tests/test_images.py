import operator
import os
import time
from pathlib import Path

import pytest
from PIL import Image

from conftest import make_image, set_mtime
from studio_content import images
from studio_content.config import ProcessConfig
from studio_content.images import (
    TranscodeTimeout,
    assign_basenames,
    expected_outputs,
    is_up_to_date,
    list_source_images,
    render_full_size,
    render_thumbnail,
    run_with_deadline,
    transcode_image,
    transcode_project,
)


def _stall_on_slow(source, outputs, config):
    if source.stem == "slow":
        time.sleep(120)
    return transcode_image(source, outputs, config)


def test_list_source_images_filters_and_sorts(tmp_path):
    for name in ["10.jpg", "2.JPEG", "plan.png", "scan.tif", "elevation.tiff"]:
        make_image(tmp_path / name)
    for name in ["thumb_2.jpg", "old_ARCHIVE_01.jpg", "notes.md", "clip.gif"]:
        (tmp_path / name).write_bytes(b"x")
    (tmp_path / "nested.jpg").mkdir()

    names = [path.name for path in list_source_images(tmp_path)]

    assert names == ["2.JPEG", "10.jpg", "elevation.tiff", "plan.png", "scan.tif"]


def test_assign_basenames_disambiguates_collisions(tmp_path):
    sources = [tmp_path / "a b.jpg", tmp_path / "a_b.png", tmp_path / "a b.tif"]
    assert [base for _, base in assign_basenames(sources)] == ["a_b", "a_b_2", "a_b_3"]


def test_expected_outputs_layout(tmp_path):
    outputs = expected_outputs(tmp_path, "IMG_01")
    assert sorted(path.name for path in outputs.all()) == [
        "IMG_01.avif",
        "IMG_01.jpg",
        "IMG_01.webp",
        "thumb_IMG_01.avif",
        "thumb_IMG_01.jpg",
        "thumb_IMG_01.webp",
    ]


def test_render_full_size_fits_inside_bounds():
    image = Image.new("RGB", (2400, 1200))
    assert render_full_size(image, (1920, 1080)).size == (1920, 960)

    portrait = Image.new("RGB", (1000, 3000))
    assert render_full_size(portrait, (1920, 1080)).size == (360, 1080)


def test_render_full_size_never_enlarges():
    image = Image.new("RGB", (640, 480))
    assert render_full_size(image, (1920, 1080)).size == (640, 480)


def test_render_thumbnail_crops_to_exact_box():
    assert render_thumbnail(Image.new("RGB", (2400, 1200)), (600, 400)).size == (600, 400)
    assert render_thumbnail(Image.new("RGB", (100, 300)), (600, 400)).size == (600, 400)


def test_is_up_to_date_requires_every_artifact_newer(tmp_path):
    source = make_image(tmp_path / "src.jpg")
    outputs = expected_outputs(tmp_path / "out", "src")
    (tmp_path / "out").mkdir()
    for path in outputs.all():
        path.write_bytes(b"x")
    assert is_up_to_date(source, outputs)

    set_mtime(outputs.thumbnail["webp"], 2 * 3600)
    assert not is_up_to_date(source, outputs)

    os.utime(outputs.thumbnail["webp"])
    outputs.full["avif"].unlink()
    assert not is_up_to_date(source, outputs)


def test_is_up_to_date_rejects_equal_mtime(tmp_path):
    source = make_image(tmp_path / "src.jpg")
    outputs = expected_outputs(tmp_path, "out")
    stamp = source.stat().st_mtime_ns
    for path in outputs.all():
        path.write_bytes(b"x")
        os.utime(path, ns=(stamp, stamp))
    assert not is_up_to_date(source, outputs)


def test_run_with_deadline_passes_result_through():
    assert run_with_deadline(operator.add, None, 1, 2) == 3
    assert run_with_deadline(operator.add, 30.0, 1, 2) == 3


def test_run_with_deadline_times_out():
    with pytest.raises(TranscodeTimeout):
        run_with_deadline(time.sleep, 0.05, 1.0)


def test_run_with_deadline_kills_stuck_call():
    start = time.monotonic()
    with pytest.raises(TranscodeTimeout):
        run_with_deadline(time.sleep, 1.0, 120)
    assert time.monotonic() - start < 60


class TestTranscodeProject:
    def test_writes_all_formats_and_sizes(self, tmp_path, make_config):
        project = tmp_path / "house"
        make_image(project / "Front View.jpg", size=(400, 200))
        output = tmp_path / "out" / "house"

        result = transcode_project(project, output, "house", make_config())

        assert result.encoded == 1 and result.cached == 0 and not result.failed
        artifact = result.images[0]
        assert artifact.src == {
            "avif": "/projects/house/Front_View.avif",
            "webp": "/projects/house/Front_View.webp",
            "jpeg": "/projects/house/Front_View.jpg",
        }
        assert artifact.thumbnail["jpeg"] == "/projects/house/thumb_Front_View.jpg"
        assert artifact.alt == "house - Front View"
        assert (artifact.width, artifact.height) == (80, 40)

        for path in expected_outputs(output, "Front_View").full.values():
            with Image.open(path) as image:
                assert image.size == (80, 40)
        for path in expected_outputs(output, "Front_View").thumbnail.values():
            with Image.open(path) as image:
                assert image.size == (30, 20)

    def test_default_bounds(self, tmp_path):
        project = tmp_path / "house"
        make_image(project / "wide.jpg", size=(2400, 1200))
        config = ProcessConfig(source_root=tmp_path)

        result = transcode_project(project, tmp_path / "out", "house", config)

        artifact = result.images[0]
        assert (artifact.width, artifact.height) == (1920, 960)
        with Image.open(tmp_path / "out" / "thumb_wide.webp") as thumb:
            assert thumb.size == (600, 400)

    def test_handles_png_with_alpha_and_tiff(self, tmp_path, make_config):
        project = tmp_path / "house"
        make_image(project / "plan.png", fmt="PNG", mode="RGBA")
        make_image(project / "scan.tif", fmt="TIFF")

        result = transcode_project(project, tmp_path / "out", "house", make_config())

        assert result.encoded == 2
        assert [a.alt for a in result.images] == ["house - plan", "house - scan"]

    def test_reuses_fresh_artifacts(self, tmp_path, make_config):
        project = tmp_path / "house"
        make_image(project / "a.jpg")
        output = tmp_path / "out"
        config = make_config()
        first = transcode_project(project, output, "house", config)
        mtimes = {p: p.stat().st_mtime_ns for p in output.iterdir()}

        second = transcode_project(project, output, "house", config)

        assert second.encoded == 0 and second.cached == 1
        assert second.images == first.images
        assert {p: p.stat().st_mtime_ns for p in output.iterdir()} == mtimes

    def test_force_reencodes(self, tmp_path, make_config):
        project = tmp_path / "house"
        make_image(project / "a.jpg")
        output = tmp_path / "out"
        transcode_project(project, output, "house", make_config())
        for path in output.iterdir():
            set_mtime(path, 1800)
        before = {p: p.stat().st_mtime_ns for p in output.iterdir()}

        result = transcode_project(project, output, "house", make_config(force=True))

        assert result.encoded == 1 and result.cached == 0
        assert all(p.stat().st_mtime_ns > before[p] for p in before)

    def test_corrupt_files_are_isolated(self, tmp_path, make_config, caplog):
        project = tmp_path / "house"
        make_image(project / "1.jpg")
        (project / "2.jpg").write_bytes(b"definitely not a jpeg")
        good = make_image(project / "3.jpg", size=(200, 200))
        truncated = project / "4.jpg"
        truncated.write_bytes(good.read_bytes()[:300])

        with caplog.at_level("WARNING", logger="studio_content"):
            result = transcode_project(project, tmp_path / "out", "house", make_config())

        assert [a.alt for a in result.images] == ["house - 1", "house - 3"]
        assert result.failed == ["2.jpg", "4.jpg"]
        assert "2.jpg" in caplog.text and "4.jpg" in caplog.text
        assert not list((tmp_path / "out").glob("*.tmp"))

    def test_project_without_images(self, tmp_path, make_config):
        project = tmp_path / "empty"
        project.mkdir()
        (project / "notes.md").write_text("---\ntitle: Empty\n---\n")

        result = transcode_project(project, tmp_path / "out", "empty", make_config())

        assert result.images == [] and result.encoded == 0
        assert not (tmp_path / "out").exists()


def test_order_does_not_depend_on_directory_enumeration(tmp_path, monkeypatch):
    for name in ["a.jpg", "1.jpg", "a.JPG", "01.jpg"]:
        make_image(tmp_path / name)

    def assigned():
        return [(s.name, base) for s, base in assign_basenames(list_source_images(tmp_path))]

    forward = assigned()
    listing = Path.iterdir
    monkeypatch.setattr(
        Path, "iterdir", lambda self: iter(sorted(listing(self), reverse=True))
    )
    backward = assigned()

    assert forward == backward == [
        ("01.jpg", "01"),
        ("1.jpg", "1"),
        ("a.JPG", "a"),
        ("a.jpg", "a_2"),
    ]


def test_dot_files_are_not_source_images(tmp_path):
    make_image(tmp_path / "01.jpg")
    (tmp_path / "._01.jpg").write_bytes(b"\x00\x05\x16\x07 AppleDouble")
    make_image(tmp_path / ".hidden.jpg")

    assert [path.name for path in list_source_images(tmp_path)] == ["01.jpg"]


def test_unreadable_project_directory_is_skipped(
    tmp_path, monkeypatch, make_config, caplog
):
    project = tmp_path / "locked"
    make_image(project / "a.jpg")
    listing = Path.iterdir

    def guarded(self):
        if self.name == "locked":
            raise PermissionError(13, "Permission denied", str(self))
        return listing(self)

    monkeypatch.setattr(Path, "iterdir", guarded)
    with caplog.at_level("WARNING", logger="studio_content"):
        result = transcode_project(project, tmp_path / "out", "locked", make_config())

    assert result.images == [] and result.failed == []
    assert "locked" in caplog.text


def test_deadline_fails_only_the_stuck_image(
    tmp_path, monkeypatch, make_config, caplog
):
    project = tmp_path / "house"
    make_image(project / "a.jpg")
    make_image(project / "slow.jpg")
    make_image(project / "z.jpg")
    output = tmp_path / "out"
    monkeypatch.setattr(images, "transcode_image", _stall_on_slow)

    start = time.monotonic()
    with caplog.at_level("WARNING", logger="studio_content"):
        result = transcode_project(project, output, "house", make_config(timeout=10.0))

    assert time.monotonic() - start < 100
    assert [a.alt for a in result.images] == ["house - a", "house - z"]
    assert result.failed == ["slow.jpg"]
    assert result.encoded == 2
    assert "slow.jpg" in caplog.text
    assert not list(output.glob("slow.*")) and not list(output.glob(".*.tmp"))
