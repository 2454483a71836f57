# -*- coding: utf-8 -*-
import os

import pytest
from PIL import Image

from conftest import make_image
from resizeit import batch
from resizeit.batch import BatchSummary, resolve_worker_count, run_batch
from resizeit.discovery import discover
from resizeit.resize import FAILED, RESIZED, SKIPPED_EXTENSION, ResizeResult
from resizeit.settings import Settings


@pytest.fixture
def photo_dir(tmp_path):
    folder = tmp_path / "photos"
    folder.mkdir()
    make_image(folder / "one.png", size=(120, 80), fmt="PNG")
    make_image(folder / "two.jpg", size=(200, 100), fmt="JPEG", quality=90)
    make_image(folder / "three.bmp", size=(64, 64), fmt="BMP")
    make_image(folder / "four.png", size=(33, 77), fmt="PNG", mode="RGBA", color=(1, 2, 3, 4))
    (folder / "readme.txt").write_text("not an image")
    return folder


def test_resolve_worker_count(monkeypatch):
    monkeypatch.setattr(batch.os, "cpu_count", lambda: 8)
    assert resolve_worker_count(-1, 100) == 8
    assert resolve_worker_count(-1, 3) == 3
    assert resolve_worker_count(2, 100) == 2
    assert resolve_worker_count(16, 5) == 5
    assert resolve_worker_count(0, 100) == 8
    assert resolve_worker_count(-7, 100) == 8
    assert resolve_worker_count(4, 0) == 1


def test_resolve_worker_count_without_cpu_count(monkeypatch):
    monkeypatch.setattr(batch.os, "cpu_count", lambda: None)
    assert resolve_worker_count(-1, 10) == 1


def test_summary_counts():
    summary = BatchSummary()
    summary.add(ResizeResult(RESIZED, "a"))
    summary.add(ResizeResult(SKIPPED_EXTENSION, "b"))
    summary.add(ResizeResult(FAILED, "c", message="boom"))
    assert (summary.resized, summary.skipped_extension, summary.failed, summary.total) == (1, 1, 1, 3)
    assert summary.errors == [("c", "boom")]


def test_empty_batch(pillow_registry):
    summary = run_batch([], Settings(), pillow_registry.supported_extensions(), show_progress=False)
    assert summary.total == 0


def test_concurrency_does_not_change_output(photo_dir, pillow_registry):
    files = discover([str(photo_dir)], recursive=False)
    supported = pillow_registry.supported_extensions()

    sequential = run_batch(files, Settings(ratio=0.5, output_folder_name="Sequential", max_parallelism=1), supported, show_progress=False)
    parallel = run_batch(files, Settings(ratio=0.5, output_folder_name="Parallel", max_parallelism=3), supported, show_progress=False)

    assert sequential.resized == parallel.resized == 4
    assert sequential.skipped_extension == parallel.skipped_extension == 1
    names = sorted(os.listdir(photo_dir / "Sequential"))
    assert names == sorted(os.listdir(photo_dir / "Parallel"))
    assert names == ["four.png", "one.png", "three.bmp", "two.jpg"]
    for name in names:
        assert (photo_dir / "Sequential" / name).read_bytes() == (photo_dir / "Parallel" / name).read_bytes()


@pytest.mark.parametrize("max_parallelism", [1, 4])
def test_bad_file_does_not_stop_the_batch(photo_dir, pillow_registry, max_parallelism):
    (photo_dir / "corrupt.png").write_bytes(b"\x89PNG\r\n\x1a\n garbage")
    files = discover([str(photo_dir)], recursive=False)
    settings = Settings(keep_aspect_ratio=False, fixed_width=40, fixed_height=30, max_parallelism=max_parallelism)

    summary = run_batch(files, settings, pillow_registry.supported_extensions(), show_progress=False)

    assert summary.failed == 1
    assert summary.resized == 4
    assert summary.errors[0][0].endswith("corrupt.png")
    assert not (photo_dir / "Resized" / "corrupt.png").exists()
    for name in ("one.png", "two.jpg", "three.bmp", "four.png"):
        with Image.open(photo_dir / "Resized" / name) as out:
            assert out.size == (40, 30)


def test_duplicates_are_processed_per_occurrence(photo_dir, pillow_registry):
    files = discover([str(photo_dir / "one.png"), str(photo_dir / "one.png")], recursive=False)
    summary = run_batch(files, Settings(max_parallelism=1), pillow_registry.supported_extensions(), show_progress=False)
    assert summary.resized == 2


def test_skip_existing_across_runs(photo_dir, pillow_registry):
    files = discover([str(photo_dir)], recursive=False)
    supported = pillow_registry.supported_extensions()
    settings = Settings(ratio=0.5, skip_if_exists=True, max_parallelism=2)

    first = run_batch(files, settings, supported, show_progress=False)
    second = run_batch(files, settings, supported, show_progress=False)

    assert first.resized == 4
    assert second.resized == 0
    assert second.skipped_existing == 4
    assert second.skipped_extension == 1


def test_recursive_outputs_land_in_each_source_folder(photo_dir, pillow_registry):
    nested = photo_dir / "nested"
    nested.mkdir()
    make_image(nested / "inner.png", size=(50, 50), fmt="PNG")
    settings = Settings(ratio=0.5, recursive_search=True, max_parallelism=2)

    files = discover([str(photo_dir)], settings.recursive_search)
    run_batch(files, settings, pillow_registry.supported_extensions(), show_progress=False)

    assert (nested / "Resized" / "inner.png").exists()
    assert (photo_dir / "Resized" / "one.png").exists()
