"""
Tests for single and batch export.
"""

import asyncio
import zipfile
from dataclasses import replace
from io import BytesIO

from asset_studio.models.settings import (
    BatchSettings,
    OptimizationSettings,
    OutputSettings,
    StudioSettings,
    WallpaperMode,
    WallpaperSettings,
)
from asset_studio.services import export as export_module
from asset_studio.services.encoder import EncodingError
from asset_studio.services.export import export_batch, export_single, generate_filename
from asset_studio.services.presets import get_preset_by_id
from asset_studio.services.stores import BitmapCache
from conftest import make_image_file


def _names(blob):
    with zipfile.ZipFile(BytesIO(blob.data)) as archive:
        return archive.namelist()


def test_generate_filename():
    fhd = get_preset_by_id("fhd")
    assert generate_filename("holiday.photo.png", fhd, 1920, 1080, "jpg") == "holiday.photo_fhd.jpg"
    assert generate_filename("map.webp", None, 800, 600, "png", "extend") == "map_extend_800x600.png"
    assert generate_filename("noext", None, 10, 20, "tiff") == "noext_10x20.png"


def test_batch_export_scenario_fhd_and_4k_jpg():
    image_file = make_image_file(64, 36, name="scene.png")
    settings = StudioSettings(
        optimization=OptimizationSettings(format="jpg", quality=80),
        batch=BatchSettings(enabled=True, selected_presets=("fhd", "4k")),
    )

    blob = asyncio.run(export_batch(image_file, settings, cache=BitmapCache()))

    names = _names(blob)
    assert blob.mime_type == "application/zip"
    assert len(names) == 2
    assert names[0].endswith("_fhd.jpg")
    assert names[1].endswith("_4k.jpg")


def test_batch_export_skips_unknown_presets_and_reports_progress():
    image_file = make_image_file(32, 18, name="scene.png")
    settings = StudioSettings(
        wallpaper=WallpaperSettings(enabled=True, mode=WallpaperMode.FIT),
        batch=BatchSettings(enabled=True, selected_presets=("hd", "does-not-exist", "instagram")),
    )
    progress = []

    blob = asyncio.run(
        export_batch(
            image_file,
            settings,
            lambda current, total: progress.append((current, total)),
            cache=BitmapCache(),
        )
    )

    assert _names(blob) == ["scene_fit_hd.png", "scene_fit_instagram.png"]
    assert progress == [(1, 3), (2, 3), (3, 3)]


def test_batch_export_keeps_entries_when_one_fails_to_encode(monkeypatch):
    real_canvas_to_blob = export_module.canvas_to_blob
    calls = []

    def flaky(canvas, format_id, quality):
        calls.append(canvas.width)
        if len(calls) == 2:
            raise EncodingError("encoder crashed")
        return real_canvas_to_blob(canvas, format_id, quality)

    monkeypatch.setattr(export_module, "canvas_to_blob", flaky)
    settings = StudioSettings(
        batch=BatchSettings(enabled=True, selected_presets=("hd", "youtube", "instagram"))
    )

    blob = asyncio.run(export_batch(make_image_file(16, 9, name="a.png"), settings, cache=BitmapCache()))

    assert _names(blob) == ["a_hd.png", "a_instagram.png"]


def test_export_single_uses_preset_and_mode_in_filename():
    settings = StudioSettings(
        wallpaper=WallpaperSettings(enabled=True, mode=WallpaperMode.EXTEND),
        output=OutputSettings(preset="hd"),
    )

    result = asyncio.run(export_single(make_image_file(40, 40, name="tile.png"), settings, cache=BitmapCache()))

    assert result.filename == "tile_extend_hd.png"
    assert (result.width, result.height) == (1280, 720)
    assert result.blob.mime_type == "image/png"
    assert result.size == len(result.blob.data)


def test_export_single_custom_size_filename():
    settings = StudioSettings(output=OutputSettings(preset="custom", custom_width=300, custom_height=200))
    result = asyncio.run(export_single(make_image_file(30, 20), settings, cache=BitmapCache()))
    assert result.filename.endswith("_300x200.png")


def test_export_single_applies_target_size(monkeypatch):
    calls = []

    def fake_optimize(canvas, target_size_mb, format_id, start_quality=95):
        calls.append((target_size_mb, format_id, start_quality))
        return export_module.canvas_to_blob(canvas, format_id, 42), 42

    monkeypatch.setattr(export_module, "optimize_to_target_size", fake_optimize)
    settings = StudioSettings(
        optimization=OptimizationSettings(
            format="webp", quality=88, target_size_enabled=True, target_size_mb=0.5
        )
    )

    result = asyncio.run(export_single(make_image_file(20, 20), settings, cache=BitmapCache()))

    assert calls == [(0.5, "webp", 88)]
    assert result.quality == 42


def test_export_single_ico_skips_target_size(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("target size search must not run for ico")

    monkeypatch.setattr(export_module, "optimize_to_target_size", fail)
    base = StudioSettings(output=OutputSettings(preset="custom", custom_width=64, custom_height=64))
    settings = replace(
        base,
        optimization=OptimizationSettings(format="ico", target_size_enabled=True),
    )

    result = asyncio.run(export_single(make_image_file(20, 20), settings, cache=BitmapCache()))

    assert result.filename.endswith(".ico")
    assert result.blob.data[:6] == bytes([0, 0, 1, 0, 1, 0])
