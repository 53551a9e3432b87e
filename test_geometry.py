"""
Tests for output dimension resolution and the preset catalogs.
"""

import pytest

from asset_studio.models.settings import Orientation, OutputSettings, WallpaperSettings
from asset_studio.services.geometry import calculate_target_dimensions, round_half_up
from asset_studio.services.presets import (
    ALL_PRESETS,
    ASPECT_RATIOS,
    format_file_size,
    get_aspect_ratio,
    get_format,
    get_preset_by_id,
)


@pytest.mark.parametrize("preset", ALL_PRESETS, ids=lambda p: p.id)
def test_disabled_wallpaper_uses_preset_size(preset):
    size = calculate_target_dimensions(WallpaperSettings(), OutputSettings(preset=preset.id))
    assert size == (preset.width, preset.height)


def test_disabled_wallpaper_with_custom_preset_uses_custom_size():
    output = OutputSettings(preset="custom", custom_width=800, custom_height=600)
    assert calculate_target_dimensions(WallpaperSettings(), output) == (800, 600)


@pytest.mark.parametrize("ratio", ASPECT_RATIOS, ids=lambda r: r.id)
def test_horizontal_named_ratio_matches_ratio(ratio):
    wallpaper = WallpaperSettings(enabled=True, aspect_ratio=ratio.id)
    width, height = calculate_target_dimensions(wallpaper, OutputSettings(preset="fhd"))

    assert width == 1920
    assert abs(width / ratio.ratio - height) <= 0.5


def test_21_9_rounds_half_up():
    wallpaper = WallpaperSettings(enabled=True, aspect_ratio="21:9")
    assert calculate_target_dimensions(wallpaper, OutputSettings(preset="fhd")) == (1920, 823)


def test_vertical_with_preset_swaps_preset_fields():
    wallpaper = WallpaperSettings(
        enabled=True, orientation=Orientation.VERTICAL, aspect_ratio="21:9"
    )
    # The preset is swapped directly; the 21:9 ratio is not consulted.
    assert calculate_target_dimensions(wallpaper, OutputSettings(preset="fhd")) == (1080, 1920)


def test_vertical_without_preset_inverts_ratio():
    wallpaper = WallpaperSettings(enabled=True, orientation=Orientation.VERTICAL)
    output = OutputSettings(preset="custom", custom_width=1000, custom_height=500)
    assert calculate_target_dimensions(wallpaper, output) == (1000, 1778)


def test_custom_ratio_uses_wallpaper_size_and_swaps_for_vertical():
    horizontal = WallpaperSettings(
        enabled=True, aspect_ratio="custom", custom_width=3000, custom_height=1000
    )
    vertical = WallpaperSettings(
        enabled=True,
        aspect_ratio="custom",
        orientation=Orientation.VERTICAL,
        custom_width=3000,
        custom_height=1000,
    )
    output = OutputSettings(preset="fhd")

    assert calculate_target_dimensions(horizontal, output) == (3000, 1000)
    assert calculate_target_dimensions(vertical, output) == (1000, 3000)


def test_custom_ratio_defaults_to_full_hd():
    wallpaper = WallpaperSettings(enabled=True, aspect_ratio="custom")
    assert calculate_target_dimensions(wallpaper, OutputSettings()) == (1920, 1080)


def test_unknown_ratio_falls_back_to_16_9():
    wallpaper = WallpaperSettings(enabled=True, aspect_ratio="7:3")
    output = OutputSettings(preset="custom", custom_width=1600)
    assert calculate_target_dimensions(wallpaper, output) == (1600, 900)


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.49) == 2
    assert round_half_up(-0.5) == 0


def test_catalog_lookups():
    assert get_preset_by_id("4k").width == 3840
    assert get_preset_by_id("nope") is None
    assert get_preset_by_id(None) is None
    assert get_aspect_ratio("1:1").ratio == 1
    assert get_format("jpg").mime_type == "image/jpeg"
    assert get_format("jpg").supports_quality
    assert not get_format("png").supports_quality
    assert get_format("tiff") is None


def test_format_file_size():
    assert format_file_size(0) == "0 B"
    assert format_file_size(512) == "512 B"
    assert format_file_size(1536) == "1.5 KB"
    assert format_file_size(5 * 1024 * 1024) == "5 MB"
