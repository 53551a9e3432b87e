"""
Static catalogs: output presets, aspect ratios and export formats.

These tables are read-only at runtime. Lookups return None for unknown ids
so callers can fall back to custom dimensions instead of failing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List


@dataclass(slots=True, frozen=True)
class Preset:
    id: str
    name: str
    width: int
    height: int
    category: str


@dataclass(slots=True, frozen=True)
class AspectRatio:
    id: str
    name: str
    ratio: float


@dataclass(slots=True, frozen=True)
class FormatOption:
    id: str
    name: str
    mime_type: str
    extension: str
    supports_quality: bool


CUSTOM_PRESET_ID = "custom"
CUSTOM_ASPECT_RATIO_ID = "custom"
DEFAULT_ASPECT_RATIO = 16 / 9


WALLPAPER_PRESETS: List[Preset] = [
    Preset("hd", "HD (720p)", 1280, 720, "wallpaper"),
    Preset("fhd", "Full HD (1080p)", 1920, 1080, "wallpaper"),
    Preset("qhd", "QHD (1440p)", 2560, 1440, "wallpaper"),
    Preset("4k", "4K (2160p)", 3840, 2160, "wallpaper"),
    Preset("ultrawide", "Ultrawide (1440p)", 3440, 1440, "wallpaper"),
    Preset("super-ultrawide", "Super Ultrawide", 5120, 1440, "wallpaper"),
]

# Foundry VTT maps, 100px per grid square.
FOUNDRY_PRESETS: List[Preset] = [
    Preset("foundry-20x20", "Foundry 20×20", 2000, 2000, "foundry"),
    Preset("foundry-30x30", "Foundry 30×30", 3000, 3000, "foundry"),
    Preset("foundry-40x40", "Foundry 40×40", 4000, 4000, "foundry"),
    Preset("foundry-32x18", "Foundry 32×18 (16:9)", 3200, 1800, "foundry"),
    Preset("foundry-64x32", "Foundry 64×32", 6400, 3200, "foundry"),
]

SOCIAL_PRESETS: List[Preset] = [
    Preset("instagram", "Instagram Post", 1080, 1080, "social"),
    Preset("instagram-story", "Instagram Story", 1080, 1920, "social"),
    Preset("twitter", "Twitter Header", 1500, 500, "social"),
    Preset("youtube", "YouTube Thumbnail", 1280, 720, "social"),
    Preset("facebook-cover", "Facebook Cover", 820, 312, "social"),
]

ALL_PRESETS: List[Preset] = WALLPAPER_PRESETS + FOUNDRY_PRESETS + SOCIAL_PRESETS

ASPECT_RATIOS: List[AspectRatio] = [
    AspectRatio("16:9", "16:9 (Widescreen)", 16 / 9),
    AspectRatio("16:10", "16:10", 16 / 10),
    AspectRatio("21:9", "21:9 (Ultrawide)", 21 / 9),
    AspectRatio("32:9", "32:9 (Super Ultrawide)", 32 / 9),
    AspectRatio("4:3", "4:3", 4 / 3),
    AspectRatio("3:2", "3:2", 3 / 2),
    AspectRatio("5:4", "5:4", 5 / 4),
    AspectRatio("1:1", "1:1 (Square)", 1.0),
]

FORMAT_OPTIONS: List[FormatOption] = [
    FormatOption("png", "PNG", "image/png", ".png", False),
    FormatOption("jpg", "JPG", "image/jpeg", ".jpg", True),
    FormatOption("webp", "WebP", "image/webp", ".webp", True),
    FormatOption("avif", "AVIF", "image/avif", ".avif", True),
    FormatOption("bmp", "BMP", "image/bmp", ".bmp", False),
    FormatOption("ico", "ICO", "image/x-icon", ".ico", False),
]

_PRESETS_BY_ID: Dict[str, Preset] = {preset.id: preset for preset in ALL_PRESETS}
_RATIOS_BY_ID: Dict[str, AspectRatio] = {ratio.id: ratio for ratio in ASPECT_RATIOS}
_FORMATS_BY_ID: Dict[str, FormatOption] = {option.id: option for option in FORMAT_OPTIONS}


def get_preset_by_id(preset_id: str | None) -> Preset | None:
    if not preset_id:
        return None
    return _PRESETS_BY_ID.get(preset_id)


def get_aspect_ratio(ratio_id: str | None) -> AspectRatio | None:
    if not ratio_id:
        return None
    return _RATIOS_BY_ID.get(ratio_id)


def get_format(format_id: str | None) -> FormatOption | None:
    if not format_id:
        return None
    return _FORMATS_BY_ID.get(format_id)


def format_file_size(size: int) -> str:
    """Human-readable byte count, e.g. '1.5 MB'."""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"
