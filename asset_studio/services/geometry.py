from __future__ import annotations

import logging
import math
from typing import Tuple

from asset_studio.models.settings import Orientation, OutputSettings, WallpaperSettings
from asset_studio.services.presets import (
    CUSTOM_ASPECT_RATIO_ID,
    DEFAULT_ASPECT_RATIO,
    get_aspect_ratio,
    get_preset_by_id,
)


logger = logging.getLogger(__name__)

DEFAULT_CUSTOM_WIDTH = 1920
DEFAULT_CUSTOM_HEIGHT = 1080


def calculate_target_dimensions(
    wallpaper: WallpaperSettings,
    output: OutputSettings,
) -> Tuple[int, int]:
    """
    Resolve the output canvas size for the given settings.

    Strategy:
    - Reframing disabled: the output preset wins, else the custom size.
    - Custom aspect ratio: the wallpaper's own custom size, portrait-swapped
      for vertical orientation.
    - Named aspect ratio: width comes from the preset (or custom width) and
      height from the ratio. Vertical orientation with a preset swaps the
      preset's width and height directly instead of recomputing from the
      ratio; exports made so far depend on that footprint.

    Non-positive inputs are passed through untouched.
    """
    preset = get_preset_by_id(output.preset)

    if not wallpaper.enabled:
        if preset is not None:
            return preset.width, preset.height
        return output.custom_width, output.custom_height

    vertical = wallpaper.orientation == Orientation.VERTICAL

    if wallpaper.aspect_ratio == CUSTOM_ASPECT_RATIO_ID:
        width = wallpaper.custom_width or DEFAULT_CUSTOM_WIDTH
        height = wallpaper.custom_height or DEFAULT_CUSTOM_HEIGHT
        if vertical and width > height:
            width, height = height, width
        return width, height

    base_width = preset.width if preset is not None else output.custom_width
    aspect = get_aspect_ratio(wallpaper.aspect_ratio)
    if aspect is None:
        logger.debug("Unknown aspect ratio %r, using 16:9", wallpaper.aspect_ratio)
        return base_width, _height_for(base_width, DEFAULT_ASPECT_RATIO)

    ratio = aspect.ratio
    if vertical:
        ratio = 1 / ratio
        if preset is not None:
            return preset.height, preset.width

    return base_width, _height_for(base_width, ratio)


def round_half_up(value: float) -> int:
    """Round halves upwards (2.5 -> 3), unlike Python's banker's rounding."""
    return int(math.floor(value + 0.5))


def _height_for(width: int, ratio: float) -> int:
    if ratio <= 0:
        return 0
    return round_half_up(width / ratio)
