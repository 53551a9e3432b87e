"""
Simple image tool transforms: crop, resize, flip and rotate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Tuple

import numpy as np

from asset_studio.models.images import Canvas, Drawable
from asset_studio.models.settings import CropData
from asset_studio.services.drawing import draw_image
from asset_studio.services.geometry import round_half_up


logger = logging.getLogger(__name__)

ROTATIONS = (0, 90, 180, 270)
PREVIEW_MAX_DIMENSION = 800


@dataclass(slots=True, frozen=True)
class ResizeSettings:
    # 0 keeps the post-rotation source size for that axis.
    width: int = 0
    height: int = 0
    maintain_aspect: bool = True


@dataclass(slots=True, frozen=True)
class ToolSettings:
    rotation: int = 0
    flip_h: bool = False
    flip_v: bool = False
    resize: ResizeSettings = field(default_factory=ResizeSettings)
    crop: CropData | None = None

    def __post_init__(self) -> None:
        if self.rotation not in ROTATIONS:
            raise ValueError(f"Rotation must be one of {ROTATIONS}, got {self.rotation}")


def _source_rect(image: Drawable, crop: CropData | None) -> Tuple[int, int, int, int]:
    if crop is None:
        return 0, 0, image.width, image.height
    return (
        round_half_up(crop.x),
        round_half_up(crop.y),
        round_half_up(crop.width),
        round_half_up(crop.height),
    )


def _post_rotation_size(src_w: int, src_h: int, rotation: int) -> Tuple[int, int]:
    if rotation in (90, 270):
        return src_h, src_w
    return src_w, src_h


def apply_transformations(image: Drawable, settings: ToolSettings) -> Canvas:
    """
    Crop, resize, flip, then rotate clockwise.

    The output is resize.width x resize.height; a zero on either axis falls
    back to the post-rotation source size. The source is scaled to the
    pre-rotation draw size so that rotating lands exactly on the output size.
    """
    sx, sy, sw, sh = _source_rect(image, settings.crop)
    post_w, post_h = _post_rotation_size(sw, sh, settings.rotation)
    out_w = settings.resize.width or post_w
    out_h = settings.resize.height or post_h

    draw_w, draw_h = _post_rotation_size(out_w, out_h, settings.rotation)
    layer = Canvas(width=draw_w, height=draw_h)
    draw_image(layer, image, 0, 0, draw_w, draw_h, src=(sx, sy, sw, sh))

    pixels = layer.pixels
    if settings.flip_h:
        pixels = pixels[:, ::-1]
    if settings.flip_v:
        pixels = pixels[::-1, :]
    if settings.rotation:
        pixels = np.rot90(pixels, k=-(settings.rotation // 90))

    logger.debug(
        "Transformed %dx%d -> %dx%d (rotation %d)",
        image.width,
        image.height,
        out_w,
        out_h,
        settings.rotation,
    )
    return Canvas.from_pixels(np.ascontiguousarray(pixels))


def create_preview_canvas(
    image: Drawable,
    settings: ToolSettings,
    max_dimension: int = PREVIEW_MAX_DIMENSION,
) -> Canvas:
    """Run the same transforms at a size capped to `max_dimension` on the long side."""
    _, _, sw, sh = _source_rect(image, settings.crop)
    post_w, post_h = _post_rotation_size(sw, sh, settings.rotation)
    longest = max(post_w, post_h)
    scale = min(1.0, max_dimension / longest) if longest > 0 else 1.0
    preview = replace(
        settings,
        resize=replace(
            settings.resize,
            width=round_half_up(post_w * scale),
            height=round_half_up(post_h * scale),
        ),
    )
    return apply_transformations(image, preview)
