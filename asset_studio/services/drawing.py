"""
Canvas drawing primitives used by the compositor and the outpaint flow.

Every primitive draws into an existing surface of a known target size and
never allocates or resizes it. Destination rectangles are snapped to whole
pixels and clipped to the surface; degenerate rectangles draw nothing.
"""

from __future__ import annotations

import logging
from typing import Tuple

import cv2
import numpy as np
from PIL import ImageColor

from asset_studio.models.images import Canvas, Drawable
from asset_studio.models.settings import CropData, FitMode
from asset_studio.services.geometry import round_half_up


logger = logging.getLogger(__name__)

# Largest blur radius in pixels, reached at intensity 100.
MAX_BLUR_RADIUS = 50

Rect = Tuple[float, float, float, float]


def parse_color(value: str) -> Tuple[int, int, int, int]:
    """
    Parse a CSS color string into RGBA.

    Unparseable colors fall back to opaque black, the way a canvas keeps its
    default fill style when given an invalid value.
    """
    try:
        rgb = ImageColor.getrgb(value)
    except (ValueError, TypeError, AttributeError):
        logger.debug("Invalid color %r, using black", value)
        return (0, 0, 0, 255)
    if len(rgb) == 4:
        return tuple(int(c) for c in rgb)  # type: ignore[return-value]
    return (int(rgb[0]), int(rgb[1]), int(rgb[2]), 255)


def draw_image(
    surface: Canvas,
    image: Drawable,
    dx: float,
    dy: float,
    dw: float,
    dh: float,
    src: Rect | None = None,
    flip_x: bool = False,
    interpolation: int | None = None,
) -> None:
    """
    Draw `src` (defaults to the whole image) scaled into the destination rect.

    The source rect is clamped to the image bounds. Empty source or
    destination rects are a no-op.
    """
    x0, y0 = round_half_up(dx), round_half_up(dy)
    x1, y1 = round_half_up(dx + dw), round_half_up(dy + dh)
    target_w, target_h = x1 - x0, y1 - y0
    if target_w <= 0 or target_h <= 0:
        return

    pixels = image.pixels
    if src is not None:
        sx, sy, sw, sh = src
        left = max(0, int(np.floor(sx)))
        top = max(0, int(np.floor(sy)))
        right = min(image.width, int(np.ceil(sx + sw)))
        bottom = min(image.height, int(np.ceil(sy + sh)))
        if right <= left or bottom <= top:
            return
        pixels = pixels[top:bottom, left:right]

    src_h, src_w = pixels.shape[:2]
    if src_w == 0 or src_h == 0:
        return

    if (src_w, src_h) == (target_w, target_h):
        scaled = pixels
    else:
        if interpolation is None:
            shrinking = target_w < src_w and target_h < src_h
            interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_LANCZOS4
        scaled = cv2.resize(pixels, (target_w, target_h), interpolation=interpolation)

    if flip_x:
        scaled = scaled[:, ::-1]

    surface.blend(scaled, x0, y0)


def draw_centered_image(
    surface: Canvas,
    image: Drawable,
    width: int,
    height: int,
    fit_mode: FitMode = FitMode.CONTAIN,
) -> None:
    """
    Draw the image centered in a width x height target.

    `contain` scales by min(W/w, H/h) and never crops; `cover` scales by the
    max and crops the overflow.
    """
    if image.width <= 0 or image.height <= 0:
        return
    scale_x = width / image.width
    scale_y = height / image.height
    scale = max(scale_x, scale_y) if fit_mode == FitMode.COVER else min(scale_x, scale_y)

    draw_w = image.width * scale
    draw_h = image.height * scale
    draw_image(surface, image, (width - draw_w) / 2, (height - draw_h) / 2, draw_w, draw_h)


def contain_rect(image: Drawable, width: int, height: int) -> Rect:
    """Destination rect of `draw_centered_image(..., CONTAIN)`."""
    if image.width <= 0 or image.height <= 0:
        return (0.0, 0.0, 0.0, 0.0)
    scale = min(width / image.width, height / image.height)
    draw_w = image.width * scale
    draw_h = image.height * scale
    return ((width - draw_w) / 2, (height - draw_h) / 2, draw_w, draw_h)


def draw_blurred_background(
    surface: Canvas,
    image: Drawable,
    width: int,
    height: int,
    blur_intensity: float,
) -> None:
    """
    Paint a blurred, cover-scaled copy of the image as a background.

    The copy is drawn with a bleed of twice the blur radius on every side so
    the blur never pulls transparent pixels in from the edges.
    """
    radius = round_half_up(max(blur_intensity, 0) / 100 * MAX_BLUR_RADIUS)
    if radius == 0:
        draw_centered_image(surface, image, width, height, FitMode.COVER)
        return
    if image.width <= 0 or image.height <= 0 or width <= 0 or height <= 0:
        return

    bleed = radius * 2
    bleed_w = width + bleed * 2
    bleed_h = height + bleed * 2
    scale = max(bleed_w / image.width, bleed_h / image.height)
    draw_w = image.width * scale
    draw_h = image.height * scale

    layer = Canvas(width=width, height=height)
    draw_image(layer, image, (width - draw_w) / 2, (height - draw_h) / 2, draw_w, draw_h)
    blurred = cv2.GaussianBlur(layer.pixels, (0, 0), sigmaX=radius, sigmaY=radius)
    surface.blend(blurred, 0, 0)


def draw_solid_background(surface: Canvas, width: int, height: int, color: str) -> None:
    if width <= 0 or height <= 0:
        return
    patch = np.empty((height, width, 4), dtype=np.uint8)
    patch[...] = np.asarray(parse_color(color), dtype=np.uint8)
    surface.blend(patch, 0, 0)


def draw_gradient_background(
    surface: Canvas,
    width: int,
    height: int,
    start_color: str,
    end_color: str,
) -> None:
    """Linear two-stop gradient from left to right, sampled at pixel centers."""
    if width <= 0 or height <= 0:
        return
    start = np.asarray(parse_color(start_color), dtype=np.float32)
    end = np.asarray(parse_color(end_color), dtype=np.float32)
    t = ((np.arange(width, dtype=np.float32) + 0.5) / width)[:, None]
    row = np.rint(start + (end - start) * t).astype(np.uint8)
    patch = np.broadcast_to(row[None, :, :], (height, width, 4))
    surface.blend(np.ascontiguousarray(patch), 0, 0)


def apply_crop(
    surface: Canvas,
    image: Drawable,
    crop: CropData,
    width: int,
    height: int,
) -> None:
    """Blit the crop rect stretched to exactly width x height."""
    draw_image(
        surface,
        image,
        0,
        0,
        width,
        height,
        src=(crop.x, crop.y, crop.width, crop.height),
    )


def _height_fill(image: Drawable, width: int, height: int) -> Tuple[float, float]:
    """Scaled width and left offset when the image fills the target height."""
    scale = height / image.height
    scaled_w = image.width * scale
    return scaled_w, (width - scaled_w) / 2


def draw_mirrored_edges(surface: Canvas, image: Drawable, width: int, height: int) -> None:
    """
    Fill the side bands left by a height-fill with mirrored halves of the image.

    The left band shows the image's left half flipped horizontally and the
    right band its right half flipped; the image itself is drawn on top.
    """
    if image.width <= 0 or image.height <= 0 or height <= 0:
        return
    scaled_w, offset_x = _height_fill(image, width, height)

    if scaled_w < width:
        half = max(image.width // 2, 1)
        right_start = offset_x + scaled_w
        draw_image(surface, image, 0, 0, offset_x, height, src=(0, 0, half, image.height), flip_x=True)
        draw_image(
            surface,
            image,
            right_start,
            0,
            width - right_start,
            height,
            src=(image.width - half, 0, half, image.height),
            flip_x=True,
        )

    draw_image(surface, image, offset_x, 0, scaled_w, height)


def draw_stretched_edges(surface: Canvas, image: Drawable, width: int, height: int) -> None:
    """
    Fill the side bands by stretching the image's outermost pixel columns.

    The image is height-filled and centered on top of the stretched bands.
    """
    if image.width <= 0 or image.height <= 0 or height <= 0:
        return
    scaled_w, offset_x = _height_fill(image, width, height)

    if scaled_w < width:
        right_start = offset_x + scaled_w
        draw_image(
            surface,
            image,
            0,
            0,
            offset_x,
            height,
            src=(0, 0, 1, image.height),
            interpolation=cv2.INTER_LINEAR,
        )
        draw_image(
            surface,
            image,
            right_start,
            0,
            width - right_start,
            height,
            src=(image.width - 1, 0, 1, image.height),
            interpolation=cv2.INTER_LINEAR,
        )

    draw_image(surface, image, offset_x, 0, scaled_w, height)
