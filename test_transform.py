"""Tests for the crop/resize/flip/rotate tool transforms."""

import numpy as np
import pytest

from asset_studio.models.images import Bitmap
from asset_studio.models.settings import CropData
from asset_studio.services.transform import (
    ResizeSettings,
    ToolSettings,
    apply_transformations,
    create_preview_canvas,
)
from conftest import make_bitmap, make_pixels

RED = [255, 0, 0, 255]


def _marked(width, height):
    """Blue bitmap with a red pixel in the top-left corner."""
    pixels = make_pixels(width, height, (0, 0, 255, 255))
    pixels[0, 0] = RED
    return Bitmap(pixels)


def test_identity():
    image = _marked(4, 2)
    canvas = apply_transformations(image, ToolSettings())
    np.testing.assert_array_equal(canvas.pixels, image.pixels)


def test_rotate_90_is_clockwise():
    canvas = apply_transformations(_marked(4, 2), ToolSettings(rotation=90))

    assert (canvas.width, canvas.height) == (2, 4)
    assert canvas.pixels[0, 1].tolist() == RED


def test_rotate_180_and_270():
    half_turn = apply_transformations(_marked(4, 2), ToolSettings(rotation=180))
    three_quarter = apply_transformations(_marked(4, 2), ToolSettings(rotation=270))

    assert half_turn.pixels[1, 3].tolist() == RED
    assert (three_quarter.width, three_quarter.height) == (2, 4)
    assert three_quarter.pixels[3, 0].tolist() == RED


def test_flips():
    flipped_h = apply_transformations(_marked(4, 2), ToolSettings(flip_h=True))
    flipped_v = apply_transformations(_marked(4, 2), ToolSettings(flip_v=True))

    assert flipped_h.pixels[0, 3].tolist() == RED
    assert flipped_v.pixels[1, 0].tolist() == RED


def test_flip_applies_before_rotation():
    canvas = apply_transformations(_marked(4, 2), ToolSettings(rotation=90, flip_h=True))
    # Flip moves the marker to the top-right; a clockwise turn brings it to the bottom-right.
    assert canvas.pixels[3, 1].tolist() == RED


def test_crop_then_resize():
    pixels = make_pixels(10, 10, (0, 0, 255, 255))
    pixels[2:4, 2:4] = RED
    settings = ToolSettings(
        crop=CropData(2, 2, 2, 2),
        resize=ResizeSettings(width=8, height=8),
    )

    canvas = apply_transformations(Bitmap(pixels), settings)

    assert (canvas.width, canvas.height) == (8, 8)
    assert (canvas.pixels[..., 0] == 255).all()


def test_resize_is_the_final_size_after_rotation():
    canvas = apply_transformations(
        make_bitmap(40, 20), ToolSettings(rotation=90, resize=ResizeSettings(width=10, height=30))
    )
    assert (canvas.width, canvas.height) == (10, 30)


def test_zero_resize_keeps_post_rotation_size():
    canvas = apply_transformations(
        make_bitmap(40, 20), ToolSettings(rotation=270, resize=ResizeSettings(width=0, height=0))
    )
    assert (canvas.width, canvas.height) == (20, 40)


def test_preview_is_capped():
    preview = create_preview_canvas(make_bitmap(2000, 1000), ToolSettings(), max_dimension=800)
    small = create_preview_canvas(make_bitmap(300, 100), ToolSettings())

    assert (preview.width, preview.height) == (800, 400)
    assert (small.width, small.height) == (300, 100)


def test_invalid_rotation_rejected():
    with pytest.raises(ValueError):
        ToolSettings(rotation=45)
