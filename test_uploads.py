"""Tests for the upload decode boundary."""

import hashlib
from io import BytesIO

import pytest
from PIL import Image

from asset_studio.services import uploads
from asset_studio.services.uploads import ImageValidationError, decode_bitmap, decode_image_file
from conftest import encode


def test_decode_png_to_rgba():
    data = encode(30, 20, "PNG", (10, 20, 30, 128))
    image_file = decode_image_file(data, "a.png")

    assert (image_file.width, image_file.height) == (30, 20)
    assert image_file.key == hashlib.sha1(data).hexdigest()
    assert image_file.size == len(data)
    assert image_file.bitmap.pixels[0, 0].tolist() == [10, 20, 30, 128]


@pytest.mark.parametrize("fmt", ["JPEG", "WEBP", "BMP"])
def test_decode_other_formats(fmt):
    image_file = decode_image_file(encode(12, 8, fmt), f"x.{fmt.lower()}")
    assert (image_file.width, image_file.height) == (12, 8)
    assert image_file.bitmap.pixels.shape == (8, 12, 4)


def test_exif_orientation_applied():
    img = Image.new("RGB", (40, 20), (200, 0, 0))
    exif = img.getexif()
    exif[0x0112] = 6
    buffer = BytesIO()
    img.save(buffer, format="JPEG", exif=exif)

    image_file = decode_image_file(buffer.getvalue(), "rotated.jpg")

    assert (image_file.width, image_file.height) == (20, 40)


def test_rejects_empty_and_oversized(monkeypatch):
    with pytest.raises(ImageValidationError):
        decode_image_file(b"", "empty.png")

    monkeypatch.setattr(uploads, "MAX_FILE_SIZE", 10)
    with pytest.raises(ImageValidationError, match="too large"):
        decode_image_file(encode(8, 8), "big.png")


@pytest.mark.parametrize("name", ["vector.svg", "page.HTML", "run.sh"])
def test_rejects_blocked_extensions(name):
    with pytest.raises(ImageValidationError, match="not allowed"):
        decode_image_file(encode(4, 4), name)


def test_rejects_garbage_and_unsupported_formats():
    with pytest.raises(ImageValidationError):
        decode_image_file(b"definitely not an image", "notes.png")
    with pytest.raises(ImageValidationError, match="Unsupported"):
        decode_image_file(encode(4, 4, "GIF"), "anim.gif")


def test_decode_bitmap():
    assert decode_bitmap(encode(5, 3)).width == 5
    with pytest.raises(ImageValidationError):
        decode_bitmap(b"nope")
