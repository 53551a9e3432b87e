"""
Upload decode boundary.

Turns raw uploaded bytes into an `ImageFile`. This is the only place that
sniffs file types; everything downstream trusts the decoded bitmap.
"""

from __future__ import annotations

import hashlib
import logging
import os
from io import BytesIO

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from asset_studio.models.images import Bitmap, ImageFile


logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 50 * 1024 * 1024

# Pillow format names accepted from uploads. SVG and other markup never
# reach Pillow because of the extension block list below.
ALLOWED_FORMATS = {"PNG", "JPEG", "WEBP", "AVIF", "BMP"}

BLOCKED_EXTENSIONS = {
    ".svg",
    ".html",
    ".htm",
    ".xml",
    ".js",
    ".mjs",
    ".cjs",
    ".php",
    ".exe",
    ".sh",
    ".bat",
    ".cmd",
}


class ImageValidationError(ValueError):
    """Raised when an uploaded payload is not an acceptable image."""


def decode_image_file(data: bytes, name: str) -> ImageFile:
    """
    Validate and decode uploaded bytes into an `ImageFile`.

    Raises ImageValidationError for empty or oversized payloads, blocked
    extensions, undecodable bytes and unsupported formats.
    """
    if not data:
        raise ImageValidationError("Empty file.")
    if len(data) > MAX_FILE_SIZE:
        raise ImageValidationError(
            f"File too large. Maximum size: {MAX_FILE_SIZE // (1024 * 1024)}MB"
        )

    extension = os.path.splitext(name or "")[1].lower()
    if extension in BLOCKED_EXTENSIONS:
        raise ImageValidationError(f"File type not allowed: {extension}")

    try:
        with Image.open(BytesIO(data)) as img:
            image_format = img.format
            if image_format not in ALLOWED_FORMATS:
                raise ImageValidationError(f"Unsupported image format: {image_format}")
            img = ImageOps.exif_transpose(img)
            rgba = img.convert("RGBA")
            bitmap = Bitmap(np.asarray(rgba))
    except ImageValidationError:
        raise
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageValidationError("Failed to decode image.") from exc

    logger.info(
        "Decoded upload %s (%s, %dx%d, %d bytes)",
        name,
        image_format,
        bitmap.width,
        bitmap.height,
        len(data),
    )
    return ImageFile(
        key=hashlib.sha1(data).hexdigest(),
        name=name or "image",
        size=len(data),
        bitmap=bitmap,
    )


def decode_bitmap(data: bytes) -> Bitmap:
    """Decode encoded image bytes (e.g. a provider response) into a bitmap."""
    try:
        with Image.open(BytesIO(data)) as img:
            return Bitmap(np.asarray(img.convert("RGBA")))
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageValidationError("Failed to decode image.") from exc
