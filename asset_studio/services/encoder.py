"""
Canvas encoding.

Formats map onto Pillow writers; ICO is produced by wrapping a PNG in a
single-entry ICO container, which every current consumer reads.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from io import BytesIO
from typing import Tuple

import numpy as np
from PIL import Image

from asset_studio.models.images import Drawable
from asset_studio.services.presets import get_format


logger = logging.getLogger(__name__)

_PIL_FORMATS = {
    "png": "PNG",
    "jpg": "JPEG",
    "webp": "WEBP",
    "avif": "AVIF",
    "bmp": "BMP",
}

ICO_HEADER_SIZE = 6
ICO_ENTRY_SIZE = 16

MIN_QUALITY = 10
# The search stops once the quality bracket is this narrow.
QUALITY_SEARCH_TOLERANCE = 5


class EncodingError(RuntimeError):
    """Raised when a surface cannot be encoded in the requested format."""


@dataclass(slots=True, frozen=True)
class Blob:
    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


def _to_pil(surface: Drawable, flatten: bool) -> Image.Image:
    pixels = surface.pixels
    if flatten:
        # Lossy formats without alpha composite transparent pixels over black.
        alpha = pixels[..., 3:4].astype(np.float32) / 255.0
        rgb = np.rint(pixels[..., :3].astype(np.float32) * alpha).astype(np.uint8)
        return Image.fromarray(np.ascontiguousarray(rgb))
    return Image.fromarray(np.ascontiguousarray(pixels))


def encode_png(surface: Drawable) -> bytes:
    return _encode(surface, "png", None)


def _encode(surface: Drawable, format_id: str, quality: int | None) -> bytes:
    if surface.width <= 0 or surface.height <= 0:
        raise EncodingError(f"Cannot encode an empty {surface.width}x{surface.height} surface.")

    pil_format = _PIL_FORMATS[format_id]
    image = _to_pil(surface, flatten=format_id == "jpg")
    params = {}
    if quality is not None:
        params["quality"] = int(min(max(quality, 1), 100))

    buffer = BytesIO()
    try:
        image.save(buffer, format=pil_format, **params)
    except (KeyError, OSError, ValueError) as exc:
        raise EncodingError(f"Failed to encode image as {format_id}: {exc}") from exc
    return buffer.getvalue()


def png_to_ico(png: bytes) -> bytes:
    """
    Wrap PNG bytes in a single-image ICO container.

    Layout: header (reserved 0, type 1, count 1) then one directory entry
    (width 0 and height 0 meaning 256 or more, no palette, 1 plane, 32 bpp,
    PNG length, data offset 22) followed by the PNG bytes verbatim.
    """
    header = struct.pack("<HHH", 0, 1, 1)
    entry = struct.pack(
        "<BBBBHHII",
        0,
        0,
        0,
        0,
        1,
        32,
        len(png),
        ICO_HEADER_SIZE + ICO_ENTRY_SIZE,
    )
    return header + entry + png


def canvas_to_blob(canvas: Drawable, format_id: str, quality: int) -> Blob:
    """
    Encode a surface in the given format.

    Quality (1-100) only reaches formats that support lossy quality. Unknown
    format ids encode as PNG.
    """
    option = get_format(format_id)
    if option is None:
        logger.warning("Unknown export format %r, encoding as PNG", format_id)
        option = get_format("png")

    if option.id == "ico":
        return Blob(png_to_ico(encode_png(canvas)), option.mime_type)

    data = _encode(canvas, option.id, quality if option.supports_quality else None)
    return Blob(data, option.mime_type)


def optimize_to_target_size(
    canvas: Drawable,
    target_size_mb: float,
    format_id: str,
    start_quality: int = 95,
) -> Tuple[Blob, int]:
    """
    Search for a quality whose encoding fits in `target_size_mb`.

    Binary search over [10, start_quality] that stops as soon as an encoding
    fits or the bracket is 5 wide. If nothing fit, quality 10 is used as a
    last resort whether or not it meets the target. ICO has no quality and
    returns immediately at 100.
    """
    target_bytes = target_size_mb * 1024 * 1024
    quality = start_quality
    blob = canvas_to_blob(canvas, format_id, quality)

    if format_id == "ico":
        return blob, 100

    min_quality = MIN_QUALITY
    max_quality = quality

    while max_quality - min_quality > QUALITY_SEARCH_TOLERANCE and blob.size > target_bytes:
        quality = (min_quality + max_quality) // 2
        blob = canvas_to_blob(canvas, format_id, quality)
        logger.debug("Quality %d -> %d bytes (target %d)", quality, blob.size, target_bytes)

        if blob.size > target_bytes:
            max_quality = quality
        else:
            min_quality = quality

    if blob.size > target_bytes and quality > MIN_QUALITY:
        quality = MIN_QUALITY
        blob = canvas_to_blob(canvas, format_id, quality)

    if blob.size > target_bytes:
        logger.info(
            "Target %.2f MB not reachable for %s; returning %d bytes at quality %d",
            target_size_mb,
            format_id,
            blob.size,
            quality,
        )
    return blob, quality
