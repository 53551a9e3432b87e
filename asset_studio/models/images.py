from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

import numpy as np


@dataclass(slots=True, eq=False)
class Bitmap:
    """
    Decoded, read-only RGBA image.

    Pixels are stored as an (H, W, 4) uint8 array in RGBA order. The array is
    flagged read-only so compose passes can share cached bitmaps safely.
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        self.pixels = np.array(_as_rgba(self.pixels), copy=True)
        self.pixels.setflags(write=False)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclass(slots=True, eq=False)
class Canvas:
    """
    Mutable off-screen drawing surface of a fixed size.

    A fresh canvas is fully transparent. Non-positive sizes produce an empty
    surface that every drawing operation treats as a no-op.
    """

    width: int
    height: int
    pixels: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.width = int(self.width)
        self.height = int(self.height)
        self.pixels = np.zeros((max(self.height, 0), max(self.width, 0), 4), dtype=np.uint8)

    @classmethod
    def from_pixels(cls, pixels: np.ndarray) -> "Canvas":
        rgba = _as_rgba(pixels)
        canvas = cls(width=rgba.shape[1], height=rgba.shape[0])
        canvas.pixels[...] = rgba
        return canvas

    def blend(self, patch: np.ndarray, x: int, y: int) -> None:
        """
        Composite an RGBA patch at integer offset (x, y) with source-over.

        The patch is clipped against the canvas bounds.
        """
        ph, pw = patch.shape[:2]
        x0, y0 = max(x, 0), max(y, 0)
        x1, y1 = min(x + pw, self.width), min(y + ph, self.height)
        if x1 <= x0 or y1 <= y0:
            return

        src = patch[y0 - y : y1 - y, x0 - x : x1 - x]
        dst = self.pixels[y0:y1, x0:x1]

        src_alpha = src[..., 3:4].astype(np.float32) / 255.0
        if np.all(src_alpha == 1.0):
            dst[...] = src
            return

        dst_alpha = dst[..., 3:4].astype(np.float32) / 255.0
        out_alpha = src_alpha + dst_alpha * (1.0 - src_alpha)
        src_rgb = src[..., :3].astype(np.float32)
        dst_rgb = dst[..., :3].astype(np.float32)
        weighted = src_rgb * src_alpha + dst_rgb * dst_alpha * (1.0 - src_alpha)
        out_rgb = np.divide(
            weighted,
            out_alpha,
            out=np.zeros_like(weighted),
            where=out_alpha > 0,
        )
        dst[..., :3] = np.clip(np.rint(out_rgb), 0, 255).astype(np.uint8)
        dst[..., 3:4] = np.clip(np.rint(out_alpha * 255.0), 0, 255).astype(np.uint8)

    def fill(self, rgba: tuple[int, int, int, int]) -> None:
        """Fill the whole surface with a color, compositing source-over."""
        if self.width <= 0 or self.height <= 0:
            return
        patch = np.empty_like(self.pixels)
        patch[...] = np.asarray(rgba, dtype=np.uint8)
        self.blend(patch, 0, 0)

    def snapshot(self) -> Bitmap:
        """Freeze the current pixels into an independent bitmap."""
        return Bitmap(self.pixels)


# Anything a drawing primitive accepts as its source image.
Drawable = Union[Bitmap, Canvas]


@dataclass(slots=True)
class ImageFile:
    """
    A decoded user image plus the metadata the studio needs about it.

    `key` is the stable source identity used by the bitmap cache; it is
    derived from the uploaded bytes so identical uploads share cache entries.
    """

    key: str
    name: str
    size: int
    bitmap: Bitmap | None

    @property
    def width(self) -> int:
        return self.bitmap.width if self.bitmap is not None else 0

    @property
    def height(self) -> int:
        return self.bitmap.height if self.bitmap is not None else 0

    def release(self) -> None:
        """Drop the decoded bitmap once the image is replaced or closed."""
        self.bitmap = None


@dataclass(slots=True, frozen=True)
class ProcessedSource:
    """Stage 1 output: the original bitmap and the foreground to compose."""

    original: Bitmap
    processed: Bitmap

    @property
    def background_removed(self) -> bool:
        return self.processed is not self.original


def _as_rgba(pixels: np.ndarray) -> np.ndarray:
    """Normalise grayscale, RGB or RGBA uint8 arrays to contiguous RGBA."""
    array = np.asarray(pixels)
    if array.dtype != np.uint8:
        array = np.clip(array, 0, 255).astype(np.uint8)
    if array.ndim == 2:
        array = np.stack([array, array, array], axis=-1)
    if array.shape[2] == 3:
        alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
        array = np.concatenate([array, alpha], axis=-1)
    return np.ascontiguousarray(array)
