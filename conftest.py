"""Shared fixtures for the studio test modules."""

from io import BytesIO

import numpy as np
import pytest
from PIL import Image

from asset_studio.config import reset_config
from asset_studio.models.images import Bitmap, ImageFile


def make_pixels(width, height, color=(200, 40, 40, 255)):
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[...] = color
    return pixels


def make_bitmap(width, height, color=(200, 40, 40, 255)):
    return Bitmap(make_pixels(width, height, color))


def make_striped_bitmap(width, height):
    """Bitmap whose red channel encodes the column, handy for mirror checks."""
    pixels = make_pixels(width, height)
    columns = np.linspace(0, 255, width).astype(np.uint8)
    pixels[..., 0] = columns[None, :]
    pixels[..., 1] = 0
    pixels[..., 2] = 255 - columns[None, :]
    return Bitmap(pixels)


def make_image_file(width, height, name="photo.png", color=(200, 40, 40, 255), key=None):
    bitmap = make_bitmap(width, height, color)
    return ImageFile(
        key=key or f"{name}-{width}x{height}-{color}",
        name=name,
        size=width * height * 4,
        bitmap=bitmap,
    )


def encode(width, height, fmt="PNG", color=(10, 120, 200)):
    buffer = BytesIO()
    mode = "RGBA" if fmt == "PNG" and len(color) == 4 else "RGB"
    Image.new(mode, (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def studio_env(tmp_path, monkeypatch):
    """Point configuration at a sandbox directory and reset global singletons."""
    import asset_studio.services.background_removal as background_removal
    import asset_studio.services.outpaint as outpaint
    import asset_studio.services.providers as providers
    import asset_studio.services.rate_limiter as rate_limiter
    import asset_studio.services.stores as stores

    monkeypatch.setenv("STUDIO_STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("STUDIO_ACTIVITY_LOG", str(tmp_path / "activity.log"))
    monkeypatch.setenv("BACKGROUND_REMOVER", "local")
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "2")
    monkeypatch.setenv("RATE_LIMIT_WINDOW_SECONDS", "60")
    for key in ("CLOUDFLARE_ACCOUNT_ID", "CLOUDFLARE_API_TOKEN", "FAL_KEY", "REMOVEBG_API_KEY"):
        monkeypatch.delenv(key, raising=False)

    reset_config()
    monkeypatch.setattr(stores, "_default_bitmap_cache", None)
    monkeypatch.setattr(stores, "_default_asset_store", None)
    monkeypatch.setattr(stores, "_default_preferences", None)
    monkeypatch.setattr(providers, "_provider_client", None)
    monkeypatch.setattr(outpaint, "_outpaint_client", None)
    monkeypatch.setattr(background_removal, "_background_remover", None)
    rate_limiter.reset_rate_limiter()

    yield tmp_path

    reset_config()
    rate_limiter.reset_rate_limiter()


class FakeResponse:
    def __init__(self, status_code=200, content=b"", json_body=None, headers=None):
        self.status_code = status_code
        self.content = content
        self._json = json_body
        self.headers = headers or {}
        self.text = content.decode("latin-1") if content else ""

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._json is None:
            raise ValueError("no json body")
        return self._json


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, files=None, data=None, timeout=None, **kwargs):
        self.calls.append({"url": url, "files": files, "data": data, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


def noise_png(width=64, height=64, seed=7):
    """PNG of random pixels; large enough to pass the outpaint size check."""
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 255, size=(height, width, 3), dtype=np.uint8)
    buffer = BytesIO()
    Image.fromarray(pixels, "RGB").save(buffer, format="PNG")
    return buffer.getvalue()
