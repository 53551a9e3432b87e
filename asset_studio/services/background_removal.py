"""
Background removal backends.

Backends take a decoded bitmap and a `(phase_key, current, total)` progress
callback and return a transparent PNG. They are blocking; the compositor runs
them in the threadpool.
"""

from __future__ import annotations

import logging
import threading
from io import BytesIO
from typing import Optional, Protocol

from PIL import Image

from asset_studio.config import get_config
from asset_studio.models.images import Bitmap
from asset_studio.services.encoder import encode_png
from asset_studio.services.progress import BackendProgress
from asset_studio.services.providers import ProviderHTTPClient, get_provider_client


logger = logging.getLogger(__name__)


def _noop_progress(phase_key: str, current: int, total: int) -> None:
    return None


class BackgroundRemover(Protocol):
    def remove(self, image: Bitmap, progress: BackendProgress | None = None) -> bytes:
        """Return PNG bytes of `image` with its background made transparent."""
        ...


class RembgRemover:
    """
    Local inference with rembg.

    The ONNX session is created on first use (this is when rembg downloads the
    model weights) and reused afterwards.
    """

    def __init__(self, model_name: str = "isnet-general-use") -> None:
        self.model_name = model_name
        self._session = None
        self._lock = threading.Lock()

    def _get_session(self, progress: BackendProgress):
        with self._lock:
            if self._session is None:
                progress("fetch:model", 0, 1)
                # rembg pulls in onnxruntime on import, keep it off the startup path.
                from rembg import new_session

                logger.info("Loading rembg model %s", self.model_name)
                self._session = new_session(self.model_name)
            progress("fetch:model", 1, 1)
            return self._session

    def remove(self, image: Bitmap, progress: BackendProgress | None = None) -> bytes:
        from rembg import remove

        progress = progress or _noop_progress
        session = self._get_session(progress)

        progress("compute:mask", 0, 1)
        cutout = remove(Image.fromarray(image.pixels), session=session)
        progress("compute:mask", 1, 1)

        buffer = BytesIO()
        cutout.save(buffer, format="PNG")
        return buffer.getvalue()


class RemoteRemover:
    """Background removal through remove.bg."""

    def __init__(self, client: ProviderHTTPClient | None = None) -> None:
        self.client = client or get_provider_client()

    def remove(self, image: Bitmap, progress: BackendProgress | None = None) -> bytes:
        progress = progress or _noop_progress
        progress("compute:remote", 0, 1)
        result = self.client.remove_background(encode_png(image), "image.png", "image/png")
        progress("compute:remote", 1, 1)
        return result


_background_remover: Optional[BackgroundRemover] = None


def get_background_remover() -> BackgroundRemover:
    """Get or create the configured background remover."""
    global _background_remover
    if _background_remover is None:
        config = get_config()
        if config.background_remover == "remote":
            _background_remover = RemoteRemover()
        else:
            _background_remover = RembgRemover(config.rembg_model)
    return _background_remover
