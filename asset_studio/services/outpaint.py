"""
AI canvas extension (outpainting).

The source is laid out at the target size over a stretched-edge color hint,
paired with a soft-edged mask that protects the original content, and sent
to the outpaint endpoint. The returned image is kept in the asset store and
referenced from `WallpaperSettings.ai_generated_image`.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import cv2
import requests
from fastapi.concurrency import run_in_threadpool

from asset_studio.config import get_config
from asset_studio.models.images import Canvas, Drawable
from asset_studio.models.settings import FitMode
from asset_studio.services.drawing import contain_rect, draw_centered_image, draw_stretched_edges
from asset_studio.services.encoder import encode_png
from asset_studio.services.geometry import round_half_up
from asset_studio.services.providers import DEFAULT_PROMPT, DEFAULT_STRENGTH
from asset_studio.services.stores import AssetStore, PreferenceStore
from asset_studio.services.uploads import ImageValidationError, decode_bitmap


logger = logging.getLogger(__name__)

# Inset of the protected region inside the placed source image.
MASK_PADDING = 15
# Blur radius that softens the mask seam.
MASK_BLUR = 25
# Anything smaller than this is an error page or an empty body, not an image.
MIN_RESULT_BYTES = 1000


class OutpaintError(RuntimeError):
    """The outpaint call failed or returned an unusable payload."""

    def __init__(self, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code


def prepare_outpaint_inputs(source: Drawable, width: int, height: int) -> Tuple[Canvas, Canvas]:
    """
    Build the (image, mask) pair for an outpaint request.

    Mask convention: white is "paint here", black is protected. The black
    rectangle is the contained source minus MASK_PADDING on each side, and
    the whole mask is blurred so the model blends across the seam.
    """
    image = Canvas(width=width, height=height)
    draw_stretched_edges(image, source, width, height)
    draw_centered_image(image, source, width, height, FitMode.CONTAIN)

    mask = Canvas(width=width, height=height)
    mask.fill((255, 255, 255, 255))

    x, y, w, h = contain_rect(source, width, height)
    left = max(0, round_half_up(x + MASK_PADDING))
    top = max(0, round_half_up(y + MASK_PADDING))
    right = min(width, round_half_up(x + w - MASK_PADDING))
    bottom = min(height, round_half_up(y + h - MASK_PADDING))
    if right > left and bottom > top:
        mask.pixels[top:bottom, left:right, :3] = 0

    if width > 0 and height > 0:
        mask.pixels = cv2.GaussianBlur(mask.pixels, (0, 0), sigmaX=MASK_BLUR, sigmaY=MASK_BLUR)
    return image, mask


class OutpaintClient:
    """
    Multipart client for the outpaint endpoint.

    The endpoint answers with the image body on success or a JSON `{error}`
    body with a non-2xx status.
    """

    def __init__(
        self,
        endpoint: str,
        session: requests.Session | None = None,
        timeout: float = 120.0,
    ) -> None:
        self.endpoint = endpoint
        self.session = session or requests.Session()
        self.timeout = timeout

    def request(
        self,
        image_png: bytes,
        mask_png: bytes,
        prompt: str,
        provider: str,
        strength: float,
        width: int,
        height: int,
    ) -> Tuple[bytes, str]:
        logger.info(
            "Calling outpaint endpoint %s (provider: %s, %dx%d, strength %.2f)",
            self.endpoint,
            provider,
            width,
            height,
            strength,
        )
        try:
            response = self.session.post(
                self.endpoint,
                files={
                    "image": ("image.png", image_png, "image/png"),
                    "mask": ("mask.png", mask_png, "image/png"),
                },
                data={
                    "prompt": prompt,
                    "provider": provider,
                    "strength": str(strength),
                    "width": str(width),
                    "height": str(height),
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise OutpaintError(f"Outpaint request failed: {exc}") from exc

        if not response.ok:
            raise OutpaintError(_error_message(response), status_code=response.status_code)

        data = response.content
        if len(data) < MIN_RESULT_BYTES:
            raise OutpaintError(
                f"Outpaint returned an invalid image ({len(data)} bytes). Try again or switch provider."
            )
        return data, response.headers.get("Content-Type") or "image/png"


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text or f"Outpaint failed with status {response.status_code}"


async def generate_ai_expansion(
    source: Drawable,
    width: int,
    height: int,
    *,
    prompt: str | None = None,
    provider: str | None = None,
    client: OutpaintClient | None = None,
    preferences: PreferenceStore | None = None,
    assets: AssetStore,
) -> str:
    """
    Outpaint `source` to width x height and return the generated asset id.

    Raises OutpaintError when the call fails or the payload is too small or
    does not decode as an image. Nothing is stored in that case.
    """
    client = client or get_outpaint_client()
    image, mask = prepare_outpaint_inputs(source, width, height)
    strength = preferences.get_ai_strength() if preferences is not None else DEFAULT_STRENGTH

    data, content_type = await run_in_threadpool(
        client.request,
        encode_png(image),
        encode_png(mask),
        (prompt or "").strip() or DEFAULT_PROMPT,
        provider or "cloudflare",
        strength,
        width,
        height,
    )
    try:
        decode_bitmap(data)
    except ImageValidationError as exc:
        raise OutpaintError(f"Outpaint returned an unreadable image: {exc}") from exc

    asset_id = assets.add(data, content_type)
    logger.info("AI expansion stored as %s (%d bytes)", asset_id, len(data))
    return asset_id


def record_ai_feedback(
    good: bool,
    preferences: PreferenceStore,
    strength: float | None = None,
) -> float:
    """
    Persist the strength behind a result the user liked.

    A good rating stores `strength` (the value the rated result was made
    with, clamped to [0.1, 1]) rather than resetting to the 0.88 default, so
    a tuned strength survives. Without `strength` the current preference is
    re-saved. A bad rating changes nothing. Returns the strength that will be
    used for the next expansion.
    """
    if not good:
        return preferences.get_ai_strength()
    if strength is None:
        strength = preferences.get_ai_strength()
    return preferences.set_ai_strength(strength)


_outpaint_client: Optional[OutpaintClient] = None


def get_outpaint_client() -> OutpaintClient:
    global _outpaint_client
    if _outpaint_client is None:
        config = get_config()
        _outpaint_client = OutpaintClient(config.outpaint_endpoint, timeout=config.outpaint_timeout)
    return _outpaint_client
