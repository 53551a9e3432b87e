"""
HTTP clients for the external AI providers behind the proxy endpoints.

- Cloudflare Workers AI (stable-diffusion-v1-5-inpainting), the default
  outpainting provider.
- fal.ai fast-sdxl inpainting, higher quality, needs FAL_KEY.
- remove.bg for remote background removal.

Calls are made once; failures surface as ProviderError carrying the status
code the proxy should answer with. Nothing here retries.
"""

from __future__ import annotations

import base64
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

import requests

from asset_studio.config import StudioConfig, get_config


logger = logging.getLogger(__name__)

DEFAULT_PROMPT = (
    "seamless horizontal extension of the same scene, natural continuation left and right, "
    "no visible seams or borders, single continuous image, consistent art style and lighting, "
    "fantasy map, tabletop game map, high quality"
)
NEGATIVE_PROMPT = "blurry, low resolution, distorted, duplicate, text, watermark"

CLOUDFLARE_MODEL = "@cf/runwayml/stable-diffusion-v1-5-inpainting"
FAL_ENDPOINT = "https://fal.run/fal-ai/fast-sdxl/inpainting"
REMOVEBG_ENDPOINT = "https://api.remove.bg/v1.0/removebg"

PROVIDERS = ("cloudflare", "fal")
DEFAULT_STRENGTH = 0.88


def log_to_file(message: str, path: Path | None = None) -> None:
    """Append message to the activity log with a timestamp."""
    log_path = path or get_config().activity_log_path
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    try:
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(f"[{timestamp}] {message}\n")
    except OSError as exc:
        logger.debug("Activity log unavailable at %s: %s", log_path, exc)


class ProviderError(RuntimeError):
    """A provider call failed; `status_code` is what the proxy responds with."""

    def __init__(self, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code


def clamp_strength(raw: str | float | None) -> float:
    """Parse and clamp a strength value into [0.1, 1], defaulting to 0.88."""
    if raw is None or raw == "":
        return DEFAULT_STRENGTH
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_STRENGTH
    if value != value:  # NaN
        return DEFAULT_STRENGTH
    return min(1.0, max(0.1, value))


def _data_uri(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('utf-8')}"


def _error_text(response: requests.Response) -> str:
    return response.text or response.reason or f"HTTP {response.status_code}"


class ProviderHTTPClient:
    """
    Direct HTTP client for the outpainting and background removal providers.

    Credentials come from the studio configuration; a missing credential is
    reported as a ProviderError rather than at construction time so the rest
    of the service keeps working without them.
    """

    def __init__(
        self,
        config: StudioConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config or get_config()
        self.session = session or requests.Session()
        self.timeout = self.config.outpaint_timeout

    def _log(self, message: str) -> None:
        log_to_file(message, self.config.activity_log_path)

    def outpaint(
        self,
        image: bytes,
        mask: bytes,
        *,
        prompt: str | None = None,
        provider: str | None = None,
        strength: float = DEFAULT_STRENGTH,
        width: int = 1920,
        height: int = 1080,
        image_mime: str = "image/png",
        mask_mime: str = "image/png",
    ) -> Tuple[bytes, str]:
        """
        Run inpainting on the selected provider and return (bytes, content type).
        """
        prompt = (prompt or "").strip() or DEFAULT_PROMPT
        provider = (provider or "cloudflare").lower()
        strength = clamp_strength(strength)

        info_msg = (
            f"Outpaint request - provider: {provider}, size: {width}x{height}, "
            f"strength: {strength:.2f}"
        )
        logger.info(info_msg)
        self._log(info_msg)

        if provider == "fal":
            return self._outpaint_fal(image, mask, prompt, strength, width, height, image_mime, mask_mime)
        return self._outpaint_cloudflare(image, mask, prompt, strength)

    def _outpaint_fal(
        self,
        image: bytes,
        mask: bytes,
        prompt: str,
        strength: float,
        width: int,
        height: int,
        image_mime: str,
        mask_mime: str,
    ) -> Tuple[bytes, str]:
        if not self.config.fal_key:
            raise ProviderError(
                "fal.ai requires FAL_KEY on the server. Set it in .env or use Cloudflare.",
                status_code=400,
            )

        payload = {
            "input": {
                "image_url": _data_uri(image, image_mime),
                "mask_url": _data_uri(mask, mask_mime),
                "prompt": prompt,
                "negative_prompt": NEGATIVE_PROMPT,
                "image_size": {"width": width, "height": height},
                # SDXL inpainting degrades outside this band.
                "strength": min(0.95, max(0.5, strength)),
                "guidance_scale": 7.5,
                "num_inference_steps": 25,
                "format": "png",
            }
        }
        response = self.session.post(
            FAL_ENDPOINT,
            headers={"Authorization": f"Key {self.config.fal_key}", "Content-Type": "application/json"},
            json=payload,
            timeout=self.timeout,
        )
        if not response.ok:
            error_text = _error_text(response)
            logger.error("fal.ai error %s: %s", response.status_code, error_text)
            self._log(f"fal.ai FAILED ({response.status_code}): {error_text[:200]}")
            raise ProviderError(f"fal.ai: {error_text}", status_code=response.status_code)

        data = response.json()
        image_url = _first_image_url(data)
        if not image_url:
            raise ProviderError("fal.ai returned no image.", status_code=502)

        download = self.session.get(image_url, timeout=self.timeout)
        if not download.ok:
            raise ProviderError("Failed to download image from fal.ai.", status_code=502)

        self._log("fal.ai SUCCESS - outpainting completed")
        return download.content, download.headers.get("Content-Type") or "image/png"

    def _outpaint_cloudflare(
        self,
        image: bytes,
        mask: bytes,
        prompt: str,
        strength: float,
    ) -> Tuple[bytes, str]:
        account_id = self.config.cloudflare_account_id
        api_token = self.config.cloudflare_api_token
        if not account_id or not api_token:
            raise ProviderError(
                "Set CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN in .env",
                status_code=500,
            )

        url = f"https://api.cloudflare.com/client/v4/accounts/{account_id}/ai/run/{CLOUDFLARE_MODEL}"
        response = self.session.post(
            url,
            headers={"Authorization": f"Bearer {api_token}", "Content-Type": "application/json"},
            json={
                "prompt": prompt,
                "image": list(image),
                "mask": list(mask),
                "strength": strength,
                "num_steps": 20,
                "guidance": 7.5,
            },
            timeout=self.timeout,
        )
        if not response.ok:
            error_text = _error_text(response)
            logger.error("Cloudflare error %s: %s", response.status_code, error_text)
            self._log(f"Cloudflare FAILED ({response.status_code}): {error_text[:200]}")
            raise ProviderError(error_text, status_code=response.status_code)

        self._log("Cloudflare SUCCESS - outpainting completed")
        return response.content, "image/png"

    def remove_background(
        self,
        image: bytes,
        filename: str = "image.png",
        content_type: str = "image/png",
    ) -> bytes:
        """Send an image to remove.bg and return the transparent PNG."""
        api_key = self.config.removebg_api_key
        if not api_key:
            raise ProviderError("Set REMOVEBG_API_KEY in .env", status_code=500)

        response = self.session.post(
            REMOVEBG_ENDPOINT,
            headers={"X-Api-Key": api_key},
            files={"image_file": (filename, image, content_type)},
            data={"size": "auto"},
            timeout=self.timeout,
        )
        if not response.ok:
            error_text = _error_text(response)
            logger.error("remove.bg error %s: %s", response.status_code, error_text)
            self._log(f"remove.bg FAILED ({response.status_code}): {error_text[:200]}")
            raise ProviderError(f"remove.bg: {error_text}", status_code=response.status_code)

        self._log("remove.bg SUCCESS - background removed")
        return response.content


def _first_image_url(data: dict) -> str | None:
    for container in (data.get("data") or {}, data):
        images = container.get("images") if isinstance(container, dict) else None
        if images:
            url = images[0].get("url")
            if url:
                return url
    return None


_provider_client: Optional[ProviderHTTPClient] = None


def get_provider_client() -> ProviderHTTPClient:
    """Get or create the global provider client instance."""
    global _provider_client
    if _provider_client is None:
        _provider_client = ProviderHTTPClient()
    return _provider_client
