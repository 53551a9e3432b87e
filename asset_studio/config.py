"""
Service configuration read from the environment.

`main.py` loads `.env` with python-dotenv before anything calls
`get_config()`, so values from the file and from the real environment are
treated the same way.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


@dataclass(slots=True, frozen=True)
class StudioConfig:
    storage_dir: Path
    preferences_path: Path
    activity_log_path: Path
    outpaint_endpoint: str
    outpaint_timeout: float
    cloudflare_account_id: str | None
    cloudflare_api_token: str | None
    fal_key: str | None
    removebg_api_key: str | None
    # "local" runs rembg in-process, "remote" calls remove.bg.
    background_remover: str
    rembg_model: str
    asset_ttl_seconds: float
    rate_limit_max_requests: int
    rate_limit_window_seconds: float

    @classmethod
    def from_env(cls) -> "StudioConfig":
        storage_dir = Path(os.getenv("STUDIO_STORAGE_DIR", "storage"))
        preferences = os.getenv("STUDIO_PREFERENCES_PATH")
        return cls(
            storage_dir=storage_dir,
            preferences_path=Path(preferences) if preferences else storage_dir / "preferences.json",
            activity_log_path=Path(os.getenv("STUDIO_ACTIVITY_LOG", "output.txt")),
            outpaint_endpoint=os.getenv(
                "OUTPAINT_ENDPOINT", "http://127.0.0.1:8000/api/v1/outpaint"
            ),
            outpaint_timeout=_env_float("OUTPAINT_TIMEOUT", 120.0),
            cloudflare_account_id=os.environ.get("CLOUDFLARE_ACCOUNT_ID") or None,
            cloudflare_api_token=os.environ.get("CLOUDFLARE_API_TOKEN") or None,
            fal_key=os.environ.get("FAL_KEY") or None,
            removebg_api_key=os.environ.get("REMOVEBG_API_KEY") or None,
            background_remover=os.getenv("BACKGROUND_REMOVER", "local").lower(),
            rembg_model=os.getenv("REMBG_MODEL", "isnet-general-use"),
            asset_ttl_seconds=_env_float("ASSET_TTL_SECONDS", 3600.0),
            rate_limit_max_requests=_env_int("RATE_LIMIT_MAX_REQUESTS", 10),
            rate_limit_window_seconds=_env_float("RATE_LIMIT_WINDOW_SECONDS", 60.0),
        )


_config: Optional[StudioConfig] = None


def get_config() -> StudioConfig:
    """Return the process-wide configuration, reading the environment once."""
    global _config
    if _config is None:
        _config = StudioConfig.from_env()
    return _config


def reset_config() -> None:
    """Forget the cached configuration so the next call re-reads the environment."""
    global _config
    _config = None
