from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar
from uuid import uuid4

from asset_studio.config import get_config
from asset_studio.models.images import Bitmap
from asset_studio.services.uploads import decode_bitmap


logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_AI_STRENGTH = 0.88


class TTLStore(Generic[K, V]):
    """
    Small in-memory store with time-based eviction.

    Entries expire `ttl_seconds` after they were written; `get()` never
    returns one. `put()` also sweeps every expired entry once per
    `sweep_interval_seconds` (default: the TTL), so keys that are never read
    again do not linger. `put()` is idempotent: a live entry under the same
    key is kept and returned unchanged.
    """

    def __init__(
        self,
        ttl_seconds: float | None = 3600.0,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval_seconds: float | None = None,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._sweep_interval = sweep_interval_seconds if sweep_interval_seconds is not None else ttl_seconds
        self._last_sweep = clock()
        self._entries: Dict[K, Tuple[V, float | None]] = {}
        self._lock = threading.RLock()

    def _expiry(self) -> float | None:
        if self._ttl is None:
            return None
        return self._clock() + self._ttl

    def _is_live(self, expires_at: float | None) -> bool:
        return expires_at is None or self._clock() < expires_at

    def _maybe_sweep(self) -> None:
        if self._ttl is None or self._sweep_interval is None:
            return
        if self._clock() - self._last_sweep >= self._sweep_interval:
            self.sweep()

    def get(self, key: K) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if not self._is_live(expires_at):
                del self._entries[key]
                return None
            return value

    def put(self, key: K, value: V) -> V:
        with self._lock:
            self._maybe_sweep()
            existing = self.get(key)
            if existing is not None:
                return existing
            self._entries[key] = (value, self._expiry())
            return value

    def get_or_create(self, key: K, factory: Callable[[], V]) -> V:
        with self._lock:
            existing = self.get(key)
            if existing is not None:
                return existing
            return self.put(key, factory())

    def evict(self, key: K) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self) -> int:
        """Drop expired entries and return how many were removed."""
        with self._lock:
            expired = [key for key, (_, exp) in self._entries.items() if not self._is_live(exp)]
            for key in expired:
                del self._entries[key]
            self._last_sweep = self._clock()
        if expired:
            logger.debug("Swept %d expired entries", len(expired))
        return len(expired)

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class BitmapCache(TTLStore[Hashable, Bitmap]):
    """Stage 1 cache: originals by source key, cutouts by (key, "cutout")."""

    def evict_source(self, source_key: str) -> None:
        with self._lock:
            for key in list(self._entries):
                if key == source_key or (isinstance(key, tuple) and key and key[0] == source_key):
                    del self._entries[key]


class AssetStore:
    """
    Holds generated images (AI expansions) by opaque reference.

    Bytes are kept as received; the bitmap is decoded the first time a
    compose pass asks for it. Expired payloads are swept on later writes.
    """

    def __init__(
        self,
        ttl_seconds: float | None = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._payloads: TTLStore[str, Tuple[bytes, str]] = TTLStore(ttl_seconds, clock)
        self._bitmaps: TTLStore[str, Bitmap] = TTLStore(ttl_seconds, clock)

    def add(self, data: bytes, mime_type: str = "image/png") -> str:
        asset_id = uuid4().hex
        self._payloads.put(asset_id, (data, mime_type))
        return asset_id

    def get_bytes(self, asset_id: str) -> Tuple[bytes, str] | None:
        return self._payloads.get(asset_id)

    def get_bitmap(self, asset_id: str) -> Bitmap | None:
        payload = self._payloads.get(asset_id)
        if payload is None:
            return None
        return self._bitmaps.get_or_create(asset_id, lambda: decode_bitmap(payload[0]))

    def sweep(self) -> int:
        self._bitmaps.sweep()
        return self._payloads.sweep()

    def __len__(self) -> int:
        return len(self._payloads)


class PreferenceStore:
    """
    JSON-file backed user preferences that survive restarts.

    Only the AI strength is stored today. A missing or corrupt file reads as
    defaults.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict:
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable preferences at %s: %s", self._path, exc)
            return {}

    def _save(self, data: dict) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def get_ai_strength(self) -> float:
        with self._lock:
            value = self._load().get("ai_strength", DEFAULT_AI_STRENGTH)
        try:
            return float(value)
        except (TypeError, ValueError):
            return DEFAULT_AI_STRENGTH

    def set_ai_strength(self, strength: float) -> float:
        strength = min(1.0, max(0.1, float(strength)))
        with self._lock:
            data = self._load()
            data["ai_strength"] = strength
            self._save(data)
        logger.info("Persisted AI strength preference: %.2f", strength)
        return strength


_default_bitmap_cache: Optional[BitmapCache] = None
_default_asset_store: Optional[AssetStore] = None
_default_preferences: Optional[PreferenceStore] = None


def get_bitmap_cache() -> BitmapCache:
    """Process-wide bitmap cache used by the HTTP layer."""
    global _default_bitmap_cache
    if _default_bitmap_cache is None:
        _default_bitmap_cache = BitmapCache(ttl_seconds=get_config().asset_ttl_seconds)
    return _default_bitmap_cache


def get_asset_store() -> AssetStore:
    global _default_asset_store
    if _default_asset_store is None:
        _default_asset_store = AssetStore(ttl_seconds=get_config().asset_ttl_seconds)
    return _default_asset_store


def get_preference_store() -> PreferenceStore:
    global _default_preferences
    if _default_preferences is None:
        _default_preferences = PreferenceStore(get_config().preferences_path)
    return _default_preferences
