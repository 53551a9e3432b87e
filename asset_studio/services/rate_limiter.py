"""
In-memory rate limiter for the provider proxy endpoints.

Fixed window per client identifier:
- The first request from an identifier opens a window of `window_seconds`
- Up to `max_requests` requests pass inside that window
- Later requests are rejected until the window resets
- Expired windows are dropped by `sweep()`
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from fastapi import HTTPException, Request

from asset_studio.config import get_config


logger = logging.getLogger(__name__)

# Seconds between automatic sweeps triggered from check().
SWEEP_INTERVAL_SECONDS = 600.0


@dataclass(slots=True, frozen=True)
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    # Wall-clock time (epoch seconds) when the window resets.
    reset: float


@dataclass(slots=True)
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """
    Thread-safe fixed-window rate limiter.

    Identifiers are usually client IPs (see `get_client_ip`).
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize rate limiter.

        Args:
            max_requests: Requests allowed per identifier per window
            window_seconds: Window length in seconds
            clock: Time source returning epoch seconds
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._last_sweep = clock()
        self.rejected_total = 0

        self.lock = threading.RLock()

        logger.info(
            f"Rate limiter initialized: {max_requests} requests per {window_seconds:.0f}s"
        )

    def check(self, identifier: str) -> RateLimitResult:
        """
        Count one request for `identifier` and report whether it may proceed.
        """
        with self.lock:
            now = self._clock()
            if now - self._last_sweep >= SWEEP_INTERVAL_SECONDS:
                self.sweep()

            window = self._windows.get(identifier)
            if window is None or now > window.reset_at:
                window = _Window(count=1, reset_at=now + self.window_seconds)
                self._windows[identifier] = window
                return RateLimitResult(
                    success=True,
                    limit=self.max_requests,
                    remaining=self.max_requests - 1,
                    reset=window.reset_at,
                )

            window.count += 1
            if window.count > self.max_requests:
                self.rejected_total += 1
                logger.warning(
                    f"Rate limit exceeded for {identifier} "
                    f"({window.count}/{self.max_requests}, resets in {window.reset_at - now:.1f}s)"
                )
                return RateLimitResult(
                    success=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset=window.reset_at,
                )

            return RateLimitResult(
                success=True,
                limit=self.max_requests,
                remaining=self.max_requests - window.count,
                reset=window.reset_at,
            )

    def sweep(self) -> int:
        """Remove expired windows. Returns how many were removed."""
        with self.lock:
            now = self._clock()
            expired = [key for key, window in self._windows.items() if now > window.reset_at]
            for key in expired:
                del self._windows[key]
            self._last_sweep = now
        if expired:
            logger.debug(f"Rate limiter swept {len(expired)} expired windows")
        return len(expired)

    def retry_after(self, result: RateLimitResult) -> int:
        """Whole seconds until `result`'s window resets (at least 1)."""
        return max(1, math.ceil(result.reset - self._clock()))

    def get_stats(self) -> dict:
        """
        Get current rate limiter statistics.

        Returns:
            Dictionary with current state
        """
        with self.lock:
            now = self._clock()
            active = sum(1 for window in self._windows.values() if now <= window.reset_at)
            return {
                "max_requests": self.max_requests,
                "window_seconds": self.window_seconds,
                "tracked_clients": len(self._windows),
                "active_windows": active,
                "rejected_total": self.rejected_total,
                "last_sweep": datetime.fromtimestamp(self._last_sweep).isoformat(),
            }


def get_client_ip(request: Request) -> str:
    """
    Best-effort client identifier.

    First hop of X-Forwarded-For, then X-Real-IP, then the socket peer.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


# Global rate limiter instance
_rate_limiter: Optional[RateLimiter] = None
_rate_limiter_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    """Get or create the global rate limiter from configuration."""
    global _rate_limiter

    if _rate_limiter is None:
        with _rate_limiter_lock:
            if _rate_limiter is None:
                config = get_config()
                _rate_limiter = RateLimiter(
                    max_requests=config.rate_limit_max_requests,
                    window_seconds=config.rate_limit_window_seconds,
                )

    return _rate_limiter


def reset_rate_limiter() -> None:
    global _rate_limiter
    with _rate_limiter_lock:
        _rate_limiter = None


def enforce_rate_limit(request: Request) -> RateLimitResult:
    """
    FastAPI dependency for rate-limited routes.

    Raises HTTP 429 with Retry-After once the client's window is used up.
    """
    limiter = get_rate_limiter()
    result = limiter.check(get_client_ip(request))
    if not result.success:
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please try again later.",
            headers={
                "Retry-After": str(limiter.retry_after(result)),
                "X-RateLimit-Limit": str(result.limit),
                "X-RateLimit-Remaining": "0",
            },
        )
    return result
