from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List


logger = logging.getLogger(__name__)

# Backend phase key prefixes and the percent band each one occupies.
_PHASE_BANDS = {
    "fetch": ("download-model", "Downloading background removal model", 0, 50),
    "compute": ("compute-mask", "Removing background", 50, 99),
}


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    phase: str
    percent: int
    message: str


ProgressListener = Callable[[ProgressEvent], None]
BackendProgress = Callable[[str, int, int], None]


class ProgressChannel:
    """
    Multi-subscriber progress channel.

    Listeners receive `ProgressEvent`s in publish order. A failing listener is
    logged and detached so it cannot break the operation reporting progress.
    """

    def __init__(self) -> None:
        self._listeners: List[ProgressListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a listener and return a function that removes it again."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: ProgressEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Progress listener failed and was removed: %s", exc)
                with self._lock:
                    if listener in self._listeners:
                        self._listeners.remove(listener)

    def backend_callback(self) -> BackendProgress:
        """
        Adapt `(phase_key, current, total)` backend callbacks into events.

        Download phases map onto 0-50%, compute phases onto 50-99%. Unknown
        phase keys are reported under their own name in the compute band.
        """

        def report(phase_key: str, current: int, total: int) -> None:
            prefix = phase_key.split(":", 1)[0]
            phase, message, low, high = _PHASE_BANDS.get(
                prefix, (phase_key, phase_key, 50, 99)
            )
            fraction = current / total if total > 0 else 0.0
            fraction = min(max(fraction, 0.0), 1.0)
            percent = min(99, int(low + (high - low) * fraction))
            self.publish(ProgressEvent(phase=phase, percent=percent, message=message))

        return report
