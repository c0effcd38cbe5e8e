"""Deduplicator — suppresses repeated alert events inside a rolling window."""

from __future__ import annotations

import structlog

from netalert.core.types import Admission, AlertEvent

logger = structlog.get_logger(__name__)


class Deduplicator:
    """Tracks the last admitted event time per identity key.

    An event is SUPPRESSED when an event with the same key was admitted
    less than ``window_secs`` ago, whatever its severity.  Otherwise it is
    NOVEL and becomes the key's last admission.
    """

    def __init__(self, window_secs: float = 300.0) -> None:
        self._window_secs = window_secs
        self._last_admitted: dict[str, float] = {}
        self._suppressed = 0

    @property
    def window_secs(self) -> float:
        return self._window_secs

    @property
    def suppressed_count(self) -> int:
        return self._suppressed

    def admit(self, event: AlertEvent) -> Admission:
        last_ts = self._last_admitted.get(event.key)
        if last_ts is not None and event.timestamp - last_ts < self._window_secs:
            self._suppressed += 1
            logger.debug(
                "event_suppressed",
                device_id=event.device_id,
                metric=event.metric,
                severity=event.severity.label,
                age_secs=event.timestamp - last_ts,
            )
            return Admission.SUPPRESSED

        self._last_admitted[event.key] = event.timestamp
        return Admission.NOVEL

    def forget(self, key: str) -> None:
        """Drop the admission record for *key* (e.g. after its incident closed)."""
        self._last_admitted.pop(key, None)

    def prune(self, now: float) -> int:
        """Evict keys whose last admission is outside the window."""
        stale = [
            key for key, ts in self._last_admitted.items()
            if now - ts >= self._window_secs
        ]
        for key in stale:
            del self._last_admitted[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._last_admitted)
