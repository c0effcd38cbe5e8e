"""ThresholdEvaluator — classifies metric samples against configured bounds."""

from __future__ import annotations

from collections import deque

import structlog

from netalert.core.types import (
    AlertEvent,
    Direction,
    MetricSample,
    Severity,
    Threshold,
    ThresholdKind,
)

logger = structlog.get_logger(__name__)


class SlidingCounter:
    """Per-key event counts over a trailing time window.

    Entries older than the window are evicted lazily when the key is
    next touched; there is no timer per key.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], deque[tuple[float, float]]] = {}

    def add(
        self,
        key: tuple[str, str],
        timestamp: float,
        amount: float,
        window_secs: float,
    ) -> float:
        """Record *amount* at *timestamp* and return the windowed total."""
        entries = self._entries.setdefault(key, deque())
        entries.append((timestamp, amount))
        cutoff = timestamp - window_secs
        while entries and entries[0][0] <= cutoff:
            entries.popleft()
        return sum(amount for _, amount in entries)

    def total(self, key: tuple[str, str]) -> float:
        entries = self._entries.get(key)
        return sum(a for _, a in entries) if entries else 0.0

    def __len__(self) -> int:
        return len(self._entries)


class ThresholdEvaluator:
    """Turns a MetricSample into zero or one AlertEvent.

    Numeric and count metrics compare against warning/critical bounds;
    categorical metrics compare ordinal positions in the configured
    ``levels``.  Samples that cannot be evaluated are dropped with a
    diagnostic and never raise.
    """

    def __init__(self, thresholds: dict[str, Threshold]) -> None:
        self._thresholds = thresholds
        self._counter = SlidingCounter()
        self._dropped = 0

    @property
    def dropped(self) -> int:
        """Number of samples dropped as unknown or malformed."""
        return self._dropped

    def evaluate(self, sample: MetricSample) -> AlertEvent | None:
        threshold = self._thresholds.get(sample.metric)
        if threshold is None:
            self._drop(sample, "unknown_metric")
            return None

        observed: float | str = sample.value
        if threshold.kind == ThresholdKind.CATEGORICAL:
            severity = self._classify_categorical(sample, threshold)
        else:
            value = _as_number(sample.value)
            if value is None:
                self._drop(sample, "non_numeric_value")
                return None
            if threshold.kind == ThresholdKind.COUNT:
                if value < 0:
                    self._drop(sample, "negative_count")
                    return None
                # Count metrics alert on the windowed total, not the increment.
                value = self._counter.add(
                    (sample.device_id, sample.metric),
                    sample.timestamp,
                    value,
                    threshold.window_secs or 0.0,
                )
                observed = value
            severity = _classify_numeric(value, threshold)

        if severity is None:
            return None
        return AlertEvent(
            device_id=sample.device_id,
            metric=sample.metric,
            value=observed,
            severity=severity,
            timestamp=sample.timestamp,
        )

    def _classify_categorical(
        self, sample: MetricSample, threshold: Threshold,
    ) -> Severity | None:
        state = str(sample.value).strip().lower()
        levels = [lvl.lower() for lvl in threshold.levels]
        if state not in levels:
            self._drop(sample, "unknown_state")
            return None
        rank = levels.index(state)
        if rank >= levels.index(str(threshold.critical).lower()):
            return Severity.CRITICAL
        if rank >= levels.index(str(threshold.warning).lower()):
            return Severity.WARNING
        return None

    def _drop(self, sample: MetricSample, reason: str) -> None:
        self._dropped += 1
        logger.warning(
            "sample_dropped",
            reason=reason,
            device_id=sample.device_id,
            metric=sample.metric,
            value=sample.value,
        )


def _as_number(value: float | str) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _classify_numeric(value: float, threshold: Threshold) -> Severity | None:
    critical = float(threshold.critical)
    warning = float(threshold.warning)
    if threshold.direction == Direction.BELOW:
        if value <= critical:
            return Severity.CRITICAL
        if value <= warning:
            return Severity.WARNING
        return None
    if value >= critical:
        return Severity.CRITICAL
    if value >= warning:
        return Severity.WARNING
    return None
