"""Tests for Deduplicator — window suppression, severity changes, pruning."""

from __future__ import annotations

from netalert.core.types import Admission, AlertEvent, Severity
from netalert.engine.dedup import Deduplicator


def _event(
    ts: float,
    sev: Severity = Severity.CRITICAL,
    device: str = "192.168.1.1",
    metric: str = "bandwidth_utilization",
) -> AlertEvent:
    return AlertEvent(
        device_id=device, metric=metric, value=90.0, severity=sev, timestamp=ts,
    )


class TestAdmission:
    def test_first_event_novel(self) -> None:
        assert Deduplicator(300).admit(_event(0)) == Admission.NOVEL

    def test_repeat_within_window_suppressed(self) -> None:
        d = Deduplicator(300)
        d.admit(_event(0))
        assert d.admit(_event(10)) == Admission.SUPPRESSED
        assert d.admit(_event(299)) == Admission.SUPPRESSED
        assert d.suppressed_count == 2

    def test_window_measured_from_last_admission(self) -> None:
        d = Deduplicator(300)
        d.admit(_event(0))
        d.admit(_event(200))  # suppressed, does not move the window
        assert d.admit(_event(300)) == Admission.NOVEL
        assert d.admit(_event(400)) == Admission.SUPPRESSED

    def test_different_keys_independent(self) -> None:
        d = Deduplicator(300)
        d.admit(_event(0))
        assert d.admit(_event(1, device="192.168.1.2")) == Admission.NOVEL
        assert d.admit(_event(2, metric="cpu_utilization")) == Admission.NOVEL

    def test_only_first_of_burst_is_novel(self) -> None:
        d = Deduplicator(300)
        results = [d.admit(_event(t)) for t in range(0, 250, 10)]
        assert results[0] == Admission.NOVEL
        assert all(r == Admission.SUPPRESSED for r in results[1:])


class TestSeverityChanges:
    def test_higher_severity_within_window_suppressed(self) -> None:
        d = Deduplicator(300)
        assert d.admit(_event(0, Severity.WARNING)) == Admission.NOVEL
        assert d.admit(_event(10, Severity.CRITICAL)) == Admission.SUPPRESSED

    def test_lower_severity_within_window_suppressed(self) -> None:
        d = Deduplicator(300)
        d.admit(_event(0, Severity.CRITICAL))
        assert d.admit(_event(5, Severity.WARNING)) == Admission.SUPPRESSED

    def test_higher_severity_after_window_novel(self) -> None:
        d = Deduplicator(300)
        d.admit(_event(0, Severity.WARNING))
        assert d.admit(_event(300, Severity.CRITICAL)) == Admission.NOVEL


class TestMaintenance:
    def test_prune_evicts_expired(self) -> None:
        d = Deduplicator(300)
        d.admit(_event(0))
        d.admit(_event(250, device="other"))
        assert d.prune(now=400) == 1
        assert len(d) == 1

    def test_forget(self) -> None:
        d = Deduplicator(300)
        ev = _event(0)
        d.admit(ev)
        d.forget(ev.key)
        assert d.admit(_event(1)) == Admission.NOVEL
