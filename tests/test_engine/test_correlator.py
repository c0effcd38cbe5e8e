"""Tests for Correlator — merging, service correlation, aging and clearing."""

from __future__ import annotations

import pytest

from netalert.core.exceptions import IncidentNotFoundError, InvalidTransitionError
from netalert.core.types import (
    AlertEvent,
    BusinessService,
    EscalationStatus,
    Severity,
)
from netalert.engine.correlator import Correlator
from netalert.engine.impact import BusinessImpactResolver

WINDOW = 3600.0


def _event(
    device: str = "192.168.1.1",
    metric: str = "bandwidth_utilization",
    sev: Severity = Severity.CRITICAL,
    ts: float = 0.0,
) -> AlertEvent:
    return AlertEvent(device_id=device, metric=metric, value=90.0, severity=sev, timestamp=ts)


def _correlator(window: float = WINDOW) -> Correlator:
    resolver = BusinessImpactResolver([
        BusinessService(
            name="Core Network", priority=1, devices=("192.168.1.1", "192.168.1.2"),
        ),
        BusinessService(name="Email", priority=2, devices=("192.168.1.10",)),
    ])
    return Correlator(resolver, window_secs=window)


# ── Creation & merging ──────────────────────────────────────────


class TestCorrelate:
    def test_first_event_creates_incident(self) -> None:
        c = _correlator()
        result = c.correlate(_event())
        assert result.created is True
        inc = result.incident
        assert inc.severity == Severity.CRITICAL
        assert inc.first_seen == 0.0
        assert inc.services == ["Core Network"]
        assert len(c.open_incidents) == 1

    def test_same_key_merges(self) -> None:
        c = _correlator()
        first = c.correlate(_event(ts=0)).incident
        result = c.correlate(_event(ts=400))
        assert result.created is False
        assert result.incident is first
        assert len(first.members) == 1
        assert first.last_seen == 400

    def test_same_key_keeps_higher_severity(self) -> None:
        c = _correlator()
        inc = c.correlate(_event(sev=Severity.CRITICAL, ts=0)).incident
        c.correlate(_event(sev=Severity.WARNING, ts=400))
        assert inc.severity == Severity.CRITICAL
        member = next(iter(inc.members.values()))
        assert member.severity == Severity.CRITICAL

    def test_severity_raised_flag(self) -> None:
        c = _correlator()
        c.correlate(_event(sev=Severity.WARNING, ts=0))
        result = c.correlate(_event(metric="cpu_utilization", sev=Severity.CRITICAL, ts=5))
        assert result.severity_raised is True
        assert result.previous_severity == Severity.WARNING
        assert result.incident.severity == Severity.CRITICAL

    def test_same_device_other_metric_merges(self) -> None:
        c = _correlator()
        inc = c.correlate(_event(metric="bandwidth_utilization")).incident
        result = c.correlate(_event(metric="interface_errors", ts=30))
        assert result.incident is inc
        assert len(inc.members) == 2

    def test_shared_service_merges(self) -> None:
        c = _correlator()
        inc = c.correlate(_event("192.168.1.1", ts=0)).incident
        result = c.correlate(_event("192.168.1.2", ts=60))
        assert result.created is False
        assert result.incident is inc
        assert inc.devices == ["192.168.1.1", "192.168.1.2"]
        assert "Core Network" in inc.services

    def test_unrelated_device_creates_new_incident(self) -> None:
        c = _correlator()
        c.correlate(_event("192.168.1.1"))
        result = c.correlate(_event("192.168.1.10", ts=5))
        assert result.created is True
        assert result.incident.services == ["Email"]
        assert len(c.open_incidents) == 2

    def test_device_without_services_isolated(self) -> None:
        c = _correlator()
        result = c.correlate(_event("172.16.0.9"))
        assert result.incident.services == []
        other = c.correlate(_event("172.16.0.10", ts=1))
        assert other.created is True

    def test_shared_service_outside_window_not_merged(self) -> None:
        c = _correlator(window=600)
        c.correlate(_event("192.168.1.1", ts=0))
        result = c.correlate(_event("192.168.1.2", ts=700))
        assert result.created is True

    def test_members_preserve_insertion_order(self) -> None:
        c = _correlator()
        inc = c.correlate(_event("192.168.1.2", ts=0)).incident
        c.correlate(_event("192.168.1.1", ts=1))
        c.correlate(_event("192.168.1.2", ts=2))
        assert [e.device_id for e in inc.events] == ["192.168.1.2", "192.168.1.1"]

    def test_severity_is_max_of_members_after_every_merge(self) -> None:
        c = _correlator()
        sequence = [
            ("192.168.1.1", Severity.WARNING),
            ("192.168.1.2", Severity.CRITICAL),
            ("192.168.1.1", Severity.WARNING),
        ]
        inc = None
        for i, (device, sev) in enumerate(sequence):
            inc = c.correlate(_event(device, sev=sev, ts=i)).incident
            assert inc.severity == max(m.severity for m in inc.members.values() if m.live)
        assert inc is not None
        assert inc.severity == Severity.CRITICAL


class TestRefresh:
    def test_refresh_extends_last_seen(self) -> None:
        c = _correlator()
        inc = c.correlate(_event(ts=0)).incident
        refreshed = c.refresh(_event(ts=10))
        assert refreshed is inc
        assert inc.last_seen == 10
        assert len(inc.members) == 1

    def test_refresh_without_incident(self) -> None:
        assert _correlator().refresh(_event()) is None


# ── Aging ───────────────────────────────────────────────────────


class TestSweep:
    def test_warning_incident_ages_out(self) -> None:
        c = _correlator()
        inc = c.correlate(_event(sev=Severity.WARNING, ts=0)).incident
        assert c.sweep(now=WINDOW) == []
        closed = c.sweep(now=WINDOW + 1)
        assert closed == [inc]
        assert inc.closed is True
        assert inc.close_reason == "aged_out"
        assert inc.escalation.status == EscalationStatus.CLOSED
        assert c.open_incidents == []

    def test_refresh_postpones_aging(self) -> None:
        c = _correlator()
        c.correlate(_event(sev=Severity.WARNING, ts=0))
        c.refresh(_event(sev=Severity.WARNING, ts=3000))
        assert c.sweep(now=WINDOW + 1) == []

    def test_critical_unacknowledged_stays_open(self) -> None:
        c = _correlator()
        inc = c.correlate(_event(sev=Severity.CRITICAL, ts=0)).incident
        inc.escalation.status = EscalationStatus.NOTIFIED
        assert c.sweep(now=WINDOW * 3) == []
        assert inc.closed is False

    def test_critical_acknowledged_ages_out(self) -> None:
        c = _correlator()
        inc = c.correlate(_event(sev=Severity.CRITICAL, ts=0)).incident
        inc.acknowledged = True
        assert c.sweep(now=WINDOW + 1) == [inc]

    def test_critical_exhausted_ages_out(self) -> None:
        c = _correlator()
        inc = c.correlate(_event(sev=Severity.CRITICAL, ts=0)).incident
        inc.escalation.status = EscalationStatus.EXHAUSTED
        assert c.sweep(now=WINDOW + 1) == [inc]

    def test_stale_member_drops_out_of_severity(self) -> None:
        c = _correlator()
        inc = c.correlate(_event("192.168.1.1", sev=Severity.CRITICAL, ts=0)).incident
        c.correlate(_event("192.168.1.2", sev=Severity.WARNING, ts=3000))
        c.sweep(now=WINDOW + 100)
        assert inc.closed is False
        assert inc.severity == Severity.WARNING
        stale = inc.members[_event("192.168.1.1").key]
        assert stale.live is False

    def test_closed_incident_never_reopens(self) -> None:
        c = _correlator()
        old = c.correlate(_event(sev=Severity.WARNING, ts=0)).incident
        c.sweep(now=WINDOW + 1)
        result = c.correlate(_event(sev=Severity.WARNING, ts=WINDOW + 2))
        assert result.created is True
        assert result.incident.id != old.id
        assert old.closed is True
        assert c.get(old.id) is old


class TestClear:
    def test_clear_requires_acknowledgement(self) -> None:
        c = _correlator()
        inc = c.correlate(_event()).incident
        with pytest.raises(InvalidTransitionError):
            c.clear(inc.id, now=10)

    def test_clear_closes(self) -> None:
        c = _correlator()
        inc = c.correlate(_event()).incident
        inc.acknowledged = True
        c.clear(inc.id, now=10)
        assert inc.closed is True
        assert inc.close_reason == "cleared"
        assert c.find_open(_event().key) is None

    def test_clear_twice_rejected(self) -> None:
        c = _correlator()
        inc = c.correlate(_event()).incident
        inc.acknowledged = True
        c.clear(inc.id, now=10)
        with pytest.raises(InvalidTransitionError):
            c.clear(inc.id, now=11)

    def test_unknown_incident(self) -> None:
        with pytest.raises(IncidentNotFoundError):
            _correlator().get("nope")


class TestRestore:
    def test_restore_reindexes(self) -> None:
        c = _correlator()
        inc = c.correlate(_event(ts=0)).incident
        fresh = _correlator()
        assert fresh.restore([inc.model_copy(deep=True)]) == 1
        result = fresh.correlate(_event(ts=10))
        assert result.created is False
        assert result.incident.id == inc.id
