"""Tests for IncidentStore — JSON persistence of open incidents."""

from __future__ import annotations

from pathlib import Path

import pytest

from netalert.core.exceptions import StoreError
from netalert.core.types import (
    AlertEvent,
    EscalationStatus,
    Incident,
    IncidentMember,
    Severity,
)
from netalert.engine.store import IncidentStore


def _incident() -> Incident:
    ev = AlertEvent(
        device_id="192.168.1.1", metric="cpu_utilization", value=97.0,
        severity=Severity.CRITICAL, timestamp=10.0,
    )
    inc = Incident(severity=Severity.CRITICAL, first_seen=10, last_seen=10)
    inc.members[ev.key] = IncidentMember(
        event=ev, severity=ev.severity, first_seen=10, last_seen=10,
    )
    inc.escalation.status = EscalationStatus.NOTIFIED
    inc.escalation.chain_severity = Severity.CRITICAL
    inc.escalation.level = 1
    inc.escalation.level_started_at = 910
    inc.notified_levels = ["critical:0", "critical:1"]
    return inc


class TestIncidentStore:
    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert IncidentStore(tmp_path / "state.json").load() == []

    def test_round_trip(self, tmp_path: Path) -> None:
        store = IncidentStore(tmp_path / "state.json")
        inc = _incident()
        assert store.save([inc]) == 1
        loaded = store.load()
        assert loaded == [inc]
        assert loaded[0].escalation.level_key == "critical:1"

    def test_creates_parent_dir(self, tmp_path: Path) -> None:
        store = IncidentStore(tmp_path / "nested" / "state.json")
        store.save([])
        assert store.path.exists()
        assert store.load() == []

    def test_no_temp_files_left(self, tmp_path: Path) -> None:
        store = IncidentStore(tmp_path / "state.json")
        store.save([_incident()])
        store.save([_incident()])
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_corrupt_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text("{not json")
        with pytest.raises(StoreError):
            IncidentStore(path).load()

    def test_empty_file_is_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text("")
        assert IncidentStore(path).load() == []
