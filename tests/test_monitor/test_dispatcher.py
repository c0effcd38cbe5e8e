"""Tests for NotificationDispatcher — backlog, failure audit, worker lifecycle."""

from __future__ import annotations

import asyncio

from netalert.core.types import Dispatch, NotificationPayload, Severity
from netalert.monitor.channels import Notifier
from netalert.monitor.dispatcher import NotificationDispatcher


# ── Helpers ─────────────────────────────────────────────────────


class FakeNotifier(Notifier):
    """In-memory notifier for testing."""

    def __init__(self, result: bool = True, raises: bool = False) -> None:
        self.sent: list[Dispatch] = []
        self._result = result
        self._raises = raises
        self.closed = False

    async def notify(
        self, channel: str, recipient: str, payload: NotificationPayload,
    ) -> bool:
        if self._raises:
            raise ConnectionError("fake error")
        self.sent.append(Dispatch(channel=channel, recipient=recipient, payload=payload))
        return self._result

    async def close(self) -> None:
        self.closed = True


def _dispatch(recipient: str = "#noc", incident_id: str = "inc1", level: str = "critical:0") -> Dispatch:
    payload = NotificationPayload(
        severity=Severity.CRITICAL,
        title="CRITICAL incident on r1",
        incident_id=incident_id,
        level_key=level,
    )
    return Dispatch(channel="slack", recipient=recipient, payload=payload)


# ── Backlog ─────────────────────────────────────────────────────


class TestBacklog:
    async def test_enqueue_and_flush(self) -> None:
        n = FakeNotifier()
        d = NotificationDispatcher(n)
        assert d.enqueue(_dispatch("#a")) is True
        assert d.enqueue(_dispatch("#b")) is True
        assert d.pending == 2
        assert await d.flush() == 2
        assert [x.recipient for x in n.sent] == ["#a", "#b"]
        assert d.stats() == {"sent": 2, "failed": 0, "dropped": 0, "pending": 0}

    async def test_full_backlog_drops(self) -> None:
        d = NotificationDispatcher(FakeNotifier(), backlog=1)
        assert d.enqueue(_dispatch("#a")) is True
        assert d.enqueue(_dispatch("#b")) is False
        assert d.stats()["dropped"] == 1
        [record] = d.audit
        assert record.recipient == "#b"
        assert record.success is False
        assert record.error == "backlog_full"


# ── Failures ────────────────────────────────────────────────────


class TestFailures:
    async def test_notifier_false_recorded(self) -> None:
        d = NotificationDispatcher(FakeNotifier(result=False))
        d.enqueue(_dispatch())
        await d.flush()
        [record] = d.failures_for("inc1")
        assert record.error == "notifier_reported_failure"
        assert d.stats()["failed"] == 1

    async def test_notifier_exception_recorded(self) -> None:
        d = NotificationDispatcher(FakeNotifier(raises=True))
        d.enqueue(_dispatch())
        d.enqueue(_dispatch("#other"))
        assert await d.flush() == 2
        failures = d.failures_for("inc1", "critical:0")
        assert len(failures) == 2
        assert failures[0].error.startswith("ConnectionError")

    async def test_failures_filtered_by_level(self) -> None:
        d = NotificationDispatcher(FakeNotifier(result=False))
        d.enqueue(_dispatch(level="critical:0"))
        d.enqueue(_dispatch(level="critical:1"))
        await d.flush()
        assert len(d.failures_for("inc1", "critical:1")) == 1
        assert d.failures_for("other") == []

    async def test_audit_bounded(self) -> None:
        d = NotificationDispatcher(FakeNotifier(), audit_size=3)
        for i in range(5):
            d.enqueue(_dispatch(f"#{i}"))
        await d.flush()
        assert [r.recipient for r in d.audit] == ["#2", "#3", "#4"]


# ── Lifecycle ───────────────────────────────────────────────────


class TestLifecycle:
    async def test_worker_delivers(self) -> None:
        n = FakeNotifier()
        d = NotificationDispatcher(n)
        await d.start()
        d.enqueue(_dispatch())
        for _ in range(20):
            if n.sent:
                break
            await asyncio.sleep(0)
        assert len(n.sent) == 1
        await d.close()
        assert n.closed is True

    async def test_close_flushes_pending(self) -> None:
        n = FakeNotifier()
        d = NotificationDispatcher(n)
        d.enqueue(_dispatch())
        await d.close()
        assert len(n.sent) == 1
        assert n.closed is True
