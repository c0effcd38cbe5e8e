"""NotificationDispatcher — bounded backlog between the router and a notifier."""

from __future__ import annotations

import asyncio
from collections import deque

import structlog

from netalert.core.types import Dispatch, DispatchRecord
from netalert.monitor.channels import Notifier

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """Delivers dispatches through a notifier without ever blocking callers.

    - ``enqueue`` never waits: when the backlog is full the dispatch is
      dropped with a diagnostic and recorded as failed.
    - A single worker drains the backlog; a notifier that returns False or
      raises is recorded in the audit log and the worker moves on.
    - Retries are the notifier's concern.

    Usage::

        dispatcher = NotificationDispatcher(notifier, backlog=1000)
        await dispatcher.start()
        dispatcher.enqueue(dispatch)
        ...
        await dispatcher.close()
    """

    def __init__(
        self,
        notifier: Notifier,
        backlog: int = 1000,
        audit_size: int = 5000,
    ) -> None:
        self._notifier = notifier
        self._queue: asyncio.Queue[Dispatch] = asyncio.Queue(maxsize=backlog)
        self._audit: deque[DispatchRecord] = deque(maxlen=audit_size)
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._sent = 0
        self._failed = 0
        self._dropped = 0

    # ── Properties ────────────────────────────────────────────────

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def audit(self) -> list[DispatchRecord]:
        """Copy of the delivery audit log, oldest first."""
        return list(self._audit)

    def failures_for(self, incident_id: str, level_key: str | None = None) -> list[DispatchRecord]:
        return [
            r for r in self._audit
            if r.incident_id == incident_id
            and not r.success
            and (level_key is None or r.level_key == level_key)
        ]

    def stats(self) -> dict[str, int]:
        return {
            "sent": self._sent,
            "failed": self._failed,
            "dropped": self._dropped,
            "pending": self.pending,
        }

    # ── Enqueue ───────────────────────────────────────────────────

    def enqueue(self, dispatch: Dispatch) -> bool:
        try:
            self._queue.put_nowait(dispatch)
        except asyncio.QueueFull:
            self._dropped += 1
            self._record(dispatch, success=False, error="backlog_full")
            logger.warning(
                "dispatch_dropped",
                incident_id=dispatch.payload.incident_id,
                level=dispatch.payload.level_key,
                channel=dispatch.channel,
                recipient=dispatch.recipient,
                backlog=self._queue.maxsize,
            )
            return False
        return True

    # ── Delivery ──────────────────────────────────────────────────

    async def _deliver(self, dispatch: Dispatch) -> bool:
        payload = dispatch.payload
        error = ""
        try:
            ok = await self._notifier.notify(
                dispatch.channel, dispatch.recipient, payload,
            )
        except Exception as exc:
            ok = False
            error = f"{type(exc).__name__}: {exc}"
            logger.exception(
                "dispatch_error",
                incident_id=payload.incident_id,
                channel=dispatch.channel,
            )
        if ok:
            self._sent += 1
        else:
            self._failed += 1
            error = error or "notifier_reported_failure"
            logger.warning(
                "dispatch_failed",
                incident_id=payload.incident_id,
                level=payload.level_key,
                channel=dispatch.channel,
                recipient=dispatch.recipient,
            )
        self._record(dispatch, success=ok, error=error)
        return ok

    def _record(self, dispatch: Dispatch, success: bool, error: str = "") -> None:
        self._audit.append(DispatchRecord(
            incident_id=dispatch.payload.incident_id,
            level_key=dispatch.payload.level_key,
            channel=dispatch.channel,
            recipient=dispatch.recipient,
            success=success,
            error=error,
        ))

    async def flush(self) -> int:
        """Deliver everything currently queued, inline.  Returns the count."""
        delivered = 0
        while True:
            try:
                dispatch = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return delivered
            try:
                await self._deliver(dispatch)
                delivered += 1
            finally:
                self._queue.task_done()

    # ── Lifecycle ─────────────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def close(self) -> None:
        """Stop the worker, deliver what is left, and close the notifier."""
        await self.stop()
        await self.flush()
        try:
            await self._notifier.close()
        except Exception:
            logger.exception("notifier_close_error")

    async def _loop(self) -> None:
        while self._running:
            try:
                dispatch = await self._queue.get()
            except asyncio.CancelledError:
                return
            try:
                await self._deliver(dispatch)
            except asyncio.CancelledError:
                return
            finally:
                self._queue.task_done()
