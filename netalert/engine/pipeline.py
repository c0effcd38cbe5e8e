"""AlertEngine — wires evaluation, dedup, correlation, escalation and routing."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from types import TracebackType

import structlog

from netalert.core.config import Settings, get_settings
from netalert.core.types import (
    Admission,
    AlertEvent,
    Incident,
    MetricSample,
    identity_key,
)
from netalert.engine.correlator import Correlator
from netalert.engine.dedup import Deduplicator
from netalert.engine.escalation import EscalationManager
from netalert.engine.impact import BusinessImpactResolver
from netalert.engine.router import NotificationRouter
from netalert.engine.store import IncidentStore
from netalert.engine.thresholds import ThresholdEvaluator
from netalert.monitor.channels import Notifier
from netalert.monitor.dispatcher import NotificationDispatcher
from netalert.monitor.factory import create_notifier

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]


@dataclass
class SweepReport:
    """What one periodic sweep changed."""

    closed: list[str] = field(default_factory=list)
    escalated: list[str] = field(default_factory=list)
    exhausted: list[str] = field(default_factory=list)
    pruned_keys: int = 0


class AlertEngine:
    """Turns metric samples into correlated, escalated notifications.

    Samples are sharded by (device, metric) identity onto bounded queues,
    so each key is processed in arrival order while different keys run
    concurrently.  Every incident mutation (merge, acknowledge, clear,
    sweep) happens behind one lock.  Notifications leave through a
    bounded dispatcher backlog and never stall ingestion.

    Usage::

        engine = AlertEngine(settings, notifier=my_notifier)
        async with engine:
            engine.submit_sample(sample)
            ...
            await engine.acknowledge(incident_id, "alice")
    """

    def __init__(
        self,
        settings: Settings | None = None,
        notifier: Notifier | None = None,
        store: IncidentStore | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._settings = settings or get_settings()
        cfg = self._settings.engine
        self._clock = clock

        self._evaluator = ThresholdEvaluator(self._settings.threshold_table())
        self._dedup = Deduplicator(cfg.deduplication_window_secs)
        self._resolver = BusinessImpactResolver(self._settings.business_services)
        self._correlator = Correlator(self._resolver, cfg.correlation_window_secs)
        self._escalation = EscalationManager(self._settings.escalation_chains())
        self._router = NotificationRouter(
            self._settings.notifications, self._escalation, self._resolver,
        )
        self._dispatcher = NotificationDispatcher(
            notifier or create_notifier(self._settings.notifications),
            backlog=cfg.dispatch_backlog,
        )
        if store is None and cfg.state_path:
            store = IncidentStore(cfg.state_path)
        self._store = store

        self._queues: list[asyncio.Queue[MetricSample]] = [
            asyncio.Queue(maxsize=cfg.queue_size) for _ in range(cfg.workers)
        ]
        self._lock = asyncio.Lock()
        self._workers: list[asyncio.Task[None]] = []
        self._sweep_task: asyncio.Task[None] | None = None
        self._running = False
        self._dirty = False

        self._samples_received = 0
        self._samples_rejected = 0
        self._events_novel = 0
        self._events_suppressed = 0

    # ── Properties ────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    @property
    def correlator(self) -> Correlator:
        return self._correlator

    @property
    def escalation(self) -> EscalationManager:
        return self._escalation

    # ── Inbound ───────────────────────────────────────────────────

    def submit_sample(self, sample: MetricSample) -> bool:
        """Enqueue a sample without waiting.  False if the shard is full."""
        key = identity_key(sample.device_id, sample.metric)
        queue = self._queues[int(key, 16) % len(self._queues)]
        try:
            queue.put_nowait(sample)
        except asyncio.QueueFull:
            self._samples_rejected += 1
            logger.warning(
                "sample_dropped",
                reason="queue_full",
                device_id=sample.device_id,
                metric=sample.metric,
            )
            return False
        self._samples_received += 1
        return True

    async def process_sample(self, sample: MetricSample) -> Incident | None:
        """Run one sample through the whole pipeline.

        Returns the incident it created, merged into or refreshed.
        """
        event = self._evaluator.evaluate(sample)
        if event is None:
            return None
        admission = self._dedup.admit(event)
        async with self._lock:
            return self._handle_event(event, admission)

    def _handle_event(self, event: AlertEvent, admission: Admission) -> Incident | None:
        self._dirty = True
        if admission == Admission.SUPPRESSED:
            self._events_suppressed += 1
            return self._correlator.refresh(event)

        self._events_novel += 1
        result = self._correlator.correlate(event)
        incident = result.incident
        if result.created or result.severity_raised:
            if self._escalation.start(incident, event.timestamp):
                self._route(incident, event.timestamp)
        return incident

    async def acknowledge(self, incident_id: str, actor: str) -> Incident:
        """Stop escalation for an incident.  Raises IncidentNotFoundError."""
        async with self._lock:
            incident = self._correlator.get(incident_id)
            self._escalation.acknowledge(incident, actor, self._clock())
            self._dirty = True
            snapshot = incident.model_copy(deep=True)
        await self._persist()
        return snapshot

    async def clear(self, incident_id: str, actor: str) -> Incident:
        """Close an acknowledged incident by hand."""
        async with self._lock:
            incident = self._correlator.clear(incident_id, self._clock())
            self._forget(incident)
            self._dirty = True
            snapshot = incident.model_copy(deep=True)
        logger.info("incident_cleared", incident_id=incident_id, actor=actor)
        await self._persist()
        return snapshot

    # ── Sweep ─────────────────────────────────────────────────────

    async def sweep(self, now: float | None = None) -> SweepReport:
        """Advance escalation timers and age out quiet incidents."""
        now = self._clock() if now is None else now
        report = SweepReport()
        async with self._lock:
            for incident in self._correlator.open_incidents:
                result = self._escalation.tick(incident, now)
                if result.notify:
                    report.escalated.append(incident.id)
                    self._route(incident, now)
                if result.exhausted:
                    report.exhausted.append(incident.id)

            for incident in self._correlator.sweep(now):
                self._forget(incident)
                report.closed.append(incident.id)

            report.pruned_keys = self._dedup.prune(now)
            if report.closed or report.escalated or report.exhausted:
                self._dirty = True
        await self._persist()
        return report

    def _route(self, incident: Incident, now: float) -> None:
        for dispatch in self._router.route(incident, now):
            self._dispatcher.enqueue(dispatch)

    def _forget(self, incident: Incident) -> None:
        for key in incident.members:
            self._dedup.forget(key)

    # ── Reads ─────────────────────────────────────────────────────

    def snapshot(self, include_closed: bool = False) -> list[Incident]:
        """Copies of incidents for reporting; safe to read without the lock."""
        incidents = self._correlator.open_incidents
        if include_closed:
            incidents += self._correlator.closed_incidents
        return [inc.model_copy(deep=True) for inc in incidents]

    def get_incident(self, incident_id: str) -> Incident:
        return self._correlator.get(incident_id).model_copy(deep=True)

    def stats(self) -> dict[str, object]:
        return {
            "running": self._running,
            "samples_received": self._samples_received,
            "samples_rejected": self._samples_rejected,
            "samples_dropped": self._evaluator.dropped,
            "events_novel": self._events_novel,
            "events_suppressed": self._events_suppressed,
            "open_incidents": len(self._correlator.open_incidents),
            "queued_samples": sum(q.qsize() for q in self._queues),
            "dispatch": self._dispatcher.stats(),
        }

    # ── Persistence ───────────────────────────────────────────────

    async def _persist(self) -> None:
        if self._store is None or not self._dirty:
            return
        async with self._lock:
            incidents = self.snapshot()
            self._dirty = False
        try:
            await asyncio.to_thread(self._store.save, incidents)
        except Exception:
            self._dirty = True
            logger.exception("incident_store_save_error")

    async def restore(self) -> int:
        """Load persisted incidents and re-derive their escalation state."""
        if self._store is None:
            return 0
        incidents = await asyncio.to_thread(self._store.load)
        async with self._lock:
            count = self._correlator.restore(incidents)
        logger.info("incidents_restored", count=count)
        await self.sweep()
        return count

    # ── Lifecycle ─────────────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        await self.restore()
        self._running = True
        await self._dispatcher.start()
        self._workers = [
            asyncio.create_task(self._worker(queue)) for queue in self._queues
        ]
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "engine_started",
            workers=len(self._queues),
            thresholds=len(self._settings.thresholds),
            services=len(self._resolver.services),
        )

    async def drain(self) -> None:
        """Wait until every queued sample has been processed."""
        for queue in self._queues:
            await queue.join()

    async def stop(self) -> None:
        self._running = False
        tasks = [*self._workers]
        if self._sweep_task is not None:
            tasks.append(self._sweep_task)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._workers = []
        self._sweep_task = None
        await self._dispatcher.close()
        self._dirty = True
        await self._persist()
        logger.info("engine_stopped", **self.stats())

    async def _worker(self, queue: asyncio.Queue[MetricSample]) -> None:
        while self._running:
            try:
                sample = await queue.get()
            except asyncio.CancelledError:
                return
            try:
                await self.process_sample(sample)
            except asyncio.CancelledError:
                return
            except Exception:
                logger.exception(
                    "sample_processing_error",
                    device_id=sample.device_id,
                    metric=sample.metric,
                )
            finally:
                queue.task_done()

    async def _sweep_loop(self) -> None:
        interval = self._settings.engine.sweep_interval_secs
        while self._running:
            try:
                await asyncio.sleep(interval)
                await self.sweep()
            except asyncio.CancelledError:
                return
            except Exception:
                logger.exception("sweep_loop_error")

    async def __aenter__(self) -> AlertEngine:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
