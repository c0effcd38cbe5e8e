"""Correlator — groups related alert events into incidents."""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from netalert.core.exceptions import IncidentNotFoundError, InvalidTransitionError
from netalert.core.types import (
    AlertEvent,
    EscalationStatus,
    Incident,
    IncidentMember,
    Severity,
)
from netalert.engine.impact import BusinessImpactResolver

logger = structlog.get_logger(__name__)

_CLOSED_HISTORY = 1000


@dataclass
class CorrelationResult:
    """Outcome of correlating one novel event."""

    incident: Incident
    created: bool = False
    severity_raised: bool = False
    previous_severity: Severity | None = None


class Correlator:
    """Maintains open incidents and merges new events into them.

    Matching order for a novel event:

    1. an open incident that already holds the event's identity key;
    2. an open incident seen within the window that holds the same device;
    3. an open incident seen within the window whose devices share a
       business service with the event's device (highest-priority service
       first, most recently active incident first);
    4. otherwise a new incident.

    Not safe for concurrent use; callers serialize access.
    """

    def __init__(
        self,
        resolver: BusinessImpactResolver,
        window_secs: float = 3600.0,
    ) -> None:
        self._resolver = resolver
        self._window_secs = window_secs
        self._open: dict[str, Incident] = {}
        self._closed: OrderedDict[str, Incident] = OrderedDict()
        self._by_key: dict[str, str] = {}
        self._by_device: dict[str, set[str]] = {}
        self._by_service: dict[str, set[str]] = {}

    # ── Properties ────────────────────────────────────────────────

    @property
    def window_secs(self) -> float:
        return self._window_secs

    @property
    def open_incidents(self) -> list[Incident]:
        return list(self._open.values())

    @property
    def closed_incidents(self) -> list[Incident]:
        return list(self._closed.values())

    def get(self, incident_id: str) -> Incident:
        incident = self._open.get(incident_id) or self._closed.get(incident_id)
        if incident is None:
            raise IncidentNotFoundError(incident_id)
        return incident

    def find_open(self, key: str) -> Incident | None:
        incident_id = self._by_key.get(key)
        return self._open.get(incident_id) if incident_id else None

    # ── Correlation ───────────────────────────────────────────────

    def correlate(self, event: AlertEvent) -> CorrelationResult:
        """Merge a novel event into an open incident or open a new one."""
        incident = self.find_open(event.key) or self._match(event)
        if incident is None:
            incident = Incident(
                first_seen=event.timestamp,
                last_seen=event.timestamp,
                severity=event.severity,
            )
            self._open[incident.id] = incident
            self._merge(incident, event)
            logger.info(
                "incident_created",
                incident_id=incident.id,
                device_id=event.device_id,
                metric=event.metric,
                severity=event.severity.label,
                services=incident.services,
            )
            return CorrelationResult(incident=incident, created=True)

        previous = incident.severity
        self._merge(incident, event)
        raised = incident.severity > previous
        logger.info(
            "incident_merged",
            incident_id=incident.id,
            device_id=event.device_id,
            metric=event.metric,
            severity=incident.severity.label,
            severity_raised=raised,
        )
        return CorrelationResult(
            incident=incident,
            severity_raised=raised,
            previous_severity=previous,
        )

    def refresh(self, event: AlertEvent) -> Incident | None:
        """Keep the incident holding a suppressed event's key alive."""
        incident = self.find_open(event.key)
        if incident is None:
            return None
        member = incident.members[event.key]
        member.last_seen = max(member.last_seen, event.timestamp)
        incident.last_seen = max(incident.last_seen, event.timestamp)
        return incident

    def _match(self, event: AlertEvent) -> Incident | None:
        candidates = [
            self._open[i] for i in self._by_device.get(event.device_id, ())
            if self._within_window(self._open[i], event.timestamp)
        ]
        if candidates:
            return max(candidates, key=lambda inc: inc.last_seen)

        for svc in self._resolver.resolve(event.device_id):
            candidates = [
                self._open[i] for i in self._by_service.get(svc.name, ())
                if self._within_window(self._open[i], event.timestamp)
            ]
            if candidates:
                return max(candidates, key=lambda inc: inc.last_seen)
        return None

    def _within_window(self, incident: Incident, timestamp: float) -> bool:
        return abs(timestamp - incident.last_seen) <= self._window_secs

    def _merge(self, incident: Incident, event: AlertEvent) -> None:
        member = incident.members.get(event.key)
        if member is None:
            incident.members[event.key] = IncidentMember(
                event=event,
                severity=event.severity,
                first_seen=event.timestamp,
                last_seen=event.timestamp,
            )
        elif member.live:
            member.event = event
            member.severity = max(member.severity, event.severity)
            member.last_seen = max(member.last_seen, event.timestamp)
        else:
            member.event = event
            member.severity = event.severity
            member.last_seen = event.timestamp
            member.live = True

        incident.first_seen = min(incident.first_seen, event.timestamp)
        incident.last_seen = max(incident.last_seen, event.timestamp)
        incident.recompute_severity()
        self._by_key[event.key] = incident.id
        self._by_device.setdefault(event.device_id, set()).add(incident.id)
        self._refresh_services(incident)

    def _refresh_services(self, incident: Incident) -> None:
        services = [s.name for s in self._resolver.resolve_many(incident.devices)]
        for name in services:
            self._by_service.setdefault(name, set()).add(incident.id)
        incident.services = services

    # ── Aging ─────────────────────────────────────────────────────

    def sweep(self, now: float) -> list[Incident]:
        """Expire stale members and close aged-out incidents.

        Critical incidents stay open while unacknowledged, until their
        escalation chain is exhausted.

        Returns the incidents closed by this sweep.
        """
        closed: list[Incident] = []
        for incident in list(self._open.values()):
            for member in incident.members.values():
                if member.live and now - member.last_seen > self._window_secs:
                    member.live = False
            incident.recompute_severity()

            if now - incident.last_seen <= self._window_secs:
                continue
            if self._pinned(incident):
                continue
            self.close(incident, now, reason="aged_out")
            closed.append(incident)
        return closed

    @staticmethod
    def _pinned(incident: Incident) -> bool:
        return (
            incident.severity >= Severity.CRITICAL
            and not incident.acknowledged
            and incident.escalation.status != EscalationStatus.EXHAUSTED
        )

    def close(self, incident: Incident, now: float, reason: str) -> None:
        if incident.closed:
            return
        incident.closed = True
        incident.closed_at = now
        incident.close_reason = reason
        incident.escalation.status = EscalationStatus.CLOSED
        self._unindex(incident)
        self._open.pop(incident.id, None)
        self._closed[incident.id] = incident
        while len(self._closed) > _CLOSED_HISTORY:
            self._closed.popitem(last=False)
        logger.info(
            "incident_closed",
            incident_id=incident.id,
            reason=reason,
            severity=incident.severity.label,
            duration_secs=round(now - incident.first_seen, 3),
        )

    def clear(self, incident_id: str, now: float) -> Incident:
        """Close an acknowledged incident by hand."""
        incident = self.get(incident_id)
        if incident.closed:
            raise InvalidTransitionError(f"incident {incident_id} already closed")
        if not incident.acknowledged:
            raise InvalidTransitionError(
                f"incident {incident_id} must be acknowledged before clearing",
            )
        self.close(incident, now, reason="cleared")
        return incident

    def _unindex(self, incident: Incident) -> None:
        for key, member in incident.members.items():
            if self._by_key.get(key) == incident.id:
                del self._by_key[key]
            ids = self._by_device.get(member.event.device_id)
            if ids is not None:
                ids.discard(incident.id)
                if not ids:
                    del self._by_device[member.event.device_id]
        for name in incident.services:
            ids = self._by_service.get(name)
            if ids is not None:
                ids.discard(incident.id)
                if not ids:
                    del self._by_service[name]

    # ── Persistence ───────────────────────────────────────────────

    def restore(self, incidents: Iterable[Incident]) -> int:
        """Re-index incidents loaded from the store."""
        count = 0
        for incident in incidents:
            if incident.closed:
                self._closed[incident.id] = incident
                continue
            self._open[incident.id] = incident
            for key, member in incident.members.items():
                self._by_key[key] = incident.id
                self._by_device.setdefault(member.event.device_id, set()).add(
                    incident.id,
                )
            self._refresh_services(incident)
            count += 1
        return count
