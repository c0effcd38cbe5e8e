"""NotificationRouter — picks recipients and channels for an incident."""

from __future__ import annotations

import time

import structlog

from netalert.core.config import NotificationsConfig
from netalert.core.types import Contact, Dispatch, Incident
from netalert.engine.escalation import EscalationManager
from netalert.engine.impact import BusinessImpactResolver
from netalert.monitor.formatters import format_incident

# Dedicated structured logger for routing decisions.
decision_logger = structlog.get_logger("decision_log")

logger = structlog.get_logger(__name__)


class NotificationRouter:
    """Builds (channel, recipient, payload) dispatches for an incident.

    - Recipients are the current escalation level's group, the severity's
      global contacts and, optionally, the affected services' contacts.
    - One dispatch per enabled channel on which a recipient has an address.
    - Each (incident, escalation level) pair is routed at most once; the
      ledger lives on the incident so it survives restarts.
    """

    def __init__(
        self,
        config: NotificationsConfig,
        escalation: EscalationManager,
        resolver: BusinessImpactResolver,
    ) -> None:
        self._config = config
        self._escalation = escalation
        self._resolver = resolver

    def recipients(self, incident: Incident) -> list[Contact]:
        """Ordered, de-duplicated recipient list for the current level."""
        contacts: list[Contact] = []
        level = self._escalation.current_level(incident)
        if level is not None:
            contacts.extend(level.contacts)
        contacts.extend(self._config.contacts_for(incident.severity))
        if self._config.include_service_contacts:
            for name in incident.services:
                svc = self._resolver.get(name)
                if svc is not None:
                    contacts.extend(svc.contacts)

        unique: dict[tuple[str | None, str | None, str], Contact] = {}
        for contact in contacts:
            unique.setdefault((contact.email, contact.slack, contact.name), contact)
        return list(unique.values())

    def route(self, incident: Incident, now: float | None = None) -> list[Dispatch]:
        esc = incident.escalation
        if esc.chain_severity is None:
            return []
        level_key = esc.level_key
        if level_key in incident.notified_levels:
            logger.debug(
                "route_skipped_already_notified",
                incident_id=incident.id,
                level=level_key,
            )
            return []
        incident.notified_levels.append(level_key)

        payload = format_incident(
            incident,
            level=self._escalation.current_level(incident),
            now=now if now is not None else time.time(),
        )
        dispatches: list[Dispatch] = []
        seen: set[tuple[str, str]] = set()
        for channel in self._config.enabled_channels:
            for contact in self.recipients(incident):
                address = contact.address(channel)
                if not address or (channel, address) in seen:
                    continue
                seen.add((channel, address))
                dispatches.append(
                    Dispatch(channel=channel, recipient=address, payload=payload),
                )

        decision_logger.info(
            "notification_routed",
            incident_id=incident.id,
            level=level_key,
            severity=incident.severity.label,
            title=payload.title,
            recipients=[(d.channel, d.recipient) for d in dispatches],
        )
        if not dispatches:
            logger.warning(
                "route_no_recipients",
                incident_id=incident.id,
                level=level_key,
                channels=self._config.enabled_channels,
            )
        return dispatches
