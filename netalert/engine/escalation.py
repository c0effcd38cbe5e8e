"""EscalationManager — per-incident escalation state machine.

States::

    NEW → NOTIFIED(0) → NOTIFIED(1) → … → EXHAUSTED
    NOTIFIED(*) / EXHAUSTED → ACKNOWLEDGED
    any → CLOSED (set by the correlator on aging-out or clear)

The position is derived only from persisted incident fields
(``chain_severity``, ``level``, ``level_started_at``) so a restarted
engine re-derives the same level on its first tick.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

import structlog

from netalert.core.exceptions import InvalidTransitionError
from netalert.core.types import (
    EscalationChain,
    EscalationLevel,
    EscalationStatus,
    Incident,
    Severity,
)

logger = structlog.get_logger(__name__)


@dataclass
class TickResult:
    """What a tick did to one incident."""

    advanced: int = 0
    exhausted: bool = False

    @property
    def notify(self) -> bool:
        """A new level was reached and its responders should hear about it."""
        return self.advanced > 0


class EscalationManager:
    """Drives incidents through their severity's escalation chain.

    Usage::

        manager = EscalationManager(chains)
        if manager.start(incident, now):
            router.route(incident)
        ...
        result = manager.tick(incident, now)   # from the periodic sweep
        if result.notify:
            router.route(incident)
    """

    def __init__(self, chains: Mapping[Severity, EscalationChain]) -> None:
        if not chains:
            raise ValueError("at least one escalation chain is required")
        self._chains = dict(chains)

    def chain_for(self, severity: Severity) -> EscalationChain:
        """Chain for *severity*, falling back to the nearest lower one."""
        for sev in sorted(self._chains, reverse=True):
            if sev <= severity:
                return self._chains[sev]
        return self._chains[min(self._chains)]

    def current_level(self, incident: Incident) -> EscalationLevel | None:
        esc = incident.escalation
        if esc.chain_severity is None:
            return None
        chain = self.chain_for(esc.chain_severity)
        return chain.levels[min(esc.level, len(chain.levels) - 1)]

    # ── Transitions ───────────────────────────────────────────────

    def start(self, incident: Incident, now: float) -> bool:
        """Enter NOTIFIED(0) of the incident's severity chain.

        Called on incident creation and on severity increase.  Returns
        True when level 0 should be notified.  Acknowledged or closed
        incidents, and incidents already on a chain at least as severe,
        are left untouched so the escalation position never regresses.
        """
        esc = incident.escalation
        if incident.closed or incident.acknowledged:
            return False
        if esc.chain_severity is not None and incident.severity <= esc.chain_severity:
            return False

        previous = esc.chain_severity
        esc.chain_severity = incident.severity
        esc.level = 0
        esc.level_started_at = now
        esc.status = EscalationStatus.NOTIFIED
        logger.info(
            "escalation_started",
            incident_id=incident.id,
            chain=incident.severity.label,
            previous_chain=previous.label if previous else None,
        )
        return True

    def tick(self, incident: Incident, now: float) -> TickResult:
        """Advance past every level whose timeout has elapsed by *now*.

        Each new level starts when the previous one timed out (not when
        the tick ran), so late or missed ticks catch up to the same
        position.
        """
        result = TickResult()
        esc = incident.escalation
        if incident.closed or incident.acknowledged:
            return result
        if esc.status == EscalationStatus.NEW:
            result.advanced = int(self.start(incident, now))
            return result
        if esc.status != EscalationStatus.NOTIFIED or esc.chain_severity is None:
            return result

        chain = self.chain_for(esc.chain_severity)
        if esc.level >= len(chain.levels):
            # Restored past the end of a chain that has since been shortened.
            esc.level = len(chain.levels) - 1
            esc.status = EscalationStatus.EXHAUSTED
            result.exhausted = True
            logger.warning(
                "escalation_exhausted",
                incident_id=incident.id,
                chain=esc.chain_severity.label,
                levels=len(chain.levels),
                reason="level_beyond_chain",
            )
            return result

        started = esc.level_started_at if esc.level_started_at is not None else now
        while True:
            deadline = started + chain.timeout_for(esc.level)
            if now < deadline:
                break
            if esc.level + 1 < len(chain.levels):
                esc.level += 1
                started = deadline
                result.advanced += 1
            else:
                esc.status = EscalationStatus.EXHAUSTED
                result.exhausted = True
                break
        esc.level_started_at = started

        if result.advanced:
            logger.warning(
                "escalation_advanced",
                incident_id=incident.id,
                chain=esc.chain_severity.label,
                level=esc.level,
                group=chain.levels[esc.level].name,
                skipped=result.advanced - 1,
            )
        if result.exhausted:
            logger.warning(
                "escalation_exhausted",
                incident_id=incident.id,
                chain=esc.chain_severity.label,
                levels=len(chain.levels),
            )
        return result

    def acknowledge(self, incident: Incident, actor: str, now: float) -> bool:
        """Halt further escalation.  Returns False if already acknowledged."""
        if incident.closed:
            raise InvalidTransitionError(f"incident {incident.id} is closed")
        if incident.acknowledged:
            return False
        esc = incident.escalation
        incident.acknowledged = True
        esc.status = EscalationStatus.ACKNOWLEDGED
        esc.acknowledged_by = actor
        esc.acknowledged_at = now
        logger.info(
            "incident_acknowledged",
            incident_id=incident.id,
            actor=actor,
            level=esc.level_key,
        )
        return True
