"""Domain types for the alert correlation engine."""

from __future__ import annotations

import hashlib
import time
import uuid
from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Severity(IntEnum):
    """Alert severity — ordered so comparisons work naturally."""

    INFO = 1
    WARNING = 2
    CRITICAL = 3

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_label(cls, label: str | int | Severity) -> Severity:
        """Parse ``"critical"``, ``"WARNING"``, ``3`` or a Severity."""
        if isinstance(label, Severity):
            return label
        if isinstance(label, int):
            return cls(label)
        try:
            return cls[label.strip().upper()]
        except KeyError:
            raise ValueError(f"unknown severity {label!r}") from None


def identity_key(device_id: str, metric: str) -> str:
    """Stable identity hash for a (device, metric) pair."""
    digest = hashlib.sha1(f"{device_id}\x00{metric}".encode())
    return digest.hexdigest()[:16]


# ── Samples & thresholds ────────────────────────────────────────


class MetricSample(BaseModel):
    """A raw reading produced by the external collector."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    metric: str
    value: float | str
    unit: str = ""
    timestamp: float = Field(default_factory=time.time)


class ThresholdKind(StrEnum):
    NUMERIC = "numeric"
    CATEGORICAL = "categorical"
    COUNT = "count"


class Direction(StrEnum):
    """Which side of the bound is the bad side."""

    ABOVE = "above"
    BELOW = "below"


class Threshold(BaseModel):
    """Warning/critical bounds for one metric name."""

    model_config = ConfigDict(frozen=True)

    metric: str
    kind: ThresholdKind = ThresholdKind.NUMERIC
    warning: float | str
    critical: float | str
    unit: str = ""
    direction: Direction = Direction.ABOVE
    window_secs: float | None = None
    levels: tuple[str, ...] = ()


# ── Alerts & incidents ──────────────────────────────────────────


class AlertEvent(BaseModel):
    """A single threshold breach detected from one sample."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    metric: str
    value: float | str
    severity: Severity
    timestamp: float

    @computed_field  # type: ignore[prop-decorator]
    @property
    def key(self) -> str:
        return identity_key(self.device_id, self.metric)


class Admission(StrEnum):
    NOVEL = "NOVEL"
    SUPPRESSED = "SUPPRESSED"


class IncidentMember(BaseModel):
    """One identity-key slot inside an incident."""

    event: AlertEvent
    severity: Severity
    first_seen: float
    last_seen: float
    live: bool = True


class EscalationStatus(StrEnum):
    NEW = "NEW"
    NOTIFIED = "NOTIFIED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    EXHAUSTED = "EXHAUSTED"
    CLOSED = "CLOSED"


class EscalationState(BaseModel):
    """Position of an incident inside its escalation chain."""

    status: EscalationStatus = EscalationStatus.NEW
    level: int = 0
    chain_severity: Severity | None = None
    level_started_at: float | None = None
    acknowledged_by: str | None = None
    acknowledged_at: float | None = None

    @property
    def level_key(self) -> str:
        """Identity of the current escalation level, e.g. ``critical:1``."""
        sev = self.chain_severity.label if self.chain_severity else "none"
        return f"{sev}:{self.level}"


class Incident(BaseModel):
    """A correlated group of alert events treated as one notifiable unit."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    members: dict[str, IncidentMember] = Field(default_factory=dict)
    severity: Severity = Severity.INFO
    first_seen: float = 0.0
    last_seen: float = 0.0
    services: list[str] = Field(default_factory=list)
    escalation: EscalationState = Field(default_factory=EscalationState)
    acknowledged: bool = False
    closed: bool = False
    closed_at: float | None = None
    close_reason: str = ""
    notified_levels: list[str] = Field(default_factory=list)

    @property
    def devices(self) -> list[str]:
        seen: dict[str, None] = {}
        for member in self.members.values():
            seen.setdefault(member.event.device_id, None)
        return list(seen)

    @property
    def events(self) -> list[AlertEvent]:
        """Constituent events in insertion order."""
        return [m.event for m in self.members.values()]

    def recompute_severity(self) -> Severity:
        """Set severity to the max of the live members.

        An incident whose members have all gone stale keeps its last
        severity.
        """
        live = [m.severity for m in self.members.values() if m.live]
        if live:
            self.severity = max(live)
        return self.severity


class Contact(BaseModel):
    """A notifiable person or group."""

    model_config = ConfigDict(frozen=True)

    name: str
    email: str | None = None
    slack: str | None = None

    def address(self, channel: str) -> str | None:
        if channel == "email":
            return self.email
        if channel == "slack":
            return self.slack
        return None


class BusinessService(BaseModel):
    """A higher-level capability depending on monitored devices."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    priority: int = 100
    devices: tuple[str, ...] = ()
    contacts: tuple[Contact, ...] = ()


class EscalationLevel(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    contacts: tuple[Contact, ...] = ()
    timeout_secs: float | None = None


class EscalationChain(BaseModel):
    """Ordered responder groups notified while an incident is unresolved."""

    model_config = ConfigDict(frozen=True)

    levels: tuple[EscalationLevel, ...]
    timeout_secs: float = 900.0

    def timeout_for(self, level: int) -> float:
        override = self.levels[level].timeout_secs
        return override if override is not None else self.timeout_secs


# ── Notification ────────────────────────────────────────────────


class NotificationPayload(BaseModel):
    """Normalised notification ready for a notifier."""

    severity: Severity
    title: str
    body: str = ""
    fields: dict[str, str] = Field(default_factory=dict)
    incident_id: str = ""
    level_key: str = ""
    timestamp: float = Field(default_factory=time.time)
    raw: dict[str, Any] = Field(default_factory=dict)


class Dispatch(BaseModel):
    """A single (channel, recipient, payload) delivery request."""

    channel: str
    recipient: str
    payload: NotificationPayload


class DispatchRecord(BaseModel):
    """Audit row for an attempted delivery."""

    incident_id: str
    level_key: str
    channel: str
    recipient: str
    success: bool
    timestamp: float = Field(default_factory=time.time)
    error: str = ""
