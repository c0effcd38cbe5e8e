"""Pure functions that convert incidents into NotificationPayload objects."""

from __future__ import annotations

from netalert.core.types import EscalationLevel, Incident, NotificationPayload

_MAX_LISTED_DEVICES = 5


def format_incident(
    incident: Incident,
    level: EscalationLevel | None = None,
    now: float | None = None,
) -> NotificationPayload:
    """Convert an incident at its current escalation level to a payload."""
    devices = incident.devices
    shown = ", ".join(devices[:_MAX_LISTED_DEVICES])
    if len(devices) > _MAX_LISTED_DEVICES:
        shown += f" (+{len(devices) - _MAX_LISTED_DEVICES} more)"

    esc = incident.escalation
    title = f"{incident.severity.name} incident on {shown}"
    if esc.level > 0:
        title = f"ESCALATED L{esc.level}: {title}"

    body_lines = [
        f"{m.event.device_id} {m.event.metric}={m.event.value} ({m.severity.label})"
        for m in incident.members.values()
        if m.live
    ]
    if incident.services:
        body_lines.append("Impacted services: " + ", ".join(incident.services))

    fields: dict[str, str] = {
        "incident_id": incident.id,
        "severity": incident.severity.label,
        "escalation_level": str(esc.level),
        "devices": str(len(devices)),
        "alerts": str(len(incident.members)),
        "first_seen": f"{incident.first_seen:.0f}",
        "last_seen": f"{incident.last_seen:.0f}",
    }
    if level is not None:
        fields["responder_group"] = level.name
    if incident.services:
        fields["services"] = ", ".join(incident.services)

    return NotificationPayload(
        severity=incident.severity,
        title=title,
        body="\n".join(body_lines),
        fields=fields,
        incident_id=incident.id,
        level_key=esc.level_key,
        timestamp=now if now is not None else incident.last_seen,
        raw=incident.model_dump(mode="json", include={"id", "services", "severity"}),
    )
