"""Exception hierarchy for the alert engine."""

from __future__ import annotations


class NetAlertError(Exception):
    """Base exception for all engine errors."""


class ConfigError(NetAlertError):
    """Configuration failed to parse or validate; the engine must not start."""


class IncidentNotFoundError(NetAlertError):
    """No open or closed incident with the requested id."""


class InvalidTransitionError(NetAlertError):
    """Escalation state machine rejected a transition."""


class StoreError(NetAlertError):
    """Incident state could not be read from or written to disk."""
