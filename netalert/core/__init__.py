"""Core module — config, types, logging, exceptions."""

from netalert.core.config import Settings, get_settings, load_settings, reset_settings
from netalert.core.exceptions import (
    ConfigError,
    IncidentNotFoundError,
    InvalidTransitionError,
    NetAlertError,
    StoreError,
)
from netalert.core.logging import setup_logging
from netalert.core.types import (
    Admission,
    AlertEvent,
    BusinessService,
    Contact,
    Dispatch,
    DispatchRecord,
    EscalationChain,
    EscalationLevel,
    EscalationState,
    EscalationStatus,
    Incident,
    MetricSample,
    NotificationPayload,
    Severity,
    Threshold,
    ThresholdKind,
)

__all__ = [
    "Admission",
    "AlertEvent",
    "BusinessService",
    "ConfigError",
    "Contact",
    "Dispatch",
    "DispatchRecord",
    "EscalationChain",
    "EscalationLevel",
    "EscalationState",
    "EscalationStatus",
    "Incident",
    "IncidentNotFoundError",
    "InvalidTransitionError",
    "MetricSample",
    "NetAlertError",
    "NotificationPayload",
    "Settings",
    "Severity",
    "StoreError",
    "Threshold",
    "ThresholdKind",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
