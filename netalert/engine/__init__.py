"""Alert engine — thresholds, dedup, correlation, escalation and routing."""

from netalert.engine.correlator import CorrelationResult, Correlator
from netalert.engine.dedup import Deduplicator
from netalert.engine.escalation import EscalationManager, TickResult
from netalert.engine.impact import BusinessImpactResolver
from netalert.engine.pipeline import AlertEngine, SweepReport
from netalert.engine.router import NotificationRouter
from netalert.engine.store import IncidentStore
from netalert.engine.thresholds import SlidingCounter, ThresholdEvaluator

__all__ = [
    "AlertEngine",
    "BusinessImpactResolver",
    "CorrelationResult",
    "Correlator",
    "Deduplicator",
    "EscalationManager",
    "IncidentStore",
    "NotificationRouter",
    "SlidingCounter",
    "SweepReport",
    "ThresholdEvaluator",
    "TickResult",
]
