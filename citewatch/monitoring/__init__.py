"""Citation monitoring: due checks, engine runs, status transitions and notifications."""

from citewatch.monitoring.batch import BatchSummary, MonitoringBatch
from citewatch.monitoring.eligibility import filter_due, is_due
from citewatch.monitoring.lock import BatchLock
from citewatch.monitoring.notifier import Notifier
from citewatch.monitoring.orchestrator import (
    EngineCheckOrchestrator,
    EngineResult,
    REDUCTION_STRATEGIES,
)
from citewatch.monitoring.transitions import TransitionDetector, TransitionEvent

__all__ = [
    "BatchLock",
    "BatchSummary",
    "EngineCheckOrchestrator",
    "EngineResult",
    "MonitoringBatch",
    "Notifier",
    "REDUCTION_STRATEGIES",
    "TransitionDetector",
    "TransitionEvent",
    "filter_due",
    "is_due",
]
