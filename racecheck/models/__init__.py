"""
racecheck pydantic models package.

This package contains all Pydantic v2 models used by the engine for data
validation, serialization and immutability of plans, outcomes and metrics.
"""

# Enums
from .enums import (
    LoadPattern,
    SelectionPolicy,
    AdmissionMode,
    EventKind,
    FailureKind,
)

# Clients and plans
from .client import (
    SimulatedClient,
    SpikePhase,
    PlannedDispatch,
    DispatchPlan,
)

# Tracker state
from .timeline import (
    InFlightRequest,
    TimelineEvent,
    TrackerSnapshot,
)

# Results
from .outcome import (
    UNKNOWN_ERROR,
    ReservationResult,
    Outcome,
)

from .metrics import (
    ErrorCount,
    RunMetrics,
    ClassifiedOutcome,
    ClassificationReport,
    ScenarioResult,
)

__all__ = [
    # Enums
    "LoadPattern",
    "SelectionPolicy",
    "AdmissionMode",
    "EventKind",
    "FailureKind",

    # Clients and plans
    "SimulatedClient",
    "SpikePhase",
    "PlannedDispatch",
    "DispatchPlan",

    # Tracker state
    "InFlightRequest",
    "TimelineEvent",
    "TrackerSnapshot",

    # Results
    "UNKNOWN_ERROR",
    "ReservationResult",
    "Outcome",
    "ErrorCount",
    "RunMetrics",
    "ClassifiedOutcome",
    "ClassificationReport",
    "ScenarioResult",
]
