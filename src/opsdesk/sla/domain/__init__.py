"""
SLA Domain Layer
================

Domain layer for SLA tracking.

Contains:
- Entities: SlaPolicy, TrackableEntity, SlaPauseLog, PauseStats
- Value Objects: Computation and status results, SLAConfig
- Domain Services: PolicyResolver, DeadlineCalculator, StatusEngine

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from opsdesk.sla.domain.entities import SlaPolicy, TrackableEntity, SlaPauseLog, PauseStats
from opsdesk.sla.domain.value_objects import (
    SlaComputationResult,
    SlaStatusResult,
    SlaTrackingInput,
    TrackingResult,
    PauseResult,
    ResumeResult,
    PolicySeed,
    SLAConfig,
)
from opsdesk.sla.domain.services import (
    PolicyResolver,
    DeadlineCalculator,
    StatusEngine,
    utc_now,
    as_utc,
    minutes_between,
)

__all__ = [
    # Entities
    "SlaPolicy",
    "TrackableEntity",
    "SlaPauseLog",
    "PauseStats",
    # Value Objects
    "SlaComputationResult",
    "SlaStatusResult",
    "SlaTrackingInput",
    "TrackingResult",
    "PauseResult",
    "ResumeResult",
    "PolicySeed",
    "SLAConfig",
    # Domain Services
    "PolicyResolver",
    "DeadlineCalculator",
    "StatusEngine",
    "utc_now",
    "as_utc",
    "minutes_between",
]
