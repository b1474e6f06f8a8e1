"""
SLA Application Layer
======================

Application layer for SLA tracking.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from opsdesk.sla.application.dto import (
    TrackingInitRequest,
    PauseRequest,
    ResumeRequest,
    PolicyResponse,
    SLAStatusResponse,
    TrackingResponse,
    PauseResponse,
    ResumeResponse,
    PauseLogResponse,
    PauseStatsResponse,
    PauseHistoryResponse,
)
from opsdesk.sla.application.services import (
    PolicyService,
    SLAPauseService,
    SLATrackingService,
    EntityStoreRegistry,
    PolicyCache,
    CachedPolicyRepository,
    ISlaPolicyRepository,
    ITrackableEntityRepository,
    ISlaPauseLogRepository,
    ISLAConfigProvider,
)

__all__ = [
    # DTOs
    "TrackingInitRequest",
    "PauseRequest",
    "ResumeRequest",
    "PolicyResponse",
    "SLAStatusResponse",
    "TrackingResponse",
    "PauseResponse",
    "ResumeResponse",
    "PauseLogResponse",
    "PauseStatsResponse",
    "PauseHistoryResponse",
    # Services
    "PolicyService",
    "SLAPauseService",
    "SLATrackingService",
    "EntityStoreRegistry",
    "PolicyCache",
    "CachedPolicyRepository",
    # Repository Interfaces
    "ISlaPolicyRepository",
    "ITrackableEntityRepository",
    "ISlaPauseLogRepository",
    "ISLAConfigProvider",
]
