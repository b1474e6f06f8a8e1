"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA tracking endpoints.

Controllers are thin - they delegate to application services. Domain
errors propagate to the application exception handler, which maps them
to status codes.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.infrastructure.database import get_session
from opsdesk.sla.application import (
    PolicyService,
    SLAPauseService,
    SLATrackingService,
    PolicyCache,
    CachedPolicyRepository,
    ISLAConfigProvider,
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
from opsdesk.sla.application.dto import EntityKindStr, PriorityStr
from opsdesk.sla.application.services import Clock
from opsdesk.sla.domain import SlaTrackingInput, utc_now
from opsdesk.sla.infrastructure import (
    SQLAlchemySlaPolicyRepository,
    SQLAlchemySlaPauseLogRepository,
    build_entity_store_registry,
)

from opsdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Tracking"])


# ========== Example payloads for Swagger ==========

TRACKING_RESPONSE_EXAMPLE = {
    "entity_id": "TASK-001",
    "policy_id": "5b0f6c1e-2f7a-4f63-9d51-1a7d1c0f6a10",
    "target_hours": 4.0,
    "started_at": "2025-01-15T10:00:00Z",
    "deadline": "2025-01-15T14:00:00Z",
    "sla": {
        "status": "ON_TIME",
        "time_remaining_minutes": 240,
        "percentage_remaining": 100.0,
        "deadline": "2025-01-15T14:00:00Z",
        "effective_deadline": "2025-01-15T14:00:00Z",
        "total_paused_minutes": 0,
        "is_paused": False
    }
}

RESUME_RESPONSE_EXAMPLE = {
    "id": "TASK-001",
    "paused_at": None,
    "total_paused_minutes": 90,
    "pause_duration_minutes": 30,
    "status": "ON_TIME"
}

ERROR_RESPONSES = {
    404: {"description": "Entity not found"},
    409: {"description": "SLA state conflict (already paused, not paused, concurrent update)"},
}


# ========== Dependencies ==========

def get_config_provider(request: Request) -> ISLAConfigProvider:
    """SLA config provider created at startup."""
    return request.app.state.sla_config


def get_policy_cache(request: Request) -> PolicyCache:
    """Process-wide policy cache created at startup."""
    return request.app.state.policy_cache


def get_clock() -> Clock:
    """Clock used by the SLA services."""
    return utc_now


async def get_policy_service(
    session: AsyncSession = Depends(get_session),
    cache: PolicyCache = Depends(get_policy_cache)
) -> PolicyService:
    """Get policy service instance."""
    return PolicyService(CachedPolicyRepository(SQLAlchemySlaPolicyRepository(session), cache))


async def get_tracking_service(
    session: AsyncSession = Depends(get_session),
    cache: PolicyCache = Depends(get_policy_cache),
    config_provider: ISLAConfigProvider = Depends(get_config_provider),
    clock: Clock = Depends(get_clock)
) -> SLATrackingService:
    """Get SLA tracking service instance."""
    return SLATrackingService(
        CachedPolicyRepository(SQLAlchemySlaPolicyRepository(session), cache),
        build_entity_store_registry(session),
        config_provider,
        clock=clock
    )


async def get_pause_service(
    session: AsyncSession = Depends(get_session),
    config_provider: ISLAConfigProvider = Depends(get_config_provider),
    clock: Clock = Depends(get_clock)
) -> SLAPauseService:
    """Get SLA pause service instance."""
    return SLAPauseService(
        build_entity_store_registry(session),
        SQLAlchemySlaPauseLogRepository(session),
        config_provider,
        clock=clock
    )


# ========== Policy routes ==========

@router.get(
    "/policies",
    response_model=List[PolicyResponse],
    summary="List active SLA policies",
)
async def list_policies(
    entity_kind: EntityKindStr = Query(..., description="REQUEST or TASK"),
    policy_service: PolicyService = Depends(get_policy_service)
):
    policies = await policy_service.list_policies(entity_kind)
    return [PolicyResponse.from_domain(p) for p in policies]


@router.get(
    "/policies/resolve",
    response_model=PolicyResponse,
    summary="Resolve the applicable SLA policy",
    description="""
    Find the most specific active policy for an entity kind, priority and
    category.

    Exact priority beats a generic priority; exact category beats a
    generic category. Ties go to the lowest policy ID.
    """,
    responses={422: {"description": "No applicable policy"}}
)
async def resolve_policy(
    entity_kind: EntityKindStr = Query(..., description="REQUEST or TASK"),
    priority: Optional[PriorityStr] = Query(None),
    category: Optional[str] = Query(None, min_length=1),
    policy_service: PolicyService = Depends(get_policy_service)
):
    policy = await policy_service.resolve(entity_kind, priority, category)
    return PolicyResponse.from_domain(policy)


# ========== Tracking routes ==========

@router.post(
    "/{kind}/{entity_id}/tracking",
    response_model=TrackingResponse,
    summary="Start SLA tracking",
    description="""
    Resolve the policy, compute the deadline and store the initial SLA
    status on a request or task. Nothing is written when no policy applies.
    """,
    responses={
        200: {
            "description": "Tracking initialized",
            "content": {"application/json": {"example": TRACKING_RESPONSE_EXAMPLE}}
        },
        404: ERROR_RESPONSES[404],
        422: {"description": "No applicable policy or invalid start time"},
    }
)
async def initialize_tracking(
    kind: EntityKindStr,
    entity_id: str,
    body: TrackingInitRequest,
    tracking_service: SLATrackingService = Depends(get_tracking_service)
):
    result = await tracking_service.initialize(
        SlaTrackingInput(
            entity_kind=kind,
            priority=body.priority,
            category=body.category,
            start_time=body.start_time,
        ),
        entity_id
    )
    return TrackingResponse.from_domain(result)


@router.get(
    "/{kind}/{entity_id}/status",
    response_model=SLAStatusResponse,
    summary="Get live SLA status",
    responses=ERROR_RESPONSES
)
async def get_status(
    kind: EntityKindStr,
    entity_id: str,
    tracking_service: SLATrackingService = Depends(get_tracking_service)
):
    result = await tracking_service.get_status(kind, entity_id)
    return SLAStatusResponse.from_domain(result)


@router.post(
    "/{kind}/{entity_id}/refresh",
    response_model=SLAStatusResponse,
    summary="Recompute and store SLA status",
    responses=ERROR_RESPONSES
)
async def refresh_status(
    kind: EntityKindStr,
    entity_id: str,
    tracking_service: SLATrackingService = Depends(get_tracking_service)
):
    result = await tracking_service.refresh_status(kind, entity_id)
    return SLAStatusResponse.from_domain(result)


# ========== Pause routes ==========

@router.post(
    "/{kind}/{entity_id}/pause",
    response_model=PauseResponse,
    summary="Pause the SLA clock",
    responses=ERROR_RESPONSES
)
async def pause_sla(
    kind: EntityKindStr,
    entity_id: str,
    body: PauseRequest,
    pause_service: SLAPauseService = Depends(get_pause_service)
):
    result = await pause_service.pause(
        kind, entity_id,
        reason=body.reason,
        paused_by=body.paused_by,
        notes=body.notes
    )
    return PauseResponse.from_domain(result)


@router.post(
    "/{kind}/{entity_id}/resume",
    response_model=ResumeResponse,
    summary="Resume the SLA clock",
    responses={
        200: {
            "description": "Clock resumed",
            "content": {"application/json": {"example": RESUME_RESPONSE_EXAMPLE}}
        },
        **ERROR_RESPONSES
    }
)
async def resume_sla(
    kind: EntityKindStr,
    entity_id: str,
    body: Optional[ResumeRequest] = None,
    pause_service: SLAPauseService = Depends(get_pause_service)
):
    resumed_by = body.resumed_by if body else None
    result = await pause_service.resume(kind, entity_id, resumed_by=resumed_by)
    return ResumeResponse.from_domain(result)


@router.get(
    "/{kind}/{entity_id}/pauses",
    response_model=PauseHistoryResponse,
    summary="Pause history, newest first",
    responses={404: ERROR_RESPONSES[404]}
)
async def get_pause_history(
    kind: EntityKindStr,
    entity_id: str,
    pause_service: SLAPauseService = Depends(get_pause_service)
):
    logs = await pause_service.get_pause_history(kind, entity_id)
    return PauseHistoryResponse(
        entity_id=entity_id,
        pauses=[
            PauseLogResponse.from_domain(
                log,
                pause_service.format_duration(log.duration_minutes)
                if log.duration_minutes is not None else None
            )
            for log in logs
        ]
    )


@router.get(
    "/{kind}/{entity_id}/pauses/stats",
    response_model=PauseStatsResponse,
    summary="Pause statistics",
    responses={404: ERROR_RESPONSES[404]}
)
async def get_pause_stats(
    kind: EntityKindStr,
    entity_id: str,
    pause_service: SLAPauseService = Depends(get_pause_service)
):
    stats = await pause_service.get_pause_stats(kind, entity_id)
    return PauseStatsResponse.from_domain(stats)


# Export router for inclusion in main app
sla_router = router
