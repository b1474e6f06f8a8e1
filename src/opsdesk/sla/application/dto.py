"""
SLA Application DTOs
=====================

Data Transfer Objects for SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses. Following YAGNI - only what's needed.
"""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Literal
from datetime import datetime

from opsdesk.sla.domain import (
    SlaPolicy, SlaPauseLog, PauseStats,
    SlaStatusResult, TrackingResult, PauseResult, ResumeResult
)


# ========== Type Aliases for Literals ==========
EntityKindStr = Literal["REQUEST", "TASK"]
PriorityStr = Literal["LOW", "MEDIUM", "HIGH", "URGENT"]
SlaStatusStr = Literal["ON_TIME", "AT_RISK", "OVERDUE", "PAUSED"]
PauseReasonStr = Literal["MEETING", "CUSTOMER_VISIT", "CLARIFICATION", "MANUAL"]


# ========== Request DTOs ==========

class TrackingInitRequest(BaseModel):
    """Request model for starting SLA tracking on an entity."""
    priority: Optional[PriorityStr] = Field(None, description="Entity priority")
    category: Optional[str] = Field(None, min_length=1, description="Entity category")
    start_time: Optional[datetime] = Field(
        None,
        description="When the SLA clock starts (defaults to now; naive values are UTC)"
    )


class PauseRequest(BaseModel):
    """Request model for pausing an SLA clock."""
    reason: PauseReasonStr = Field(default="MANUAL", description="Why the clock stops")
    paused_by: Optional[str] = Field(None, description="Acting user ID")
    notes: Optional[str] = Field(None, max_length=1000, description="Free-text context")


class ResumeRequest(BaseModel):
    """Request model for resuming an SLA clock."""
    resumed_by: Optional[str] = Field(None, description="Acting user ID")


# ========== Response DTOs ==========

class PolicyResponse(BaseModel):
    """Response model for an SLA policy."""
    id: str
    name: str
    description: Optional[str] = None
    target_entity_kind: EntityKindStr
    priority: Optional[PriorityStr] = None
    category: Optional[str] = None
    target_hours: float
    is_active: bool

    @classmethod
    def from_domain(cls, policy: SlaPolicy) -> "PolicyResponse":
        return cls(**policy.to_dict())


class SLAStatusResponse(BaseModel):
    """Response model for the live status of an SLA clock."""
    status: SlaStatusStr = Field(..., description="Current SLA status")
    time_remaining_minutes: int = Field(..., description="Minutes left (0 if overdue or paused)")
    percentage_remaining: float = Field(..., description="Share of the SLA window left")
    deadline: datetime = Field(..., description="Original SLA deadline")
    effective_deadline: datetime = Field(..., description="Deadline shifted by paused time")
    total_paused_minutes: int
    is_paused: bool

    @classmethod
    def from_domain(cls, result: SlaStatusResult) -> "SLAStatusResponse":
        return cls(
            status=result.status,
            time_remaining_minutes=result.time_remaining_minutes,
            percentage_remaining=result.percentage_remaining,
            deadline=result.deadline,
            effective_deadline=result.effective_deadline,
            total_paused_minutes=result.total_paused_minutes,
            is_paused=result.is_paused,
        )


class TrackingResponse(BaseModel):
    """Response model for SLA tracking initialization."""
    entity_id: str
    policy_id: str
    target_hours: float
    started_at: datetime
    deadline: datetime
    sla: SLAStatusResponse

    @classmethod
    def from_domain(cls, result: TrackingResult) -> "TrackingResponse":
        return cls(
            entity_id=result.entity_id,
            policy_id=result.computation.policy_id,
            target_hours=result.computation.target_hours,
            started_at=result.started_at,
            deadline=result.computation.deadline,
            sla=SLAStatusResponse.from_domain(result.status),
        )


class PauseResponse(BaseModel):
    """Response model for a pause."""
    id: str = Field(..., description="Entity ID")
    paused_at: datetime
    pause_log_id: Optional[str] = None

    @classmethod
    def from_domain(cls, result: PauseResult) -> "PauseResponse":
        return cls(id=result.id, paused_at=result.paused_at, pause_log_id=result.pause_log_id)


class ResumeResponse(BaseModel):
    """Response model for a resume."""
    id: str = Field(..., description="Entity ID")
    paused_at: Optional[datetime] = Field(None, description="Always null after resume")
    total_paused_minutes: int
    pause_duration_minutes: int
    status: SlaStatusStr

    @classmethod
    def from_domain(cls, result: ResumeResult) -> "ResumeResponse":
        return cls(
            id=result.id,
            paused_at=result.paused_at,
            total_paused_minutes=result.total_paused_minutes,
            pause_duration_minutes=result.pause_duration_minutes,
            status=result.status,
        )


class PauseLogResponse(BaseModel):
    """Response model for one pause window."""
    id: str
    reason: PauseReasonStr
    paused_at: datetime
    resumed_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    formatted_duration: Optional[str] = Field(None, description="Null while still paused")
    paused_by: Optional[str] = None
    resumed_by: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_domain(cls, log: SlaPauseLog, formatted_duration: Optional[str]) -> "PauseLogResponse":
        return cls(
            id=log.id,
            reason=log.reason,
            paused_at=log.paused_at,
            resumed_at=log.resumed_at,
            duration_minutes=log.duration_minutes,
            formatted_duration=formatted_duration,
            paused_by=log.paused_by,
            resumed_by=log.resumed_by,
            notes=log.notes,
        )


class PauseStatsResponse(BaseModel):
    """Response model for pause statistics."""
    total_pauses: int
    completed_pauses: int
    active_pauses: int
    total_paused_minutes: int
    average_pause_minutes: int
    is_paused: bool
    formatted_total_paused: str
    pauses_by_reason: Dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, stats: PauseStats) -> "PauseStatsResponse":
        return cls(
            total_pauses=stats.total_pauses,
            completed_pauses=stats.completed_pauses,
            active_pauses=stats.active_pauses,
            total_paused_minutes=stats.total_paused_minutes,
            average_pause_minutes=stats.average_pause_minutes,
            is_paused=stats.is_paused,
            formatted_total_paused=stats.formatted_total_paused,
            pauses_by_reason=dict(stats.pauses_by_reason),
        )


class PauseHistoryResponse(BaseModel):
    """Response model for an entity's pause history."""
    entity_id: str
    pauses: List[PauseLogResponse] = Field(default_factory=list)
