"""
SLA Value Objects
==================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from opsdesk.config import (
    EntityKind, Priority, SlaStatus,
    VALID_ENTITY_KINDS, VALID_PRIORITIES
)


@dataclass(frozen=True)
class SlaComputationResult:
    """Deadline computed from a start instant and a resolved policy."""
    deadline: datetime
    target_hours: float
    policy_id: str


@dataclass(frozen=True)
class SlaStatusResult:
    """
    Live compliance classification of an SLA clock.

    ``effective_deadline`` is the original deadline shifted by accumulated
    pause time. Remaining time and percentage are already clamped.
    """
    status: SlaStatus
    time_remaining_minutes: int
    percentage_remaining: float
    deadline: datetime
    effective_deadline: datetime
    total_paused_minutes: int
    is_paused: bool

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "status": self.status,
            "time_remaining_minutes": self.time_remaining_minutes,
            "percentage_remaining": self.percentage_remaining,
            "deadline": self.deadline.isoformat(),
            "effective_deadline": self.effective_deadline.isoformat(),
            "total_paused_minutes": self.total_paused_minutes,
            "is_paused": self.is_paused,
        }


@dataclass(frozen=True)
class SlaTrackingInput:
    """What the workflow layer knows about an entity when it is created."""
    entity_kind: EntityKind
    priority: Optional[Priority]
    category: Optional[str] = None
    start_time: Union[datetime, str, None] = None


@dataclass(frozen=True)
class TrackingResult:
    """Outcome of initializing SLA tracking on an entity."""
    entity_id: str
    computation: SlaComputationResult
    status: SlaStatusResult
    started_at: datetime


@dataclass(frozen=True)
class PauseResult:
    """Outcome of pausing an SLA clock."""
    id: str
    paused_at: datetime
    pause_log_id: Optional[str] = None


@dataclass(frozen=True)
class ResumeResult:
    """Outcome of resuming an SLA clock."""
    id: str
    total_paused_minutes: int
    status: SlaStatus
    pause_duration_minutes: int
    paused_at: None = None


class PolicySeed(BaseModel):
    """SLA policy declared in the YAML configuration."""
    name: str = Field(..., min_length=1)
    target_entity_kind: str = Field(..., description="REQUEST or TASK")
    target_hours: float = Field(..., gt=0)
    priority: Optional[str] = None
    category: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    is_active: bool = True

    @field_validator("target_entity_kind")
    @classmethod
    def validate_entity_kind(cls, v: str) -> str:
        """Ensure the entity kind is known."""
        v = v.upper()
        if v not in VALID_ENTITY_KINDS:
            raise ValueError(f"target_entity_kind must be one of {VALID_ENTITY_KINDS}")
        return v

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v: Optional[str]) -> Optional[str]:
        """Ensure the priority is known (or absent)."""
        if v is None:
            return v
        v = v.upper()
        if v not in VALID_PRIORITIES:
            raise ValueError(f"priority must be one of {VALID_PRIORITIES}")
        return v


def _default_policies() -> List[PolicySeed]:
    return [
        PolicySeed(name="Request triage - all", target_entity_kind=EntityKind.REQUEST,
                   target_hours=8.0, description="Leader assigns within 8 hours"),
        PolicySeed(name="Task acknowledge - high", target_entity_kind=EntityKind.TASK,
                   priority=Priority.HIGH, target_hours=1.0,
                   description="Assignee acknowledges within 1 hour"),
        PolicySeed(name="Task acknowledge - medium", target_entity_kind=EntityKind.TASK,
                   priority=Priority.MEDIUM, target_hours=4.0,
                   description="Assignee acknowledges within 4 hours"),
        PolicySeed(name="Task acknowledge - low", target_entity_kind=EntityKind.TASK,
                   priority=Priority.LOW, target_hours=8.0,
                   description="Assignee acknowledges within 8 hours"),
        PolicySeed(name="Task review - all", target_entity_kind=EntityKind.TASK,
                   target_hours=24.0, description="Leader reviews within 24 hours"),
    ]


class SLAConfig(BaseModel):
    """
    SLA Configuration loaded from YAML.

    This is a value object - immutable and defined by its attributes.
    """
    at_risk_threshold_percent: float = Field(
        default=25.0,
        ge=0,
        le=100,
        description="Below this percentage of remaining window a clock is AT_RISK"
    )
    policies: List[PolicySeed] = Field(
        default_factory=_default_policies,
        description="Policies seeded into an empty policy store"
    )
