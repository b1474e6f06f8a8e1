"""
SLA Domain Entities
====================

Pure Python domain entities for SLA tracking.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from opsdesk.config import EntityKind, Priority, SlaStatus, PauseReason


@dataclass(frozen=True)
class SlaPolicy:
    """
    SLA policy scoped to an entity kind.

    A null priority or category means the policy applies to any value.
    Policies are immutable once created; the tracking core only reads them.
    """

    id: str
    target_entity_kind: EntityKind
    target_hours: float
    priority: Optional[Priority] = None
    category: Optional[str] = None
    is_active: bool = True
    name: str = ""
    description: Optional[str] = None

    def __post_init__(self):
        """Validate policy on initialization."""
        if not math.isfinite(self.target_hours) or self.target_hours <= 0:
            raise ValueError("target_hours must be a positive finite number")

    @property
    def is_generic(self) -> bool:
        """True for the priority-agnostic, category-agnostic fallback."""
        return self.priority is None and self.category is None

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "target_entity_kind": self.target_entity_kind,
            "priority": self.priority,
            "category": self.category,
            "target_hours": self.target_hours,
            "is_active": self.is_active,
        }


@dataclass
class TrackableEntity:
    """
    SLA-relevant projection of a request or task.

    Fields are empty until tracking is initialized. ``sla_paused_at`` is set
    exactly while the SLA clock is paused, and ``sla_total_paused_minutes``
    only grows, at resume time. ``sla_version`` is bumped by every SLA write
    and guards compare-and-set updates.
    """

    id: str
    kind: EntityKind
    sla_deadline: Optional[datetime] = None
    sla_status: Optional[SlaStatus] = None
    sla_started_at: Optional[datetime] = None
    sla_paused_at: Optional[datetime] = None
    sla_total_paused_minutes: int = 0
    sla_version: int = 0

    def __post_init__(self):
        """Validate entity on initialization."""
        if self.sla_total_paused_minutes < 0:
            raise ValueError("sla_total_paused_minutes cannot be negative")

    @property
    def is_paused(self) -> bool:
        """Check if the SLA clock is currently paused."""
        return self.sla_paused_at is not None

    @property
    def is_tracked(self) -> bool:
        """Check if SLA tracking has been initialized."""
        return self.sla_deadline is not None


@dataclass
class SlaPauseLog:
    """
    One pause window on an entity's SLA clock.

    Open while ``resumed_at`` is None; closed at resume with its duration.
    """

    id: Optional[str]
    entity_kind: EntityKind
    entity_id: str
    reason: PauseReason
    paused_at: datetime
    paused_by: Optional[str] = None
    notes: Optional[str] = None
    resumed_at: Optional[datetime] = None
    resumed_by: Optional[str] = None
    duration_minutes: Optional[int] = None

    @property
    def is_active(self) -> bool:
        """Check if this pause window is still open."""
        return self.resumed_at is None

    def close(
        self,
        resumed_at: datetime,
        duration_minutes: int,
        resumed_by: Optional[str] = None
    ) -> None:
        """Close the pause window."""
        self.resumed_at = resumed_at
        self.duration_minutes = duration_minutes
        self.resumed_by = resumed_by


@dataclass
class PauseStats:
    """Aggregate pause statistics for one entity."""

    total_pauses: int
    completed_pauses: int
    active_pauses: int
    total_paused_minutes: int
    average_pause_minutes: int
    is_paused: bool
    formatted_total_paused: str
    pauses_by_reason: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_logs(
        cls,
        logs: List[SlaPauseLog],
        total_paused_minutes: int,
        is_paused: bool,
        formatted_total_paused: str
    ) -> "PauseStats":
        """Build statistics from an entity's pause history."""
        durations = [log.duration_minutes for log in logs if log.duration_minutes is not None]
        by_reason: Dict[str, int] = {}
        for log in logs:
            by_reason[log.reason] = by_reason.get(log.reason, 0) + 1

        return cls(
            total_pauses=len(logs),
            completed_pauses=sum(1 for log in logs if not log.is_active),
            active_pauses=sum(1 for log in logs if log.is_active),
            total_paused_minutes=total_paused_minutes,
            average_pause_minutes=round(sum(durations) / len(durations)) if durations else 0,
            is_paused=is_paused,
            formatted_total_paused=formatted_total_paused,
            pauses_by_reason=by_reason,
        )
