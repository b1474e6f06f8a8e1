"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import String, DateTime, Boolean, Integer, Float, Text, Uuid, Index
from sqlalchemy.orm import Mapped, mapped_column

from opsdesk.infrastructure.database import Base
from opsdesk.config import EntityKind, Priority, SlaStatus, PauseReason


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SlaPolicyModel(Base):
    """
    Database model for SlaPolicy entity.

    Maps to the 'sla_policies' table.
    """
    __tablename__ = "sla_policies"

    # Primary key
    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))

    # Display
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Scope (null = any)
    target_entity_kind: Mapped[EntityKind] = mapped_column(String(20), nullable=False, index=True)
    priority: Mapped[Optional[Priority]] = mapped_column(String(20), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    target_hours: Mapped[float] = mapped_column(Float, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class SlaTrackingMixin:
    """SLA columns shared by every trackable table."""

    sla_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sla_status: Mapped[Optional[SlaStatus]] = mapped_column(String(20), nullable=True)
    sla_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sla_paused_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sla_total_paused_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Optimistic concurrency token, bumped on every SLA write
    sla_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class RequestModel(SlaTrackingMixin, Base):
    """
    SLA projection of a request.

    Maps to the 'requests' table.
    """
    __tablename__ = "requests"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    priority: Mapped[Optional[Priority]] = mapped_column(String(20), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class TaskModel(SlaTrackingMixin, Base):
    """
    SLA projection of a task.

    Maps to the 'tasks' table.
    """
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    priority: Mapped[Optional[Priority]] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class SlaPauseLogModel(Base):
    """
    Database model for SlaPauseLog entity.

    Maps to the 'sla_pause_logs' table.
    """
    __tablename__ = "sla_pause_logs"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Entity reference
    entity_kind: Mapped[EntityKind] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Pause window
    reason: Mapped[PauseReason] = mapped_column(String(30), nullable=False)
    paused_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Actors
    paused_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    resumed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_sla_pause_logs_entity", "entity_kind", "entity_id"),
    )
