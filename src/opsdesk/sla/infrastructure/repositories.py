"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database.
"""

from typing import Any, Dict, List, Optional, Type
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.sla.application import (
    ISlaPolicyRepository, ITrackableEntityRepository, ISlaPauseLogRepository,
    EntityStoreRegistry
)
from opsdesk.sla.domain import SlaPolicy, TrackableEntity, SlaPauseLog, SLAConfig, as_utc
from opsdesk.sla.infrastructure.models import (
    SlaPolicyModel, RequestModel, TaskModel, SlaPauseLogModel
)
from opsdesk.config import EntityKind
from opsdesk.core import RepositoryException
from opsdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Columns the SLA core is allowed to write
SLA_FIELDS = frozenset({
    "sla_deadline",
    "sla_status",
    "sla_started_at",
    "sla_paused_at",
    "sla_total_paused_minutes",
})


def _utc_or_none(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    return as_utc(value) if value is not None else None


class SQLAlchemySlaPolicyRepository(ISlaPolicyRepository):
    """
    SQLAlchemy implementation of the policy store.

    Read-only from the SLA core's point of view.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_active(self, entity_kind: EntityKind) -> List[SlaPolicy]:
        """List active policies for an entity kind."""
        stmt = (
            select(SlaPolicyModel)
            .where(
                SlaPolicyModel.target_entity_kind == entity_kind,
                SlaPolicyModel.is_active.is_(True)
            )
            .order_by(SlaPolicyModel.id)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def count(self) -> int:
        """Count all policies, active or not."""
        result = await self._session.execute(select(func.count()).select_from(SlaPolicyModel))
        return result.scalar_one()

    @staticmethod
    def _to_domain(model: SlaPolicyModel) -> SlaPolicy:
        return SlaPolicy(
            id=model.id,
            name=model.name,
            description=model.description,
            target_entity_kind=model.target_entity_kind,
            priority=model.priority,
            category=model.category,
            target_hours=model.target_hours,
            is_active=model.is_active,
        )


class SQLAlchemyTrackableEntityRepository(ITrackableEntityRepository):
    """
    SQLAlchemy implementation of the SLA projection of one entity kind.

    Subclasses bind the ORM model and the kind. Writes are compare-and-set
    on ``sla_version``.
    """

    model: Type[Any]
    kind: EntityKind

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, entity_id: str) -> Optional[TrackableEntity]:
        """Get entity by ID."""
        stmt = (
            select(self.model)
            .where(self.model.id == entity_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model is not None else None

    async def compare_and_update(
        self,
        entity_id: str,
        expected_version: int,
        changes: Dict[str, Any]
    ) -> Optional[TrackableEntity]:
        """Apply SLA field changes if the version still matches."""
        unknown = set(changes) - SLA_FIELDS
        if unknown:
            raise RepositoryException(
                f"Not an SLA field: {', '.join(sorted(unknown))}",
                {"fields": sorted(unknown)}
            )

        values = {
            key: as_utc(value) if isinstance(value, datetime) else value
            for key, value in changes.items()
        }
        stmt = (
            update(self.model)
            .where(
                self.model.id == entity_id,
                self.model.sla_version == expected_version
            )
            .values(**values, sla_version=self.model.sla_version + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)

        if result.rowcount != 1:
            logger.info(
                "SLA compare-and-set lost",
                extra={
                    "entity_kind": self.kind,
                    "entity_id": entity_id,
                    "expected_version": expected_version
                }
            )
            return None

        return await self.get_by_id(entity_id)

    async def list_tracked(self) -> List[TrackableEntity]:
        """List entities that have an SLA deadline."""
        stmt = (
            select(self.model)
            .where(self.model.sla_deadline.is_not(None))
            .order_by(self.model.id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    def _to_domain(self, model: Any) -> TrackableEntity:
        return TrackableEntity(
            id=model.id,
            kind=self.kind,
            sla_deadline=_utc_or_none(model.sla_deadline),
            sla_status=model.sla_status,
            sla_started_at=_utc_or_none(model.sla_started_at),
            sla_paused_at=_utc_or_none(model.sla_paused_at),
            sla_total_paused_minutes=model.sla_total_paused_minutes or 0,
            sla_version=model.sla_version or 0,
        )


class SQLAlchemyRequestRepository(SQLAlchemyTrackableEntityRepository):
    """SLA projection of requests."""
    model = RequestModel
    kind = EntityKind.REQUEST


class SQLAlchemyTaskRepository(SQLAlchemyTrackableEntityRepository):
    """SLA projection of tasks."""
    model = TaskModel
    kind = EntityKind.TASK


def build_entity_store_registry(session: AsyncSession) -> EntityStoreRegistry:
    """Registry binding each entity kind to its SQL repository."""
    return EntityStoreRegistry({
        EntityKind.REQUEST: SQLAlchemyRequestRepository(session),
        EntityKind.TASK: SQLAlchemyTaskRepository(session),
    })


class SQLAlchemySlaPauseLogRepository(ISlaPauseLogRepository):
    """
    SQLAlchemy implementation of the pause log.

    Handles persistence of SlaPauseLog entities.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, log: SlaPauseLog) -> SlaPauseLog:
        """Create new pause log."""
        model = SlaPauseLogModel(
            entity_kind=log.entity_kind,
            entity_id=log.entity_id,
            reason=log.reason,
            paused_at=as_utc(log.paused_at),
            paused_by=log.paused_by,
            notes=log.notes,
        )
        if log.id:
            model.id = UUID(log.id)

        self._session.add(model)
        await self._session.flush()

        # Update log with generated ID
        log.id = str(model.id)
        return log

    async def get_active(
        self,
        entity_kind: EntityKind,
        entity_id: str
    ) -> Optional[SlaPauseLog]:
        """Get the open pause log of an entity."""
        stmt = (
            select(SlaPauseLogModel)
            .where(
                SlaPauseLogModel.entity_kind == entity_kind,
                SlaPauseLogModel.entity_id == entity_id,
                SlaPauseLogModel.resumed_at.is_(None)
            )
            .order_by(SlaPauseLogModel.paused_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model is not None else None

    async def close(
        self,
        log_id: str,
        resumed_at: datetime,
        duration_minutes: int,
        resumed_by: Optional[str] = None
    ) -> Optional[SlaPauseLog]:
        """Close a pause log."""
        try:
            log_uuid = UUID(log_id)
        except ValueError:
            raise RepositoryException(f"Invalid pause log ID: {log_id}")

        model = await self._session.get(SlaPauseLogModel, log_uuid)
        if model is None:
            return None

        model.resumed_at = as_utc(resumed_at)
        model.duration_minutes = duration_minutes
        model.resumed_by = resumed_by
        await self._session.flush()

        return self._to_domain(model)

    async def list_for_entity(
        self,
        entity_kind: EntityKind,
        entity_id: str
    ) -> List[SlaPauseLog]:
        """List pause logs of an entity, newest first."""
        stmt = (
            select(SlaPauseLogModel)
            .where(
                SlaPauseLogModel.entity_kind == entity_kind,
                SlaPauseLogModel.entity_id == entity_id
            )
            .order_by(SlaPauseLogModel.paused_at.desc())
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    @staticmethod
    def _to_domain(model: SlaPauseLogModel) -> SlaPauseLog:
        return SlaPauseLog(
            id=str(model.id),
            entity_kind=model.entity_kind,
            entity_id=model.entity_id,
            reason=model.reason,
            paused_at=as_utc(model.paused_at),
            paused_by=model.paused_by,
            notes=model.notes,
            resumed_at=_utc_or_none(model.resumed_at),
            resumed_by=model.resumed_by,
            duration_minutes=model.duration_minutes,
        )


async def seed_policies(session: AsyncSession, config: SLAConfig) -> int:
    """
    Insert the configured policies into an empty policy table.

    Existing policies are never touched.

    Returns:
        Number of policies inserted
    """
    if await SQLAlchemySlaPolicyRepository(session).count() > 0:
        logger.debug("SLA policy table already populated, skipping seed")
        return 0

    for seed in config.policies:
        session.add(SlaPolicyModel(
            name=seed.name,
            description=seed.description,
            target_entity_kind=seed.target_entity_kind,
            priority=seed.priority,
            category=seed.category,
            target_hours=seed.target_hours,
            is_active=seed.is_active,
        ))
    await session.flush()

    logger.info("SLA policies seeded", extra={"count": len(config.policies)})
    return len(config.policies)
