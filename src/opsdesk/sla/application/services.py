"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain services and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations

Every write to an entity's SLA fields is a compare-and-set on
``sla_version``; a lost race surfaces as an exception, never as a
silently overwritten clock.
"""

import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from opsdesk.config import (
    EntityKind, Priority, SlaStatus, PauseReason,
    VALID_ENTITY_KINDS, VALID_PAUSE_REASONS
)
from opsdesk.core.exceptions import (
    ResourceNotFoundException,
    ValidationException,
    ConcurrentUpdateException,
    AlreadyPausedException,
    NotPausedException,
    NoDeadlineSetException,
)
from opsdesk.sla.domain import (
    SlaPolicy, TrackableEntity, SlaPauseLog, PauseStats,
    SlaStatusResult, SlaTrackingInput, TrackingResult,
    PauseResult, ResumeResult, SLAConfig,
    PolicyResolver, DeadlineCalculator, StatusEngine,
    utc_now, minutes_between,
)
from opsdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


# ========== Repository Interfaces (Dependency Inversion) ==========

class ISlaPolicyRepository(ABC):
    """Interface for read-only SLA policy access."""

    @abstractmethod
    async def list_active(self, entity_kind: EntityKind) -> List[SlaPolicy]:
        """List active policies for an entity kind."""


class ITrackableEntityRepository(ABC):
    """Interface for the SLA projection of one entity kind."""

    @abstractmethod
    async def get_by_id(self, entity_id: str) -> Optional[TrackableEntity]:
        """Get entity by ID."""

    @abstractmethod
    async def compare_and_update(
        self,
        entity_id: str,
        expected_version: int,
        changes: Dict[str, Any]
    ) -> Optional[TrackableEntity]:
        """
        Apply ``changes`` only if the stored version is ``expected_version``.

        Returns the updated entity (version incremented), or None if the
        version no longer matches.
        """

    @abstractmethod
    async def list_tracked(self) -> List[TrackableEntity]:
        """List entities that have an SLA deadline."""


class ISlaPauseLogRepository(ABC):
    """Interface for pause log data access."""

    @abstractmethod
    async def create(self, log: SlaPauseLog) -> SlaPauseLog:
        """Create new pause log; returns it with its ID assigned."""

    @abstractmethod
    async def get_active(
        self,
        entity_kind: EntityKind,
        entity_id: str
    ) -> Optional[SlaPauseLog]:
        """Get the open pause log of an entity, if any."""

    @abstractmethod
    async def close(
        self,
        log_id: str,
        resumed_at: datetime,
        duration_minutes: int,
        resumed_by: Optional[str] = None
    ) -> Optional[SlaPauseLog]:
        """Close a pause log."""

    @abstractmethod
    async def list_for_entity(
        self,
        entity_kind: EntityKind,
        entity_id: str
    ) -> List[SlaPauseLog]:
        """List pause logs of an entity, newest first."""


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""


# ========== Entity store dispatch ==========

class EntityStoreRegistry:
    """
    Maps each entity kind to the repository that stores it.

    The kind is always known up front, so dispatch is a lookup.
    """

    def __init__(self, stores: Optional[Dict[str, ITrackableEntityRepository]] = None):
        self._stores: Dict[str, ITrackableEntityRepository] = {}
        for kind, store in (stores or {}).items():
            self.register(kind, store)

    def register(self, entity_kind: EntityKind, store: ITrackableEntityRepository) -> None:
        """Bind a repository to an entity kind."""
        if entity_kind not in VALID_ENTITY_KINDS:
            raise ValidationException(
                f"Unknown entity kind: {entity_kind}",
                {"entity_kind": entity_kind, "allowed": VALID_ENTITY_KINDS}
            )
        self._stores[entity_kind] = store

    def get(self, entity_kind: EntityKind) -> ITrackableEntityRepository:
        """
        Get the repository for an entity kind.

        Raises:
            ValidationException: Kind is unknown or has no store bound
        """
        store = self._stores.get(entity_kind)
        if store is None:
            raise ValidationException(
                f"No entity store registered for kind: {entity_kind}",
                {"entity_kind": entity_kind}
            )
        return store

    @property
    def kinds(self) -> List[str]:
        return list(self._stores)


# ========== Policy cache ==========

class PolicyCache:
    """
    Process-wide cache of active policies per entity kind.

    Entries expire after ``ttl_seconds``; ``invalidate()`` drops them at
    once. A TTL of 0 disables caching.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, List[SlaPolicy]]] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self, entity_kind: EntityKind) -> Optional[List[SlaPolicy]]:
        """Cached policies for a kind, or None when missing or expired."""
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(entity_kind)
            if entry is None:
                return None
            stored_at, policies = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[entity_kind]
                return None
            return list(policies)

    def put(self, entity_kind: EntityKind, policies: List[SlaPolicy]) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries[entity_kind] = (self._clock(), list(policies))

    def invalidate(self, entity_kind: Optional[EntityKind] = None) -> None:
        """Drop cached policies for one kind, or for all kinds."""
        with self._lock:
            if entity_kind is None:
                self._entries.clear()
            else:
                self._entries.pop(entity_kind, None)
        logger.debug("SLA policy cache invalidated", extra={"entity_kind": entity_kind})


class CachedPolicyRepository(ISlaPolicyRepository):
    """Read-through wrapper putting a PolicyCache in front of a policy store."""

    def __init__(self, inner: ISlaPolicyRepository, cache: PolicyCache):
        self._inner = inner
        self._cache = cache

    async def list_active(self, entity_kind: EntityKind) -> List[SlaPolicy]:
        cached = self._cache.get(entity_kind)
        if cached is not None:
            return cached

        policies = await self._inner.list_active(entity_kind)
        self._cache.put(entity_kind, policies)
        return policies


# ========== Application Services ==========

class PolicyService:
    """Service for listing and resolving SLA policies."""

    def __init__(self, policy_repository: ISlaPolicyRepository):
        self._policy_repo = policy_repository

    async def list_policies(self, entity_kind: EntityKind) -> List[SlaPolicy]:
        """List active policies of a kind, ordered by ID."""
        _check_kind(entity_kind)
        policies = await self._policy_repo.list_active(entity_kind)
        return sorted(policies, key=lambda p: str(p.id))

    async def resolve(
        self,
        entity_kind: EntityKind,
        priority: Optional[Priority],
        category: Optional[str] = None
    ) -> SlaPolicy:
        """
        Resolve the most specific policy for an entity.

        Raises:
            NoPolicyFoundException: No active policy matches
        """
        _check_kind(entity_kind)
        policies = await self._policy_repo.list_active(entity_kind)
        policy = PolicyResolver.resolve(policies, entity_kind, priority, category)

        logger.debug(
            "SLA policy resolved",
            extra={
                "entity_kind": entity_kind,
                "priority": priority,
                "category": category,
                "policy_id": policy.id,
                "target_hours": policy.target_hours
            }
        )
        return policy


class SLAPauseService:
    """
    Service for pausing and resuming SLA clocks.

    Pause time is accumulated on the entity at resume; each pause window
    is also recorded in the pause log for history and statistics.
    """

    def __init__(
        self,
        entity_stores: EntityStoreRegistry,
        pause_log_repository: ISlaPauseLogRepository,
        config_provider: ISLAConfigProvider,
        clock: Clock = utc_now
    ):
        self._stores = entity_stores
        self._pause_logs = pause_log_repository
        self._config_provider = config_provider
        self._clock = clock

    async def pause(
        self,
        entity_kind: EntityKind,
        entity_id: str,
        reason: PauseReason = PauseReason.MANUAL,
        paused_by: Optional[str] = None,
        notes: Optional[str] = None
    ) -> PauseResult:
        """
        Pause an entity's SLA clock.

        Args:
            entity_kind: REQUEST or TASK
            entity_id: Entity ID
            reason: Why the clock stops
            paused_by: Acting user, if known
            notes: Free-text context

        Returns:
            PauseResult with the pause instant

        Raises:
            AlreadyPausedException: Clock is already paused
            ConcurrentUpdateException: Entity changed underneath us
        """
        if reason not in VALID_PAUSE_REASONS:
            raise ValidationException(
                f"Invalid pause reason: {reason}",
                {"reason": reason, "allowed": VALID_PAUSE_REASONS}
            )

        store = self._stores.get(entity_kind)
        entity = await _load_entity(store, entity_kind, entity_id)
        if entity.is_paused:
            raise AlreadyPausedException(entity_id, entity.sla_paused_at)

        now = self._clock()
        updated = await store.compare_and_update(
            entity_id, entity.sla_version, {"sla_paused_at": now}
        )
        if updated is None:
            current = await _load_entity(store, entity_kind, entity_id)
            if current.is_paused:
                raise AlreadyPausedException(entity_id, current.sla_paused_at)
            raise ConcurrentUpdateException(entity_kind, entity_id, entity.sla_version)

        log = await self._pause_logs.create(SlaPauseLog(
            id=None,
            entity_kind=entity_kind,
            entity_id=entity_id,
            reason=reason,
            paused_at=now,
            paused_by=paused_by,
            notes=notes,
        ))

        logger.info(
            "SLA paused",
            extra={
                "entity_kind": entity_kind,
                "entity_id": entity_id,
                "reason": reason,
                "paused_by": paused_by,
                "pause_log_id": log.id
            }
        )
        return PauseResult(id=entity_id, paused_at=now, pause_log_id=log.id)

    async def resume(
        self,
        entity_kind: EntityKind,
        entity_id: str,
        resumed_by: Optional[str] = None
    ) -> ResumeResult:
        """
        Resume a paused SLA clock.

        The pause duration is added to the accumulated total and the
        status recomputed against the shifted deadline. Paused-at, total
        and status are written in one update.

        Raises:
            NotPausedException: Clock is running
            ConcurrentUpdateException: Entity changed underneath us
        """
        store = self._stores.get(entity_kind)
        entity = await _load_entity(store, entity_kind, entity_id)
        if not entity.is_paused:
            raise NotPausedException(entity_id)

        now = self._clock()
        pause_duration = max(0, minutes_between(now, entity.sla_paused_at))
        new_total = entity.sla_total_paused_minutes + pause_duration

        if entity.sla_deadline is not None:
            engine = StatusEngine(self._config_provider.get_config().at_risk_threshold_percent)
            status = engine.classify(
                entity.sla_deadline,
                total_paused_minutes=new_total,
                started_at=entity.sla_started_at,
                now=now
            ).status
        else:
            status = SlaStatus.ON_TIME

        updated = await store.compare_and_update(
            entity_id,
            entity.sla_version,
            {
                "sla_paused_at": None,
                "sla_total_paused_minutes": new_total,
                "sla_status": status,
            }
        )
        if updated is None:
            current = await _load_entity(store, entity_kind, entity_id)
            if not current.is_paused:
                raise NotPausedException(entity_id)
            raise ConcurrentUpdateException(entity_kind, entity_id, entity.sla_version)

        active = await self._pause_logs.get_active(entity_kind, entity_id)
        if active is not None:
            await self._pause_logs.close(active.id, now, pause_duration, resumed_by)
        else:
            logger.warning(
                "Resumed SLA without an open pause log",
                extra={"entity_kind": entity_kind, "entity_id": entity_id}
            )

        logger.info(
            "SLA resumed",
            extra={
                "entity_kind": entity_kind,
                "entity_id": entity_id,
                "pause_duration_minutes": pause_duration,
                "total_paused_minutes": new_total,
                "sla_status": status
            }
        )
        return ResumeResult(
            id=entity_id,
            total_paused_minutes=new_total,
            status=status,
            pause_duration_minutes=pause_duration,
        )

    async def get_pause_history(
        self,
        entity_kind: EntityKind,
        entity_id: str
    ) -> List[SlaPauseLog]:
        """All pause windows of an entity, newest first."""
        await _load_entity(self._stores.get(entity_kind), entity_kind, entity_id)
        return await self._pause_logs.list_for_entity(entity_kind, entity_id)

    async def get_active_pause(
        self,
        entity_kind: EntityKind,
        entity_id: str
    ) -> Optional[SlaPauseLog]:
        """The open pause window of an entity, if any."""
        await _load_entity(self._stores.get(entity_kind), entity_kind, entity_id)
        return await self._pause_logs.get_active(entity_kind, entity_id)

    async def get_pause_stats(
        self,
        entity_kind: EntityKind,
        entity_id: str
    ) -> PauseStats:
        """Aggregate pause statistics of an entity."""
        entity = await _load_entity(self._stores.get(entity_kind), entity_kind, entity_id)
        logs = await self._pause_logs.list_for_entity(entity_kind, entity_id)
        return PauseStats.from_logs(
            logs,
            total_paused_minutes=entity.sla_total_paused_minutes,
            is_paused=entity.is_paused,
            formatted_total_paused=self.format_duration(entity.sla_total_paused_minutes),
        )

    @staticmethod
    def format_duration(minutes: int) -> str:
        """
        Human-readable duration.

        >>> SLAPauseService.format_duration(135)
        '2 hours 15 minutes'
        """
        if minutes < 60:
            return _plural(minutes, "minute")

        hours, remaining = divmod(minutes, 60)
        if remaining == 0:
            return _plural(hours, "hour")
        return f"{_plural(hours, 'hour')} {_plural(remaining, 'minute')}"


class SLATrackingService:
    """
    Facade for SLA tracking on requests and tasks.

    Resolves the policy, computes the deadline and classifies the clock
    when tracking starts, and keeps the persisted status current.
    """

    def __init__(
        self,
        policy_repository: ISlaPolicyRepository,
        entity_stores: EntityStoreRegistry,
        config_provider: ISLAConfigProvider,
        clock: Clock = utc_now
    ):
        self._policies = PolicyService(policy_repository)
        self._stores = entity_stores
        self._config_provider = config_provider
        self._clock = clock

    def _engine(self) -> StatusEngine:
        return StatusEngine(self._config_provider.get_config().at_risk_threshold_percent)

    async def initialize(
        self,
        tracking_input: SlaTrackingInput,
        entity_id: str
    ) -> TrackingResult:
        """
        Start SLA tracking on an entity.

        Nothing is written if policy resolution or deadline computation
        fails.

        Args:
            tracking_input: Kind, priority, category and optional start
            entity_id: Entity to track

        Returns:
            TrackingResult with the computed deadline and initial status

        Raises:
            NoPolicyFoundException: No active policy matches
            InvalidStartTimeException: Start time is not a valid instant
            ResourceNotFoundException: Entity does not exist
            AlreadyPausedException: Entity is paused; resume it first
        """
        entity_kind = tracking_input.entity_kind
        store = self._stores.get(entity_kind)

        policy = await self._policies.resolve(
            entity_kind, tracking_input.priority, tracking_input.category
        )
        start = tracking_input.start_time
        if start is None:
            start = self._clock()
        started_at = DeadlineCalculator.parse_start_time(start)
        computation = DeadlineCalculator.compute_deadline(started_at, policy)

        status = self._engine().classify(
            computation.deadline,
            total_paused_minutes=0,
            started_at=started_at,
            now=self._clock()
        )

        entity = await _load_entity(store, entity_kind, entity_id)
        if entity.is_paused:
            raise AlreadyPausedException(entity_id, entity.sla_paused_at)

        updated = await store.compare_and_update(
            entity_id,
            entity.sla_version,
            {
                "sla_deadline": computation.deadline,
                "sla_status": status.status,
                "sla_started_at": started_at,
                "sla_paused_at": None,
                "sla_total_paused_minutes": 0,
            }
        )
        if updated is None:
            raise ConcurrentUpdateException(entity_kind, entity_id, entity.sla_version)

        logger.info(
            "SLA tracking initialized",
            extra={
                "entity_kind": entity_kind,
                "entity_id": entity_id,
                "policy_id": policy.id,
                "target_hours": policy.target_hours,
                "deadline": computation.deadline.isoformat(),
                "sla_status": status.status
            }
        )
        return TrackingResult(
            entity_id=entity_id,
            computation=computation,
            status=status,
            started_at=started_at,
        )

    async def get_status(
        self,
        entity_kind: EntityKind,
        entity_id: str
    ) -> SlaStatusResult:
        """Classify an entity's SLA clock without persisting anything."""
        entity = await _load_entity(self._stores.get(entity_kind), entity_kind, entity_id)
        return self._classify(entity)

    async def refresh_status(
        self,
        entity_kind: EntityKind,
        entity_id: str
    ) -> SlaStatusResult:
        """
        Recompute and persist an entity's SLA status.

        Raises:
            NoDeadlineSetException: Tracking was never initialized
            ConcurrentUpdateException: Entity changed underneath us
        """
        store = self._stores.get(entity_kind)
        entity = await _load_entity(store, entity_kind, entity_id)
        return await self._refresh(store, entity)

    async def refresh_all(self, entity_kind: EntityKind) -> Dict[str, int]:
        """
        Refresh every tracked entity of a kind.

        Failures are logged and counted, never raised, so one bad entity
        does not stop the sweep.

        Returns:
            Counts of refreshed, changed and failed entities
        """
        store = self._stores.get(entity_kind)
        entities = await store.list_tracked()

        refreshed = changed = failed = 0
        for entity in entities:
            previous = entity.sla_status
            try:
                result = await self._refresh(store, entity)
            except Exception as e:
                failed += 1
                logger.error(
                    "SLA refresh failed",
                    extra={
                        "entity_kind": entity_kind,
                        "entity_id": entity.id,
                        "error_type": type(e).__name__,
                        "error": str(e)
                    }
                )
                continue

            refreshed += 1
            if result.status != previous:
                changed += 1

        logger.info(
            "SLA refresh sweep completed",
            extra={
                "entity_kind": entity_kind,
                "total": len(entities),
                "refreshed": refreshed,
                "changed": changed,
                "failed": failed
            }
        )
        return {"total": len(entities), "refreshed": refreshed, "changed": changed, "failed": failed}

    async def _refresh(
        self,
        store: ITrackableEntityRepository,
        entity: TrackableEntity
    ) -> SlaStatusResult:
        result = self._classify(entity)

        updated = await store.compare_and_update(
            entity.id, entity.sla_version, {"sla_status": result.status}
        )
        if updated is None:
            raise ConcurrentUpdateException(entity.kind, entity.id, entity.sla_version)

        if result.status != entity.sla_status:
            logger.info(
                "SLA status changed",
                extra={
                    "entity_kind": entity.kind,
                    "entity_id": entity.id,
                    "previous_status": entity.sla_status,
                    "sla_status": result.status,
                    "time_remaining_minutes": result.time_remaining_minutes
                }
            )
        return result

    def _classify(self, entity: TrackableEntity) -> SlaStatusResult:
        if entity.sla_deadline is None:
            raise NoDeadlineSetException(entity.id)

        return self._engine().classify(
            entity.sla_deadline,
            live_entity=entity,
            now=self._clock()
        )


# ========== Helpers ==========

def _check_kind(entity_kind: str) -> None:
    if entity_kind not in VALID_ENTITY_KINDS:
        raise ValidationException(
            f"Unknown entity kind: {entity_kind}",
            {"entity_kind": entity_kind, "allowed": VALID_ENTITY_KINDS}
        )


async def _load_entity(
    store: ITrackableEntityRepository,
    entity_kind: EntityKind,
    entity_id: str
) -> TrackableEntity:
    entity = await store.get_by_id(entity_id)
    if entity is None:
        raise ResourceNotFoundException(entity_kind.title(), entity_id)
    return entity


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"
