from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from opsdesk.sla.application import (
    ISlaPolicyRepository,
    ITrackableEntityRepository,
    ISlaPauseLogRepository,
)
from opsdesk.sla.domain import SlaPolicy, TrackableEntity, SlaPauseLog


class InMemoryPolicyRepository(ISlaPolicyRepository):
    def __init__(self, policies: List[SlaPolicy] | None = None) -> None:
        self.policies = list(policies or [])
        self.calls = 0

    async def list_active(self, entity_kind: str) -> List[SlaPolicy]:
        self.calls += 1
        return [p for p in self.policies if p.is_active and p.target_entity_kind == entity_kind]


class InMemoryEntityRepository(ITrackableEntityRepository):
    """
    Dict-backed entity store with a real version check.

    ``before_update`` runs once, right before the next compare-and-set,
    to simulate a concurrent writer.
    """

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._entities: Dict[str, TrackableEntity] = {}
        self.before_update: Optional[Callable[["InMemoryEntityRepository"], None]] = None
        self.writes: List[Dict[str, Any]] = []

    def add(self, entity: TrackableEntity) -> TrackableEntity:
        self._entities[entity.id] = replace(entity)
        return entity

    def stored(self, entity_id: str) -> TrackableEntity:
        return replace(self._entities[entity_id])

    def force(self, entity_id: str, **changes: Any) -> None:
        current = self._entities[entity_id]
        self._entities[entity_id] = replace(current, **changes, sla_version=current.sla_version + 1)

    async def get_by_id(self, entity_id: str) -> Optional[TrackableEntity]:
        entity = self._entities.get(entity_id)
        return replace(entity) if entity is not None else None

    async def compare_and_update(
        self,
        entity_id: str,
        expected_version: int,
        changes: Dict[str, Any],
    ) -> Optional[TrackableEntity]:
        if self.before_update is not None:
            hook, self.before_update = self.before_update, None
            hook(self)

        current = self._entities.get(entity_id)
        if current is None or current.sla_version != expected_version:
            return None

        updated = replace(current, **changes, sla_version=current.sla_version + 1)
        self._entities[entity_id] = updated
        self.writes.append(dict(changes))
        return replace(updated)

    async def list_tracked(self) -> List[TrackableEntity]:
        return [
            replace(e) for _, e in sorted(self._entities.items())
            if e.sla_deadline is not None
        ]


class InMemoryPauseLogRepository(ISlaPauseLogRepository):
    def __init__(self) -> None:
        self.logs: List[SlaPauseLog] = []

    async def create(self, log: SlaPauseLog) -> SlaPauseLog:
        log.id = log.id or str(uuid4())
        self.logs.append(replace(log))
        return log

    async def get_active(self, entity_kind: str, entity_id: str) -> Optional[SlaPauseLog]:
        for log in reversed(self.logs):
            if log.entity_kind == entity_kind and log.entity_id == entity_id and log.is_active:
                return replace(log)
        return None

    async def close(
        self,
        log_id: str,
        resumed_at: datetime,
        duration_minutes: int,
        resumed_by: Optional[str] = None,
    ) -> Optional[SlaPauseLog]:
        for log in self.logs:
            if log.id == log_id:
                log.close(resumed_at, duration_minutes, resumed_by)
                return replace(log)
        return None

    async def list_for_entity(self, entity_kind: str, entity_id: str) -> List[SlaPauseLog]:
        matching = [
            replace(log) for log in self.logs
            if log.entity_kind == entity_kind and log.entity_id == entity_id
        ]
        return sorted(matching, key=lambda log: log.paused_at, reverse=True)
