from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from dateutil import tz

from opsdesk.config import EntityKind, PauseReason, Priority, SlaStatus
from opsdesk.core.exceptions import AlreadyPausedException, RepositoryException
from opsdesk.infrastructure.database import close_database, create_tables, get_session_maker, init_database
from opsdesk.sla.application import SLAPauseService
from opsdesk.sla.domain import SLAConfig, SlaPauseLog
from opsdesk.sla.infrastructure import (
    RequestModel,
    SQLAlchemyRequestRepository,
    SQLAlchemySlaPauseLogRepository,
    SQLAlchemySlaPolicyRepository,
    TaskModel,
    build_entity_store_registry,
    seed_policies,
)

from tests.fixtures.frozen_clock import FrozenClock
from tests.fixtures.static_config_provider import StaticConfigProvider

NOW = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def session(tmp_path):
    init_database(f"sqlite+aiosqlite:///{tmp_path / 'sla.db'}")
    await create_tables()
    async with get_session_maker()() as session:
        yield session
    await close_database()


@pytest.mark.asyncio
async def test_seed_inserts_default_policies_once(session) -> None:
    assert await seed_policies(session, SLAConfig()) == 5
    assert await seed_policies(session, SLAConfig()) == 0

    repo = SQLAlchemySlaPolicyRepository(session)
    tasks = await repo.list_active(EntityKind.TASK)
    requests = await repo.list_active(EntityKind.REQUEST)

    assert len(tasks) == 4
    assert [p.target_hours for p in requests] == [8.0]
    assert {p.priority for p in tasks} == {Priority.HIGH, Priority.MEDIUM, Priority.LOW, None}
    assert [p.id for p in tasks] == sorted(p.id for p in tasks)


@pytest.mark.asyncio
async def test_compare_and_update_bumps_version_and_normalizes_to_utc(session) -> None:
    session.add(RequestModel(id="REQ-1", title="Laptop"))
    await session.flush()
    repo = SQLAlchemyRequestRepository(session)

    entity = await repo.get_by_id("REQ-1")
    assert entity.sla_version == 0
    assert entity.kind == EntityKind.REQUEST
    assert not entity.is_tracked

    local_deadline = datetime(2025, 1, 15, 5, 0, tzinfo=tz.gettz("America/New_York"))
    updated = await repo.compare_and_update(
        "REQ-1", 0, {"sla_deadline": local_deadline, "sla_status": SlaStatus.ON_TIME}
    )

    assert updated.sla_version == 1
    assert updated.sla_deadline == datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)
    assert updated.sla_deadline.utcoffset() == timedelta(0)
    assert updated.sla_status == SlaStatus.ON_TIME


@pytest.mark.asyncio
async def test_stale_version_is_rejected(session) -> None:
    session.add(RequestModel(id="REQ-1"))
    await session.flush()
    repo = SQLAlchemyRequestRepository(session)

    assert await repo.compare_and_update("REQ-1", 0, {"sla_paused_at": NOW}) is not None
    assert await repo.compare_and_update("REQ-1", 0, {"sla_paused_at": None}) is None

    entity = await repo.get_by_id("REQ-1")
    assert entity.sla_paused_at == NOW
    assert entity.sla_version == 1


@pytest.mark.asyncio
async def test_only_sla_fields_are_writable(session) -> None:
    session.add(RequestModel(id="REQ-1"))
    await session.flush()

    with pytest.raises(RepositoryException):
        await SQLAlchemyRequestRepository(session).compare_and_update("REQ-1", 0, {"title": "x"})


@pytest.mark.asyncio
async def test_list_tracked_skips_untracked(session) -> None:
    session.add_all([
        TaskModel(id="TASK-1", sla_deadline=NOW),
        TaskModel(id="TASK-2"),
    ])
    await session.flush()

    tracked = await build_entity_store_registry(session).get(EntityKind.TASK).list_tracked()

    assert [e.id for e in tracked] == ["TASK-1"]
    assert tracked[0].sla_deadline == NOW


@pytest.mark.asyncio
async def test_pause_log_lifecycle(session) -> None:
    repo = SQLAlchemySlaPauseLogRepository(session)

    first = await repo.create(SlaPauseLog(
        id=None, entity_kind=EntityKind.TASK, entity_id="TASK-1",
        reason=PauseReason.MEETING, paused_at=NOW, paused_by="u-1",
    ))
    assert first.id is not None

    active = await repo.get_active(EntityKind.TASK, "TASK-1")
    assert active.id == first.id

    closed = await repo.close(first.id, NOW + timedelta(minutes=30), 30, resumed_by="u-2")
    assert closed.duration_minutes == 30
    assert closed.resumed_at == NOW + timedelta(minutes=30)
    assert await repo.get_active(EntityKind.TASK, "TASK-1") is None

    await repo.create(SlaPauseLog(
        id=None, entity_kind=EntityKind.TASK, entity_id="TASK-1",
        reason=PauseReason.CLARIFICATION, paused_at=NOW + timedelta(hours=1),
    ))
    history = await repo.list_for_entity(EntityKind.TASK, "TASK-1")
    assert [log.reason for log in history] == [PauseReason.CLARIFICATION, PauseReason.MEETING]
    assert await repo.list_for_entity(EntityKind.REQUEST, "TASK-1") == []


@pytest.mark.asyncio
async def test_close_rejects_malformed_id(session) -> None:
    with pytest.raises(RepositoryException):
        await SQLAlchemySlaPauseLogRepository(session).close("not-a-uuid", NOW, 0)


@pytest.mark.asyncio
async def test_pause_and_resume_against_sql_store(session) -> None:
    session.add(TaskModel(
        id="TASK-1",
        sla_deadline=NOW + timedelta(hours=4),
        sla_started_at=NOW,
        sla_status=SlaStatus.ON_TIME,
        sla_total_paused_minutes=60,
    ))
    await session.flush()

    clock = FrozenClock(NOW)
    service = SLAPauseService(
        build_entity_store_registry(session),
        SQLAlchemySlaPauseLogRepository(session),
        StaticConfigProvider(),
        clock=clock,
    )

    await service.pause(EntityKind.TASK, "TASK-1", PauseReason.CUSTOMER_VISIT)
    with pytest.raises(AlreadyPausedException):
        await service.pause(EntityKind.TASK, "TASK-1")

    clock.advance(minutes=30)
    result = await service.resume(EntityKind.TASK, "TASK-1")
    assert result.total_paused_minutes == 90

    stored = await SQLAlchemyRequestRepository(session).get_by_id("TASK-1")
    assert stored is None

    task = await build_entity_store_registry(session).get(EntityKind.TASK).get_by_id("TASK-1")
    assert task.sla_total_paused_minutes == 90
    assert task.sla_paused_at is None
    assert task.sla_version == 2

    stats = await service.get_pause_stats(EntityKind.TASK, "TASK-1")
    assert stats.completed_pauses == 1
    assert stats.pauses_by_reason == {PauseReason.CUSTOMER_VISIT: 1}
