from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio
from dateutil.parser import isoparse
from sqlalchemy import delete

from opsdesk.core.exceptions import (
    AlreadyPausedException,
    ApplicationException,
    NoPolicyFoundException,
    ResourceNotFoundException,
    ValidationException,
)
from opsdesk.infrastructure.database import close_database, create_tables, get_session_context, init_database
from opsdesk.main import create_app
from opsdesk.sla.application import PolicyCache
from opsdesk.sla.domain import SLAConfig
from opsdesk.sla.infrastructure import RequestModel, SlaPolicyModel, TaskModel, seed_policies
from opsdesk.sla.interfaces.controllers import get_clock
from opsdesk.shared.api.middleware import status_code_for

from tests.fixtures.frozen_clock import FrozenClock
from tests.fixtures.static_config_provider import StaticConfigProvider

NOW = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def api(tmp_path):
    init_database(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    await create_tables()
    async with get_session_context() as session:
        await seed_policies(session, SLAConfig())
        session.add_all([RequestModel(id="REQ-1", title="New laptop"), TaskModel(id="TASK-1", title="Order laptop")])

    app = create_app()
    app.state.sla_config = StaticConfigProvider()
    app.state.policy_cache = PolicyCache(ttl_seconds=0)
    clock = FrozenClock(NOW)
    app.dependency_overrides[get_clock] = lambda: clock

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client, clock

    await close_database()


@pytest.mark.asyncio
async def test_root_and_health(api) -> None:
    client, _ = api

    root = await client.get("/")
    health = await client.get("/health")

    assert root.status_code == 200
    assert root.json()["service"] == "OpsDesk SLA"
    assert health.status_code == 200
    assert health.json()["checks"]["sla_config"] == "loaded"
    assert "X-Correlation-ID" in health.headers


@pytest.mark.asyncio
async def test_list_and_resolve_policies(api) -> None:
    client, _ = api

    listed = await client.get("/sla/policies", params={"entity_kind": "TASK"})
    assert listed.status_code == 200
    assert len(listed.json()) == 4

    resolved = await client.get("/sla/policies/resolve", params={"entity_kind": "TASK", "priority": "HIGH"})
    assert resolved.status_code == 200
    assert resolved.json()["target_hours"] == 1.0

    fallback = await client.get("/sla/policies/resolve", params={"entity_kind": "TASK", "priority": "URGENT"})
    assert fallback.json()["target_hours"] == 24.0


@pytest.mark.asyncio
async def test_no_policy_maps_to_422(api) -> None:
    client, _ = api
    async with get_session_context() as session:
        await session.execute(delete(SlaPolicyModel))

    response = await client.post("/sla/REQUEST/REQ-1/tracking", json={"priority": "LOW"})

    assert response.status_code == 422
    assert response.json()["error_type"] == "NoPolicyFoundException"


@pytest.mark.asyncio
async def test_tracking_pause_resume_flow(api) -> None:
    client, clock = api

    tracking = await client.post("/sla/TASK/TASK-1/tracking", json={"priority": "MEDIUM"})
    assert tracking.status_code == 200
    body = tracking.json()
    assert isoparse(body["deadline"]) == NOW + timedelta(hours=4)
    assert body["sla"]["status"] == "ON_TIME"

    clock.advance(minutes=15)
    paused = await client.post("/sla/TASK/TASK-1/pause", json={"reason": "MEETING", "paused_by": "u-1"})
    assert paused.status_code == 200
    assert isoparse(paused.json()["paused_at"]) == clock.now

    again = await client.post("/sla/TASK/TASK-1/pause", json={})
    assert again.status_code == 409
    assert again.json()["error_type"] == "AlreadyPausedException"

    retrack = await client.post("/sla/TASK/TASK-1/tracking", json={"priority": "MEDIUM"})
    assert retrack.status_code == 409
    assert retrack.json()["error_type"] == "AlreadyPausedException"

    status = await client.get("/sla/TASK/TASK-1/status")
    assert status.json()["status"] == "PAUSED"

    clock.advance(minutes=30)
    resumed = await client.post("/sla/TASK/TASK-1/resume", json={"resumed_by": "u-2"})
    assert resumed.status_code == 200
    assert resumed.json()["total_paused_minutes"] == 30
    assert resumed.json()["paused_at"] is None

    not_paused = await client.post("/sla/TASK/TASK-1/resume")
    assert not_paused.status_code == 409
    assert not_paused.json()["error_type"] == "NotPausedException"

    refreshed = await client.post("/sla/TASK/TASK-1/refresh")
    assert refreshed.status_code == 200
    assert refreshed.json()["time_remaining_minutes"] == 4 * 60 + 30 - 45
    assert isoparse(refreshed.json()["effective_deadline"]) == NOW + timedelta(hours=4, minutes=30)

    history = await client.get("/sla/TASK/TASK-1/pauses")
    pauses = history.json()["pauses"]
    assert len(pauses) == 1
    assert pauses[0]["formatted_duration"] == "30 minutes"
    assert pauses[0]["paused_by"] == "u-1"

    stats = await client.get("/sla/TASK/TASK-1/pauses/stats")
    assert stats.json()["total_paused_minutes"] == 30
    assert stats.json()["pauses_by_reason"] == {"MEETING": 1}


@pytest.mark.asyncio
async def test_status_before_tracking_is_conflict(api) -> None:
    client, _ = api

    response = await client.get("/sla/REQUEST/REQ-1/status")

    assert response.status_code == 409
    assert response.json()["error_type"] == "NoDeadlineSetException"


@pytest.mark.asyncio
async def test_unknown_entity_is_404(api) -> None:
    client, _ = api

    response = await client.post("/sla/TASK/TASK-404/pause", json={})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_unknown_kind_and_bad_payloads_are_422(api) -> None:
    client, _ = api

    assert (await client.get("/sla/INVOICE/INV-1/status")).status_code == 422
    assert (await client.post("/sla/TASK/TASK-1/pause", json={"reason": "LUNCH"})).status_code == 422
    assert (await client.post("/sla/TASK/TASK-1/tracking", json={"start_time": "soon"})).status_code == 422


@pytest.mark.parametrize(
    "exc, expected",
    [
        (NoPolicyFoundException("TASK", "HIGH"), 422),
        (ValidationException("bad input"), 422),
        (ResourceNotFoundException("Task", "TASK-404"), 404),
        (AlreadyPausedException("TASK-1"), 409),
        (ApplicationException("other"), 400),
    ],
)
def test_status_code_mapping(exc, expected) -> None:
    assert status_code_for(exc) == expected
