from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from opsdesk.config import EntityKind, SlaStatus
from opsdesk.sla.domain import StatusEngine, TrackableEntity

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def _entity(**fields) -> TrackableEntity:
    return TrackableEntity(id="TASK-1", kind=EntityKind.TASK, **fields)


def test_past_deadline_is_overdue_with_zero_remaining() -> None:
    engine = StatusEngine()
    result = engine.classify(NOW - timedelta(hours=3), started_at=NOW - timedelta(hours=7), now=NOW)

    assert result.status == SlaStatus.OVERDUE
    assert result.time_remaining_minutes == 0
    assert result.percentage_remaining == 0.0
    assert result.is_paused is False


def test_deadline_exactly_now_is_overdue() -> None:
    result = StatusEngine().classify(NOW, now=NOW)
    assert result.status == SlaStatus.OVERDUE


def test_far_future_deadline_is_on_time_near_full_window() -> None:
    started_at = NOW - timedelta(minutes=1)
    deadline = started_at + timedelta(days=30)

    result = StatusEngine().classify(deadline, started_at=started_at, now=NOW)

    assert result.status == SlaStatus.ON_TIME
    assert 99.9 < result.percentage_remaining <= 100.0
    assert result.time_remaining_minutes == 30 * 24 * 60 - 1


def test_percentage_reflects_true_elapsed_window() -> None:
    # 4h window, 3h elapsed: a quarter left
    started_at = NOW - timedelta(hours=3)
    result = StatusEngine().classify(started_at + timedelta(hours=4), started_at=started_at, now=NOW)

    assert result.time_remaining_minutes == 60
    assert result.percentage_remaining == 25.0
    assert result.status == SlaStatus.ON_TIME


def test_below_threshold_is_at_risk() -> None:
    started_at = NOW - timedelta(minutes=190)
    result = StatusEngine().classify(started_at + timedelta(hours=4), started_at=started_at, now=NOW)

    assert result.time_remaining_minutes == 50
    assert result.status == SlaStatus.AT_RISK


def test_threshold_is_configurable() -> None:
    started_at = NOW - timedelta(hours=2)
    deadline = started_at + timedelta(hours=4)

    assert StatusEngine(at_risk_threshold_percent=25).classify(deadline, started_at=started_at, now=NOW).status == SlaStatus.ON_TIME
    assert StatusEngine(at_risk_threshold_percent=60).classify(deadline, started_at=started_at, now=NOW).status == SlaStatus.AT_RISK


def test_legacy_mode_shifts_deadline_by_paused_minutes() -> None:
    deadline = NOW - timedelta(minutes=30)

    result = StatusEngine().classify(deadline, total_paused_minutes=90, started_at=NOW - timedelta(hours=4), now=NOW)

    assert result.effective_deadline == deadline + timedelta(minutes=90)
    assert result.time_remaining_minutes == 60
    assert result.status != SlaStatus.OVERDUE
    assert result.total_paused_minutes == 90


def test_without_start_anchor_percentage_is_full_while_time_remains() -> None:
    result = StatusEngine().classify(NOW + timedelta(minutes=5), now=NOW)
    assert result.percentage_remaining == 100.0
    assert result.status == SlaStatus.ON_TIME


def test_remaining_minutes_truncate_toward_zero() -> None:
    result = StatusEngine().classify(NOW + timedelta(minutes=10, seconds=59), now=NOW)
    assert result.time_remaining_minutes == 10


def test_paused_entity_is_never_overdue() -> None:
    entity = _entity(
        sla_deadline=NOW - timedelta(days=2),
        sla_started_at=NOW - timedelta(days=3),
        sla_paused_at=NOW - timedelta(hours=1),
        sla_total_paused_minutes=15,
    )

    result = StatusEngine().classify(entity.sla_deadline, live_entity=entity, now=NOW)

    assert result.status == SlaStatus.PAUSED
    assert result.is_paused is True
    assert result.time_remaining_minutes == 0
    assert result.percentage_remaining == 0.0
    assert result.deadline == entity.sla_deadline
    assert result.effective_deadline == entity.sla_deadline + timedelta(minutes=15)
    assert result.total_paused_minutes == 15 + 60


def test_running_live_entity_uses_its_accumulated_pause_and_start() -> None:
    started_at = NOW - timedelta(hours=3)
    entity = _entity(
        sla_deadline=started_at + timedelta(hours=4),
        sla_started_at=started_at,
        sla_total_paused_minutes=60,
    )

    result = StatusEngine().classify(entity.sla_deadline, live_entity=entity, now=NOW)

    # window 5h, 2h left
    assert result.time_remaining_minutes == 120
    assert result.percentage_remaining == 40.0
    assert result.status == SlaStatus.ON_TIME
    assert result.is_paused is False


def test_naive_deadline_is_read_as_utc() -> None:
    result = StatusEngine().classify(datetime(2025, 1, 15, 13, 0), now=NOW)
    assert result.time_remaining_minutes == 60


@pytest.mark.parametrize("minutes_past", [1, 60, 60 * 24 * 365])
def test_percentage_never_negative(minutes_past) -> None:
    started_at = NOW - timedelta(hours=5)
    result = StatusEngine().classify(NOW - timedelta(minutes=minutes_past), started_at=started_at, now=NOW)
    assert result.percentage_remaining == 0.0
    assert result.time_remaining_minutes == 0
