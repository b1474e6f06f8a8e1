"""
SLA Domain Services
====================

Stateless SLA business logic:

- PolicyResolver: picks the most specific policy for an entity
- DeadlineCalculator: start instant + policy target -> absolute deadline
- StatusEngine: deadline + pause state -> compliance classification

No I/O happens here. Time is passed in (or read from the UTC clock) so
every calculation can be reproduced in tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Tuple, Union

from dateutil import tz
from dateutil.parser import isoparse

from opsdesk.config import EntityKind, Priority, SlaStatus
from opsdesk.core.exceptions import NoPolicyFoundException, InvalidStartTimeException
from opsdesk.sla.domain.entities import SlaPolicy, TrackableEntity
from opsdesk.sla.domain.value_objects import SlaComputationResult, SlaStatusResult


# ========== Time helpers ==========

def utc_now() -> datetime:
    """Current instant, timezone-aware UTC."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize to aware UTC; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=tz.UTC)
    return value.astimezone(tz.UTC)


def minutes_between(later: datetime, earlier: datetime) -> int:
    """Whole minutes from ``earlier`` to ``later``, truncated toward zero."""
    return int((as_utc(later) - as_utc(earlier)).total_seconds() / 60)


# ========== Policy resolution ==========

class PolicyResolver:
    """
    Selects the single best-matching SLA policy by specificity score.

    Scoring:
        priority equal +2, generic priority +1, other priority excluded
        category equal +1, generic category +0.5, other category excluded

    Ties go to the lowest policy id.
    """

    PRIORITY_MATCH = 2.0
    PRIORITY_GENERIC = 1.0
    CATEGORY_MATCH = 1.0
    CATEGORY_GENERIC = 0.5

    @classmethod
    def score(
        cls,
        policy: SlaPolicy,
        priority: Optional[Priority],
        category: Optional[str] = None
    ) -> Optional[float]:
        """
        Specificity score of ``policy`` for the input, or None if excluded.

        An absent input category only matches generic-category policies.
        """
        if policy.priority is None:
            score = cls.PRIORITY_GENERIC
        elif policy.priority == priority:
            score = cls.PRIORITY_MATCH
        else:
            return None

        if policy.category is None:
            score += cls.CATEGORY_GENERIC
        elif category is not None and policy.category == category:
            score += cls.CATEGORY_MATCH
        else:
            return None

        return score

    @classmethod
    def resolve(
        cls,
        policies: Iterable[SlaPolicy],
        entity_kind: EntityKind,
        priority: Optional[Priority],
        category: Optional[str] = None
    ) -> SlaPolicy:
        """
        Resolve the policy for an entity.

        Args:
            policies: Candidate policies (typically the store's active set)
            entity_kind: REQUEST or TASK
            priority: Entity priority
            category: Entity category, if any

        Returns:
            The highest-scoring policy

        Raises:
            NoPolicyFoundException: No active policy of the kind matches
        """
        candidates = sorted(
            (p for p in policies if p.is_active and p.target_entity_kind == entity_kind),
            key=lambda p: str(p.id)
        )

        best: Optional[Tuple[float, SlaPolicy]] = None
        for policy in candidates:
            score = cls.score(policy, priority, category)
            if score is None:
                continue
            if best is None or score > best[0]:
                best = (score, policy)

        if best is None:
            raise NoPolicyFoundException(entity_kind, priority, category)

        return best[1]


# ========== Deadline calculation ==========

class DeadlineCalculator:
    """Computes absolute deadlines from a start instant and a policy."""

    @staticmethod
    def parse_start_time(value: Union[datetime, str, None]) -> datetime:
        """
        Coerce a start instant to an aware datetime.

        Accepts aware or naive (UTC) datetimes and ISO-8601 strings.

        Raises:
            InvalidStartTimeException: For anything else, including NaN
        """
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, str):
            try:
                parsed = isoparse(value.strip())
            except (ValueError, OverflowError):
                raise InvalidStartTimeException(value)
        else:
            raise InvalidStartTimeException(value)

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=tz.UTC)
        return parsed

    @classmethod
    def compute_deadline(
        cls,
        start: Union[datetime, str, None],
        policy: SlaPolicy
    ) -> SlaComputationResult:
        """
        Calculate the SLA deadline.

        The target is elapsed time: the addition happens in UTC and the
        result is expressed in the start's own time zone, so a DST shift
        between start and deadline does not change the duration.

        Args:
            start: Instant the SLA clock starts
            policy: Resolved policy

        Returns:
            SlaComputationResult with deadline, target hours and policy id
        """
        start_at = cls.parse_start_time(start)

        try:
            deadline_utc = start_at.astimezone(tz.UTC) + timedelta(hours=policy.target_hours)
        except OverflowError:
            raise InvalidStartTimeException(start)

        return SlaComputationResult(
            deadline=deadline_utc.astimezone(start_at.tzinfo),
            target_hours=policy.target_hours,
            policy_id=policy.id,
        )


# ========== Status classification ==========

class StatusEngine:
    """
    Classifies SLA compliance.

    Two modes:
    - live-entity: pause state and accumulated pause come from the entity;
      a paused entity always reads PAUSED
    - legacy: a flat paused-minutes count is supplied; never PAUSED
    """

    def __init__(self, at_risk_threshold_percent: float = 25.0):
        self.at_risk_threshold_percent = at_risk_threshold_percent

    def classify(
        self,
        deadline: datetime,
        total_paused_minutes: int = 0,
        live_entity: Optional[TrackableEntity] = None,
        started_at: Optional[datetime] = None,
        now: Optional[datetime] = None
    ) -> SlaStatusResult:
        """
        Calculate current SLA status.

        Args:
            deadline: Original SLA deadline
            total_paused_minutes: Accumulated pause (legacy mode)
            live_entity: Entity supplying pause state (live mode)
            started_at: Start of the SLA window; defaults to the entity's
            now: Evaluation instant; defaults to the UTC clock

        Returns:
            SlaStatusResult with clamped remaining time and percentage
        """
        now = as_utc(now) if now is not None else utc_now()
        deadline = as_utc(deadline)

        if live_entity is not None:
            accumulated = live_entity.sla_total_paused_minutes
            anchor = started_at or live_entity.sla_started_at
            effective_deadline = deadline + timedelta(minutes=accumulated)

            if live_entity.is_paused:
                running = max(0, minutes_between(now, live_entity.sla_paused_at))
                return SlaStatusResult(
                    status=SlaStatus.PAUSED,
                    time_remaining_minutes=0,
                    percentage_remaining=0.0,
                    deadline=deadline,
                    effective_deadline=effective_deadline,
                    total_paused_minutes=accumulated + running,
                    is_paused=True,
                )

            return self._classify_running(deadline, effective_deadline, accumulated, anchor, now)

        effective_deadline = deadline + timedelta(minutes=total_paused_minutes)
        return self._classify_running(
            deadline, effective_deadline, total_paused_minutes, started_at, now
        )

    def _classify_running(
        self,
        deadline: datetime,
        effective_deadline: datetime,
        total_paused_minutes: int,
        started_at: Optional[datetime],
        now: datetime
    ) -> SlaStatusResult:
        remaining = minutes_between(effective_deadline, now)
        percentage = self.percentage_remaining(remaining, effective_deadline, started_at)

        if remaining <= 0:
            status = SlaStatus.OVERDUE
        elif percentage < self.at_risk_threshold_percent:
            status = SlaStatus.AT_RISK
        else:
            status = SlaStatus.ON_TIME

        return SlaStatusResult(
            status=status,
            time_remaining_minutes=max(0, remaining),
            percentage_remaining=round(max(0.0, min(100.0, percentage)), 2),
            deadline=deadline,
            effective_deadline=effective_deadline,
            total_paused_minutes=total_paused_minutes,
            is_paused=False,
        )

    @staticmethod
    def percentage_remaining(
        remaining_minutes: int,
        effective_deadline: datetime,
        started_at: Optional[datetime]
    ) -> float:
        """
        Share of the SLA window still left, unclamped.

        The window runs from the true start to the effective deadline.
        Without a start the window is unknown and any time left counts
        as the whole window.
        """
        if started_at is None:
            return 100.0 if remaining_minutes > 0 else 0.0

        window = minutes_between(effective_deadline, started_at)
        if window <= 0:
            return 0.0
        return remaining_minutes / window * 100
