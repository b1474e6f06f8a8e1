from __future__ import annotations

import pytest

from opsdesk.config import EntityKind, Priority
from opsdesk.core.exceptions import NoPolicyFoundException
from opsdesk.sla.domain import PolicyResolver, SlaPolicy


def _policy(policy_id: str, hours: float, priority=None, category=None, kind=EntityKind.TASK, active=True):
    return SlaPolicy(
        id=policy_id,
        target_entity_kind=kind,
        target_hours=hours,
        priority=priority,
        category=category,
        is_active=active,
    )


SPECIFICITY_POLICIES = [
    _policy("p-generic", 24.0),
    _policy("p-urgent", 2.0, priority=Priority.URGENT),
    _policy("p-urgent-support", 1.0, priority=Priority.URGENT, category="SUPPORT"),
]


@pytest.mark.parametrize(
    ("priority", "category", "expected_hours"),
    [
        (Priority.URGENT, "SUPPORT", 1.0),
        (Priority.URGENT, "OTHER", 2.0),
        (Priority.LOW, "OTHER", 24.0),
        (Priority.URGENT, None, 2.0),
        (None, None, 24.0),
    ],
)
def test_most_specific_policy_wins(priority, category, expected_hours) -> None:
    policy = PolicyResolver.resolve(SPECIFICITY_POLICIES, EntityKind.TASK, priority, category)
    assert policy.target_hours == expected_hours


def test_result_does_not_depend_on_candidate_order() -> None:
    for policies in (SPECIFICITY_POLICIES, list(reversed(SPECIFICITY_POLICIES))):
        policy = PolicyResolver.resolve(policies, EntityKind.TASK, Priority.URGENT, "SUPPORT")
        assert policy.id == "p-urgent-support"


def test_category_only_policy_beats_generic_but_not_priority_match() -> None:
    policies = [
        _policy("a-category", 6.0, category="SUPPORT"),
        _policy("b-priority", 3.0, priority=Priority.HIGH),
        _policy("c-generic", 24.0),
    ]
    # priority exact (2 + 0.5) beats generic priority + exact category (1 + 1)
    assert PolicyResolver.resolve(policies, EntityKind.TASK, Priority.HIGH, "SUPPORT").id == "b-priority"
    # generic priority + exact category (2) beats full generic (1.5)
    assert PolicyResolver.resolve(policies, EntityKind.TASK, Priority.LOW, "SUPPORT").id == "a-category"


def test_absent_category_does_not_match_category_specific_policy() -> None:
    policies = [_policy("only", 1.0, priority=Priority.HIGH, category="SUPPORT")]
    with pytest.raises(NoPolicyFoundException):
        PolicyResolver.resolve(policies, EntityKind.TASK, Priority.HIGH, None)


def test_ties_go_to_lowest_policy_id() -> None:
    policies = [
        _policy("policy-b", 5.0, priority=Priority.HIGH),
        _policy("policy-a", 7.0, priority=Priority.HIGH),
        _policy("policy-c", 3.0, priority=Priority.HIGH),
    ]
    for ordering in (policies, list(reversed(policies))):
        assert PolicyResolver.resolve(ordering, EntityKind.TASK, Priority.HIGH).id == "policy-a"


def test_inactive_and_other_kind_policies_are_ignored() -> None:
    policies = [
        _policy("inactive", 1.0, priority=Priority.HIGH, active=False),
        _policy("request", 2.0, priority=Priority.HIGH, kind=EntityKind.REQUEST),
        _policy("task", 8.0),
    ]
    assert PolicyResolver.resolve(policies, EntityKind.TASK, Priority.HIGH).id == "task"


def test_empty_policy_set_raises() -> None:
    with pytest.raises(NoPolicyFoundException) as exc_info:
        PolicyResolver.resolve([], EntityKind.REQUEST, Priority.LOW)
    assert exc_info.value.details["entity_kind"] == EntityKind.REQUEST


def test_no_matching_policy_raises() -> None:
    policies = [_policy("high-only", 1.0, priority=Priority.HIGH)]
    with pytest.raises(NoPolicyFoundException) as exc_info:
        PolicyResolver.resolve(policies, EntityKind.TASK, Priority.LOW, "SUPPORT")
    assert "LOW" in exc_info.value.message
    assert exc_info.value.category == "SUPPORT"


def test_score_excludes_mismatches() -> None:
    policy = _policy("x", 1.0, priority=Priority.HIGH, category="SUPPORT")
    assert PolicyResolver.score(policy, Priority.HIGH, "SUPPORT") == 3.0
    assert PolicyResolver.score(policy, Priority.LOW, "SUPPORT") is None
    assert PolicyResolver.score(policy, Priority.HIGH, "BILLING") is None
    assert PolicyResolver.score(_policy("g", 1.0), None, None) == 1.5


@pytest.mark.parametrize("hours", [0, -1, float("nan"), float("inf")])
def test_policy_rejects_non_positive_or_non_finite_target(hours) -> None:
    with pytest.raises(ValueError):
        _policy("bad", hours)
