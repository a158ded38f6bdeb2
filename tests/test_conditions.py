from __future__ import annotations

from datetime import datetime, timezone

import pytest

from clinicflow.automation.conditions import ConditionEvaluator, compare
from clinicflow.automation.types import (
    AutomationCondition,
    ConditionGroup,
    ConversationSnapshot,
    CustomerSnapshot,
    ExecutionContext,
    MessageSnapshot,
)


def _ctx(**overrides) -> ExecutionContext:
    values = {
        "tenant_id": "t1",
        "customer": CustomerSnapshot(id="c1", name="Anna", country="RU", language="ru", tags=["vip", "Lasik"]),
        "conversation": ConversationSnapshot(id="v1", status="active", channel_type="instagram"),
        "message": MessageSnapshot(id="m1", content="환불 가능한가요?"),
    }
    values.update(overrides)
    return ExecutionContext(**values)


def _cond(field: str, operator: str, value=None) -> AutomationCondition:
    return AutomationCondition(field=field, operator=operator, value=value)


@pytest.mark.parametrize(
    "field_value, operator, expected, result",
    [
        ("KR", "equals", "kr", True),
        ("KR", "not_equals", "JP", True),
        ("Hello World", "contains", "world", True),
        ("Hello World", "not_contains", "bye", True),
        (["vip", "Lasik"], "contains", "lasik", True),
        (["vip"], "not_contains", "vip", False),
        ("LASIK consult", "starts_with", "lasik", True),
        ("LASIK consult", "ends_with", "CONSULT", True),
        ("12", "greater_than", 10, True),
        (3, "less_than", "2.5", False),
        ("abc", "greater_than", 1, False),
        ("JP", "in_list", ["jp", "cn"], True),
        ("JP", "not_in_list", ["KR"], True),
        ("JP", "in_list", "JP", False),
        ("", "is_empty", None, True),
        ([], "is_empty", None, True),
        ("x", "is_not_empty", None, True),
        ("환불 문의", "regex_match", "환불|취소", True),
        ("order 42", "regex_match", r"\d+", True),
    ],
)
def test_compare_operators(field_value, operator, expected, result):
    assert compare(field_value, operator, expected) is result


def test_missing_field_only_satisfies_not_equals():
    assert compare(None, "not_equals", "KR") is True
    assert compare(None, "not_equals", None) is False
    assert compare(None, "equals", "KR") is False
    assert compare(None, "not_contains", "x") is False
    assert compare(None, "not_in_list", ["a"]) is False
    assert compare(None, "is_empty", None) is True


def test_invalid_regex_is_false_not_error():
    assert compare("anything", "regex_match", "([unclosed") is False


def test_resolve_dotted_paths_against_context():
    evaluator = ConditionEvaluator()
    ctx = _ctx()

    assert evaluator.resolve("customer.country", ctx) == "RU"
    assert evaluator.resolve("message.content", ctx) == "환불 가능한가요?"
    assert evaluator.resolve("booking.status", ctx) is None
    assert evaluator.resolve("customer.unknown_field", ctx) is None


def test_resolve_against_plain_mapping():
    evaluator = ConditionEvaluator()
    ctx = {"customer": {"country": "JP", "profile": {"tier": "gold"}}}

    assert evaluator.resolve("customer.profile.tier", ctx) == "gold"
    assert evaluator.resolve("customer.profile.missing", ctx) is None


def test_time_values_use_clinic_timezone():
    # 2024-03-15 06:00 UTC is Friday 15:00 in Seoul.
    evaluator = ConditionEvaluator(clock=lambda: datetime(2024, 3, 15, 6, 0, tzinfo=timezone.utc))

    assert evaluator.resolve("time.hour", {}) == 15
    assert evaluator.resolve("time.day_of_week", {}) == 5
    assert evaluator.resolve("time.is_working_hours", {}) is True


def test_sunday_is_day_zero_and_not_working_hours():
    evaluator = ConditionEvaluator(clock=lambda: datetime(2024, 3, 17, 3, 0, tzinfo=timezone.utc))

    assert evaluator.resolve("time.day_of_week", {}) == 0
    assert evaluator.resolve("time.is_working_hours", {}) is False


def test_nested_groups_and_or():
    evaluator = ConditionEvaluator()
    group = ConditionGroup(
        logic="and",
        conditions=[
            _cond("message.content", "regex_match", "환불"),
            ConditionGroup(
                logic="or",
                conditions=[
                    _cond("customer.country", "equals", "JP"),
                    _cond("customer.tags", "contains", "VIP"),
                ],
            ),
        ],
    )

    assert evaluator.evaluate(group, _ctx()) is True

    no_vip = _ctx(customer=CustomerSnapshot(id="c1", country="RU", tags=[]))
    assert evaluator.evaluate(group, no_vip) is False


def test_empty_groups():
    evaluator = ConditionEvaluator()
    assert evaluator.evaluate(ConditionGroup(logic="and", conditions=[]), _ctx()) is True
    assert evaluator.evaluate(ConditionGroup(logic="or", conditions=[]), _ctx()) is False
    assert evaluator.evaluate(None, _ctx()) is True


def test_deep_nesting_does_not_recurse():
    evaluator = ConditionEvaluator()
    group = ConditionGroup(logic="and", conditions=[_cond("customer.country", "equals", "RU")])
    for _ in range(2000):
        group = ConditionGroup(logic="and", conditions=[group])

    assert evaluator.evaluate(group, _ctx()) is True
