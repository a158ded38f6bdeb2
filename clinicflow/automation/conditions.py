"""
Condition evaluation for automation rules.

Groups are walked with an explicit stack so evaluation depth never depends on
the interpreter's recursion limit.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping
from zoneinfo import ZoneInfo

from clinicflow.automation.types import (
    AutomationCondition,
    ConditionGroup,
    ConditionOperator,
    ExecutionContext,
)

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class _Frame:
    group: ConditionGroup
    index: int = 0
    value: bool = True

    def __post_init__(self) -> None:
        self.value = self.group.logic == "and"

    def absorb(self, child: bool) -> None:
        self.value = (self.value and child) if self.group.logic == "and" else (self.value or child)

    @property
    def finished(self) -> bool:
        if self.index >= len(self.group.conditions):
            return True
        # Short-circuit.
        return self.value if self.group.logic == "or" else not self.value


class ConditionEvaluator:
    def __init__(
        self,
        timezone: str = "Asia/Seoul",
        clock: Callable[[], datetime] | None = None,
    ):
        self.tz = ZoneInfo(timezone)
        self._clock = clock or (lambda: datetime.now(self.tz))

    def evaluate(
        self,
        node: ConditionGroup | AutomationCondition | None,
        context: ExecutionContext | Mapping[str, Any],
    ) -> bool:
        if node is None:
            return True
        if isinstance(node, AutomationCondition):
            return self.evaluate_condition(node, context)

        stack = [_Frame(node)]
        result: bool | None = None
        while stack:
            frame = stack[-1]
            if result is not None:
                frame.absorb(result)
                result = None
            if frame.finished:
                stack.pop()
                result = frame.value
                continue
            child = frame.group.conditions[frame.index]
            frame.index += 1
            if isinstance(child, ConditionGroup):
                stack.append(_Frame(child))
            else:
                result = self.evaluate_condition(child, context)
        return bool(result)

    def evaluate_condition(
        self,
        condition: AutomationCondition,
        context: ExecutionContext | Mapping[str, Any],
    ) -> bool:
        field_value = self.resolve(condition.field, context)
        return compare(field_value, condition.operator, condition.value)

    def resolve(self, path: str, context: ExecutionContext | Mapping[str, Any]) -> Any:
        """Dotted-path lookup; returns None for anything that does not resolve."""
        entity, _, rest = path.partition(".")
        if entity == "time":
            return self._time_value(rest)

        if isinstance(context, Mapping):
            current: Any = context.get(entity, _MISSING)
        else:
            current = getattr(context, entity, _MISSING)
        for part in rest.split(".") if rest else []:
            if current is _MISSING or current is None:
                break
            if isinstance(current, Mapping):
                current = current.get(part, _MISSING)
            else:
                current = getattr(current, part, _MISSING)

        if current is _MISSING:
            return None
        if isinstance(current, Enum):
            return current.value
        return current

    def _time_value(self, prop: str) -> Any:
        now = self._clock().astimezone(self.tz)
        day = now.isoweekday() % 7  # 0 = Sunday
        if prop == "hour":
            return now.hour
        if prop == "day_of_week":
            return day
        if prop == "is_working_hours":
            return 1 <= day <= 5 and 9 <= now.hour < 18
        return None


def _lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, tuple, set)) and len(value) == 0)


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def compare(field_value: Any, operator: ConditionOperator | str, expected: Any) -> bool:
    op = ConditionOperator(operator)

    if op is ConditionOperator.IS_EMPTY:
        return _is_empty(field_value)
    if op is ConditionOperator.IS_NOT_EMPTY:
        return not _is_empty(field_value)
    if field_value is None:
        # A missing field only satisfies "is different from".
        return op is ConditionOperator.NOT_EQUALS and expected is not None

    if op is ConditionOperator.EQUALS:
        return _lower(field_value) == _lower(expected)
    if op is ConditionOperator.NOT_EQUALS:
        return _lower(field_value) != _lower(expected)

    if op in (ConditionOperator.CONTAINS, ConditionOperator.NOT_CONTAINS):
        if isinstance(field_value, str) and isinstance(expected, str):
            hit = expected.lower() in field_value.lower()
        elif isinstance(field_value, (list, tuple, set)):
            hit = _lower(expected) in [_lower(item) for item in field_value]
        else:
            return False
        return hit if op is ConditionOperator.CONTAINS else not hit

    if op is ConditionOperator.STARTS_WITH:
        return isinstance(field_value, str) and isinstance(expected, str) and field_value.lower().startswith(expected.lower())
    if op is ConditionOperator.ENDS_WITH:
        return isinstance(field_value, str) and isinstance(expected, str) and field_value.lower().endswith(expected.lower())

    if op in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
        left, right = _to_float(field_value), _to_float(expected)
        if left is None or right is None:
            return False
        return left > right if op is ConditionOperator.GREATER_THAN else left < right

    if op in (ConditionOperator.IN_LIST, ConditionOperator.NOT_IN_LIST):
        if not isinstance(expected, (list, tuple, set)):
            return False
        hit = _lower(field_value) in [_lower(item) for item in expected]
        return hit if op is ConditionOperator.IN_LIST else not hit

    if op is ConditionOperator.REGEX_MATCH:
        if not isinstance(field_value, str) or not isinstance(expected, str):
            return False
        try:
            return re.search(expected, field_value, re.IGNORECASE) is not None
        except re.error:
            logger.warning("Invalid regex in condition: %r", expected)
            return False

    return False
