from __future__ import annotations

import pytest

from clinicflow.automation.limiter import ExecutionLimiter
from clinicflow.automation.types import AutomationRule, ExecutionContext, ExecutionResult

from .conftest import CONVERSATION_ID, TENANT_ID


def _rule(**overrides) -> AutomationRule:
    data = {
        "id": "r1",
        "tenant_id": TENANT_ID,
        "name": "Follow-up",
        "trigger": "no_response_24h",
        "actions": [{"type": "send_message", "config": {"template": "Still there?"}}],
    }
    data.update(overrides)
    return AutomationRule.model_validate(data)


async def _log(store, rule_id: str, success: bool = True) -> None:
    ctx = ExecutionContext(tenant_id=TENANT_ID, conversation_id=CONVERSATION_ID)
    await store.save_execution(TENANT_ID, "no_response_24h", ctx, ExecutionResult(rule_id=rule_id, success=success))


@pytest.mark.asyncio
async def test_cooldown_blocks_until_window_passes(store, clock):
    limiter = ExecutionLimiter(store, clock=clock)
    rule = _rule(cooldown_minutes=10)
    ctx = ExecutionContext(tenant_id=TENANT_ID, conversation_id=CONVERSATION_ID)

    assert await limiter.can_execute(rule, ctx) is True
    await _log(store, "r1")

    clock.advance(minutes=5)
    assert await limiter.can_execute(rule, ctx) is False

    clock.advance(minutes=6)
    assert await limiter.can_execute(rule, ctx) is True


@pytest.mark.asyncio
async def test_execution_cap_counts_successful_runs_only(store, clock):
    limiter = ExecutionLimiter(store, clock=clock)
    rule = _rule(max_executions_per_conversation=1)
    ctx = ExecutionContext(tenant_id=TENANT_ID, conversation_id=CONVERSATION_ID)

    await _log(store, "r1", success=False)
    assert await limiter.can_execute(rule, ctx) is True

    await _log(store, "r1", success=True)
    assert await limiter.can_execute(rule, ctx) is False


@pytest.mark.asyncio
async def test_limits_are_per_rule(store, clock):
    limiter = ExecutionLimiter(store, clock=clock)
    ctx = ExecutionContext(tenant_id=TENANT_ID, conversation_id=CONVERSATION_ID)
    await _log(store, "other-rule")

    assert await limiter.can_execute(_rule(max_executions_per_conversation=1, cooldown_minutes=60), ctx) is True


@pytest.mark.asyncio
async def test_no_conversation_means_no_limits(store, clock):
    limiter = ExecutionLimiter(store, clock=clock)
    await _log(store, "r1")

    ctx = ExecutionContext(tenant_id=TENANT_ID)
    assert await limiter.can_execute(_rule(max_executions_per_conversation=1), ctx) is True
