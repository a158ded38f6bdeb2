"""
Rule Engine — runs every matching automation rule for one trigger event.

One pass:
1. Load the tenant's active rules for the trigger (lowest priority first)
2. Enrich the context once, shared by all rules in the pass
3. Per rule: trigger filter -> execution limiter -> conditions -> actions
4. Every rule that ran its actions is written to the execution log, then its stats are bumped

A failure inside one rule is recorded as a failed result for that rule only.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable

from pydantic import ValidationError

from clinicflow.automation.actions import ActionExecutor
from clinicflow.automation.conditions import ConditionEvaluator
from clinicflow.automation.context import ContextEnricher
from clinicflow.automation.limiter import ExecutionLimiter, utcnow
from clinicflow.automation.store import AutomationStore
from clinicflow.automation.types import (
    ActionResult,
    AutomationRule,
    AutomationTrigger,
    ExecutionContext,
    ExecutionResult,
)

logger = logging.getLogger(__name__)


class RuleEngine:
    def __init__(
        self,
        store: AutomationStore,
        executor: ActionExecutor,
        enricher: ContextEnricher | None = None,
        limiter: ExecutionLimiter | None = None,
        evaluator: ConditionEvaluator | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.executor = executor
        self.enricher = enricher or ContextEnricher(store)
        self.limiter = limiter or ExecutionLimiter(store, clock=clock)
        self.evaluator = evaluator or executor.evaluator
        self._clock = clock

    async def process_trigger(
        self,
        trigger: AutomationTrigger | str,
        context: ExecutionContext | dict[str, Any],
    ) -> list[ExecutionResult]:
        trigger = AutomationTrigger(trigger)
        if isinstance(context, dict):
            context = ExecutionContext.model_validate(context)
        context = context.model_copy(update={"trigger": trigger})

        if not context.tenant_id:
            logger.warning("Trigger %s without tenant_id ignored", trigger.value)
            return []

        rows = await self.store.list_rules(context.tenant_id, trigger.value)
        if not rows:
            return []
        # Stable: equal priorities keep the store's creation order.
        rows = sorted(rows, key=lambda r: r.get("priority", 100))

        ctx = await self.enricher.enrich(context)

        results: list[ExecutionResult] = []
        for row in rows:
            rule_id = str(row.get("id"))
            try:
                rule = AutomationRule.model_validate(row)
                if not self._matches_trigger_config(rule, ctx):
                    continue
                if not await self.limiter.can_execute(rule, ctx):
                    continue
                if not self.evaluator.evaluate(rule.conditions, ctx):
                    continue
                results.append(await self._run_and_log(rule, ctx))
            except ValidationError as e:
                logger.warning("Rule %s has an invalid definition: %s", rule_id, e.errors()[:3])
                results.append(
                    ExecutionResult(rule_id=rule_id, success=False, error=f"Invalid rule definition: {e.error_count()} error(s)")
                )
            except Exception as e:
                logger.exception("Error executing rule %s", rule_id)
                results.append(ExecutionResult(rule_id=rule_id, success=False, error=str(e) or type(e).__name__))

        return results

    @staticmethod
    def _matches_trigger_config(rule: AutomationRule, ctx: ExecutionContext) -> bool:
        cfg = rule.trigger_config
        if cfg.status_from and cfg.status_from != ctx.status_from:
            return False
        if cfg.status_to and cfg.status_to != ctx.status_to:
            return False
        return True

    async def _run_and_log(self, rule: AutomationRule, ctx: ExecutionContext) -> ExecutionResult:
        """Execute the rule's actions; the execution log row is written whatever happens."""
        started = time.monotonic()
        action_results: list[ActionResult] = []
        error: str | None = None
        try:
            action_results = await self.executor.run_all(rule.actions, ctx, rule)
        except Exception as e:
            logger.exception("Rule %s aborted while running actions", rule.id)
            error = str(e) or type(e).__name__

        result = ExecutionResult(
            rule_id=rule.id,
            success=error is None and all(r.success for r in action_results),
            actions_executed=sum(1 for r in action_results if r.success and not r.skipped),
            duration_ms=int((time.monotonic() - started) * 1000),
            error=error,
            action_results=action_results,
        )

        await self.store.save_execution(rule.tenant_id, rule.trigger.value, ctx, result)
        await self.store.increment_rule_stats(rule.id, self._clock())
        logger.info(
            "Rule %s (%s) executed: success=%s actions=%d/%d",
            rule.id,
            rule.name,
            result.success,
            result.actions_executed,
            len(action_results),
        )
        return result
