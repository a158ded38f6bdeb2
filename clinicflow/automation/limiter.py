from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from clinicflow.automation.store import AutomationStore
from clinicflow.automation.types import AutomationRule, ExecutionContext

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionLimiter:
    """
    Per-conversation execution cap and cooldown, read from the execution log.

    The check and the later log write are separate calls, so two concurrent
    firings inside one cooldown window can both pass.
    """

    def __init__(self, store: AutomationStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self._clock = clock

    async def can_execute(self, rule: AutomationRule, context: ExecutionContext) -> bool:
        if not context.conversation_id:
            return True

        if rule.max_executions_per_conversation:
            count = await self.store.count_successful_executions(rule.id, context.conversation_id)
            if count >= rule.max_executions_per_conversation:
                logger.debug("Rule %s hit execution cap for conversation %s", rule.id, context.conversation_id)
                return False

        if rule.cooldown_minutes:
            last = await self.store.get_last_execution_at(rule.id, context.conversation_id)
            if last is not None:
                if last.tzinfo is None:
                    last = last.replace(tzinfo=timezone.utc)
                if self._clock() - last < timedelta(minutes=rule.cooldown_minutes):
                    logger.debug("Rule %s cooling down for conversation %s", rule.id, context.conversation_id)
                    return False

        return True
