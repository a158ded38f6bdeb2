"""
Action Executor — performs one rule action at a time.

Actions either mutate a single row through the store or hand work to the job
queue. Within a rule they run strictly in order; a failed action is recorded
and the next one still runs.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable

from clinicflow.automation.conditions import ConditionEvaluator
from clinicflow.automation.limiter import utcnow
from clinicflow.automation.store import AutomationStore
from clinicflow.automation.templates import interpolate
from clinicflow.automation.types import (
    ACTION_TYPES,
    ActionResult,
    AutomationRule,
    ExecutionContext,
    UnsupportedAction,
)
from clinicflow.integrations.base import IntegrationAdapter
from clinicflow.workers.jobs import Job, JobQueue

if TYPE_CHECKING:
    from clinicflow.booking.workflow import BookingWorkflow

logger = logging.getLogger(__name__)

ASSIGNMENT_STRATEGIES = ("round_robin", "least_busy", "previous_agent")

# Width of the window in which a rule can escalate a conversation only once.
ESCALATION_BUCKET_MINUTES = 60


class ActionError(Exception):
    """An action could not run (missing entity, remote failure, nested failure)."""


class ActionExecutor:
    def __init__(
        self,
        store: AutomationStore,
        jobs: JobQueue,
        webhook: IntegrationAdapter | None = None,
        workflow: "BookingWorkflow | None" = None,
        evaluator: ConditionEvaluator | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.jobs = jobs
        self.webhook = webhook
        self.workflow = workflow
        self.evaluator = evaluator or ConditionEvaluator()
        self._sleep = sleep
        self._clock = clock

        self._handlers = {
            "send_message": self._send_message,
            "send_internal_note": self._send_internal_note,
            "send_notification": self._send_notification,
            "assign_conversation": self._assign_conversation,
            "update_conversation_status": self._update_conversation_status,
            "add_customer_tag": self._add_customer_tag,
            "remove_customer_tag": self._remove_customer_tag,
            "update_consultation_tag": self._update_consultation_tag,
            "create_crm_booking": self._create_crm_booking,
            "update_crm_customer": self._update_crm_customer,
            "add_crm_note": self._add_crm_note,
            "send_satisfaction_survey": self._send_satisfaction_survey,
            "create_escalation": self._create_escalation,
            "trigger_webhook": self._trigger_webhook,
            "delay": self._delay,
            "branch": self._branch,
        }
        missing = ACTION_TYPES - self._handlers.keys()
        if missing:
            raise RuntimeError(f"No handler for action types: {sorted(missing)}")

    async def run_all(self, actions: list, context: ExecutionContext, rule: AutomationRule | None = None) -> list[ActionResult]:
        """Run actions in order; each outcome is recorded, none aborts the rest."""
        results: list[ActionResult] = []
        for action in actions:
            if isinstance(action, UnsupportedAction):
                logger.warning("Skipping unsupported action type %r", action.original_type)
                results.append(ActionResult(action_type=action.original_type, success=True, skipped=True))
                continue
            try:
                await self.execute(action, context, rule)
                results.append(ActionResult(action_type=action.type, success=True))
            except ActionError as e:
                logger.warning("Action %s failed: %s", action.type, e)
                results.append(ActionResult(action_type=action.type, success=False, error=str(e)))
            except Exception as e:
                logger.exception("Action %s raised", action.type)
                results.append(ActionResult(action_type=action.type, success=False, error=str(e) or type(e).__name__))
        return results

    async def execute(self, action, context: ExecutionContext, rule: AutomationRule | None = None) -> None:
        handler = self._handlers[action.type]
        await handler(action.config, context, rule)

    # --- Messaging ---

    async def _send_message(self, config, ctx: ExecutionContext, rule) -> None:
        if ctx.conversation is None:
            raise ActionError("Conversation required for send_message action")
        conv = ctx.conversation
        await self.jobs.enqueue(
            Job(
                type="send_message",
                data={
                    "tenant_id": ctx.tenant_id,
                    "conversation_id": conv.id,
                    "channel_type": config.channel or conv.channel_type,
                    "channel_account_id": conv.channel_account_id,
                    "channel_user_id": conv.channel_user_id,
                    "content": interpolate(config.template, ctx.variables),
                    "translate_to_customer_language": config.translate_to_customer_language,
                    "customer_language": ctx.customer.language if ctx.customer else None,
                },
            )
        )

    async def _send_internal_note(self, config, ctx: ExecutionContext, rule) -> None:
        if not ctx.conversation_id:
            raise ActionError("Conversation ID required for send_internal_note")
        await self.store.add_internal_note(
            ctx.conversation_id,
            interpolate(config.content, ctx.variables),
            config.mention_users,
        )

    async def _send_notification(self, config, ctx: ExecutionContext, rule) -> None:
        await self.jobs.enqueue(
            Job(
                type="send_notification",
                data={
                    "channel": config.channel,
                    "message": interpolate(config.template, ctx.variables),
                    "recipients": config.recipients,
                    "tenant_id": ctx.tenant_id,
                    "conversation_id": ctx.conversation_id,
                },
            )
        )

    async def _send_satisfaction_survey(self, config, ctx: ExecutionContext, rule) -> None:
        await self.jobs.enqueue(
            Job(
                type="send_satisfaction_survey",
                data={
                    "tenant_id": ctx.tenant_id,
                    "conversation_id": ctx.conversation_id,
                    "customer_id": ctx.customer_id,
                    "template": config.survey_template,
                },
                delay_seconds=(config.delay_minutes or 0) * 60,
            )
        )

    # --- Conversation ---

    async def _assign_conversation(self, config, ctx: ExecutionContext, rule) -> None:
        if ctx.conversation is None:
            raise ActionError("Conversation required for assign_conversation")

        assignee = config.assign_to
        if assignee in ASSIGNMENT_STRATEGIES:
            assignee = await self.store.pick_assignee(ctx.tenant_id, ctx.conversation, ctx.customer_id, config.assign_to)
            if not assignee:
                raise ActionError(f"No agent available for {config.assign_to} assignment")
        await self.store.update_conversation(ctx.conversation.id, assigned_to=assignee)

    async def _update_conversation_status(self, config, ctx: ExecutionContext, rule) -> None:
        if not ctx.conversation_id:
            raise ActionError("Conversation ID required for update_conversation_status")
        await self.store.update_conversation(ctx.conversation_id, status=config.status)

    async def _create_escalation(self, config, ctx: ExecutionContext, rule) -> None:
        if not ctx.conversation_id:
            raise ActionError("Conversation ID required for create_escalation")

        dedupe_key = None
        if rule is not None:
            bucket = int(self._clock().timestamp() // (ESCALATION_BUCKET_MINUTES * 60))
            dedupe_key = f"{rule.id}:{ctx.conversation_id}:{bucket}"

        escalation_id = await self.store.create_escalation(
            tenant_id=ctx.tenant_id,
            conversation_id=ctx.conversation_id,
            message_id=ctx.message_id,
            reason=interpolate(config.reason, ctx.variables),
            priority=config.priority,
            dedupe_key=dedupe_key,
        )
        if escalation_id is None:
            logger.info("Escalation %s already exists, not creating another", dedupe_key)
            return
        await self.store.update_conversation(ctx.conversation_id, status="escalated")

    # --- Customer ---

    async def _current_tags(self, ctx: ExecutionContext) -> list[str]:
        if not ctx.customer_id:
            raise ActionError("Customer ID required for customer tag actions")
        # Re-read so earlier actions in the same pass are not overwritten.
        customer = await self.store.get_customer(ctx.customer_id)
        if customer is None:
            raise ActionError(f"Customer {ctx.customer_id} not found")
        return list(customer.tags)

    async def _add_customer_tag(self, config, ctx: ExecutionContext, rule) -> None:
        tags = await self._current_tags(ctx)
        if config.tag not in tags:
            await self.store.set_customer_tags(ctx.customer_id, tags + [config.tag])

    async def _remove_customer_tag(self, config, ctx: ExecutionContext, rule) -> None:
        tags = await self._current_tags(ctx)
        if config.tag in tags:
            await self.store.set_customer_tags(ctx.customer_id, [t for t in tags if t != config.tag])

    async def _update_consultation_tag(self, config, ctx: ExecutionContext, rule) -> None:
        if not ctx.customer_id:
            raise ActionError("Customer ID required for update_consultation_tag")
        await self.store.update_consultation_tag(ctx.customer_id, config.tag)

    # --- CRM ---

    async def _create_crm_booking(self, config, ctx: ExecutionContext, rule) -> None:
        if self.workflow is None:
            raise ActionError("Booking workflow is not configured")
        if not ctx.customer_id:
            raise ActionError("Customer ID required for create_crm_booking")

        requested_date = interpolate(config.scheduled_date, ctx.variables) if config.scheduled_date else ""
        requested_date = requested_date or ctx.variables.get("booking_date") or ""
        if not requested_date:
            raise ActionError("create_crm_booking needs a scheduled date")

        from clinicflow.booking.schemas import BookingRequestCreate

        await self.workflow.create(
            BookingRequestCreate(
                tenant_id=ctx.tenant_id,
                customer_id=ctx.customer_id,
                conversation_id=ctx.conversation_id,
                requested_date=requested_date,
                treatment_type=config.booking_type,
                special_requests=interpolate(config.notes, ctx.variables) if config.notes else None,
                metadata={"source": "automation", "rule_id": rule.id if rule else None},
            )
        )

    async def _update_crm_customer(self, config, ctx: ExecutionContext, rule) -> None:
        if not ctx.customer_id:
            raise ActionError("Customer ID required for update_crm_customer")
        await self.jobs.enqueue(
            Job(
                type="update_crm_customer",
                data={
                    "tenant_id": ctx.tenant_id,
                    "customer_id": ctx.customer_id,
                    "fields": {k: interpolate(v, ctx.variables) for k, v in config.fields.items()},
                },
            )
        )

    async def _add_crm_note(self, config, ctx: ExecutionContext, rule) -> None:
        if not ctx.customer_id:
            raise ActionError("Customer ID required for add_crm_note")
        await self.jobs.enqueue(
            Job(
                type="add_crm_note",
                data={
                    "tenant_id": ctx.tenant_id,
                    "customer_id": ctx.customer_id,
                    "conversation_id": ctx.conversation_id,
                    "content": interpolate(config.content, ctx.variables),
                },
            )
        )

    # --- Flow ---

    async def _trigger_webhook(self, config, ctx: ExecutionContext, rule) -> None:
        if self.webhook is None:
            raise ActionError("Webhook adapter is not configured")
        result = await self.webhook.execute(
            "call",
            {
                "url": config.url,
                "method": config.method,
                "headers": config.headers,
                "body": interpolate(config.body, ctx.variables) if config.body else None,
            },
        )
        if not result.get("success"):
            raise ActionError(result.get("error") or "webhook call failed")

    async def _delay(self, config, ctx: ExecutionContext, rule) -> None:
        await self._sleep(config.seconds)

    async def _branch(self, config, ctx: ExecutionContext, rule) -> None:
        matched = self.evaluator.evaluate(config.conditions, ctx)
        actions = config.true_actions if matched else config.false_actions
        results = await self.run_all(actions, ctx, rule)
        failed = [r for r in results if not r.success]
        if failed:
            raise ActionError(f"{len(failed)} of {len(results)} branch actions failed")
