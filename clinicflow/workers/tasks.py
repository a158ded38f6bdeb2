"""
Celery tasks — background execution for the automation core.

- clinicflow.process_trigger: one rule-engine pass per domain event
- clinicflow.assist_booking: booking logic for an inbound message's AI reply
- clinicflow.jobs.*: jobs enqueued by rule actions
- clinicflow.check_no_response (beat): fires no_response_24h / no_response_48h
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from clinicflow.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

NO_RESPONSE_THRESHOLDS = (
    (timedelta(hours=24), "no_response_24h"),
    (timedelta(hours=48), "no_response_48h"),
)

# Keep one asyncio loop per worker process. Creating a new loop for each task
# causes asyncpg/SQLAlchemy "attached to a different loop" errors.
_worker_loop: asyncio.AbstractEventLoop | None = None


def _get_worker_loop() -> asyncio.AbstractEventLoop:
    global _worker_loop
    if _worker_loop is None or _worker_loop.is_closed():
        _worker_loop = asyncio.new_event_loop()
    asyncio.set_event_loop(_worker_loop)
    return _worker_loop


def _run(coro):
    return _get_worker_loop().run_until_complete(coro)


@celery_app.task(name="clinicflow.process_trigger")
def process_trigger_task(trigger: str, context: dict) -> list[dict]:
    return _run(_process_trigger(trigger, context))


async def _process_trigger(trigger: str, context: dict) -> list[dict]:
    from clinicflow.config import get_settings
    from clinicflow.core.runtime import build_rule_engine
    from clinicflow.db import async_session

    engine = build_rule_engine(async_session, get_settings())
    results = await engine.process_trigger(trigger, context)
    return [r.model_dump(mode="json") for r in results]


@celery_app.task(name="clinicflow.assist_booking")
def assist_booking_task(data: dict) -> dict:
    return _run(_assist_booking(data))


async def _assist_booking(data: dict) -> dict:
    """
    Apply booking logic to a drafted reply and deliver it.

    data: conversation_id, message_id, base_reply, optional guidance_intensity / full_automation.
    """
    from clinicflow.automation.store import SqlAlchemyAutomationStore
    from clinicflow.booking.assistant import AssistantInput
    from clinicflow.config import get_settings
    from clinicflow.core import crud
    from clinicflow.core.runtime import build_booking_assistant
    from clinicflow.db import async_session
    from clinicflow.workers.jobs import CeleryJobQueue, Job

    settings = get_settings()
    async with async_session() as db:
        conv = await crud.get_conversation(db, _uuid(data["conversation_id"]))
        msg = await crud.get_message(db, _uuid(data["message_id"]))
        if conv is None or msg is None:
            logger.warning("assist_booking: conversation or message not found (%s)", data)
            return {"success": False, "error": "not_found"}
        tenant = await crud.get_tenant(db, conv.tenant_id)
        customer = await crud.get_customer(db, conv.customer_id)
        history = await crud.get_conversation_history(db, conv.id)

    assistant = build_booking_assistant(async_session, settings, tenant.slug)
    outcome = await assistant.handle(
        AssistantInput(
            tenant_id=str(conv.tenant_id),
            customer_id=str(conv.customer_id),
            conversation_id=str(conv.id),
            message=msg.content,
            message_id=str(msg.id),
            language=(customer.language if customer else None) or "ko",
            history=history[:-1],
            base_reply=data.get("base_reply", ""),
            full_automation=data.get("full_automation", True),
            guidance_intensity=data.get("guidance_intensity")
            or (tenant.settings or {}).get("booking_prompt_intensity", "medium"),
        )
    )

    if outcome.reply:
        await CeleryJobQueue().enqueue(
            Job(
                type="send_message",
                data={
                    "tenant_id": str(conv.tenant_id),
                    "conversation_id": str(conv.id),
                    "channel_type": conv.channel_type,
                    "channel_account_id": conv.channel_account_id,
                    "channel_user_id": conv.channel_user_id,
                    "content": outcome.reply,
                },
            )
        )
    if outcome.escalate:
        store = SqlAlchemyAutomationStore(async_session)
        escalation_id = await store.create_escalation(
            tenant_id=str(conv.tenant_id),
            conversation_id=str(conv.id),
            message_id=str(msg.id),
            reason=outcome.escalation_reason or "booking",
            priority="high",
        )
        await store.update_conversation(str(conv.id), status="escalated")
        process_trigger_task.delay(
            "escalation_created",
            {
                "tenant_id": str(conv.tenant_id),
                "conversation_id": str(conv.id),
                "message_id": str(msg.id),
                "escalation_id": escalation_id,
            },
        )

    return {
        "success": True,
        "booking_request_id": outcome.booking_request_id,
        "form_sent": outcome.form_sent,
        "guidance_added": outcome.guidance_added,
        "escalate": outcome.escalate,
    }


# --- Jobs enqueued by actions ---


@celery_app.task(name="clinicflow.jobs.send_message")
def send_message_job(data: dict) -> dict:
    return _run(_send_message(data))


async def _send_message(data: dict) -> dict:
    from clinicflow.config import get_settings
    from clinicflow.core import crud
    from clinicflow.db import async_session
    from clinicflow.integrations.gateway import ChannelGateway

    settings = get_settings()
    gateway = ChannelGateway({"base_url": settings.channel_gateway_url, "timeout": settings.webhook_timeout_seconds})
    result = await gateway.execute("send_message", data)
    if not result.get("success"):
        logger.error("send_message to conversation %s failed: %s", data.get("conversation_id"), result.get("error"))
        return result

    if data.get("conversation_id"):
        async with async_session() as db:
            await crud.save_message(
                db,
                _uuid(data["conversation_id"]),
                direction="outbound",
                role="assistant",
                content=data["content"],
                metadata={"source": "automation"},
            )
            await crud.update_conversation(db, _uuid(data["conversation_id"]), last_message_at=_utcnow())
            await db.commit()
    return result


@celery_app.task(name="clinicflow.jobs.send_notification")
def send_notification_job(data: dict) -> dict:
    return _run(_send_notification(data))


async def _send_notification(data: dict) -> dict:
    from clinicflow.config import get_settings
    from clinicflow.core import crud
    from clinicflow.db import async_session
    from clinicflow.integrations.gateway import ChannelGateway
    from clinicflow.integrations.telegram_notify import TelegramNotifier

    settings = get_settings()
    if data.get("channel") == "telegram":
        async with async_session() as db:
            tenant = await crud.get_tenant(db, _uuid(data["tenant_id"]))
        notifier = TelegramNotifier.from_secrets(tenant.slug, dashboard_url=settings.dashboard_url) if tenant else None
        if notifier is None:
            return {"success": False, "error": "telegram_not_configured"}
        result = await notifier.send_text(data["message"])
    else:
        gateway = ChannelGateway({"base_url": settings.channel_gateway_url, "timeout": settings.webhook_timeout_seconds})
        result = await gateway.execute("send_notification", data)

    if not result.get("success"):
        logger.error("send_notification via %s failed: %s", data.get("channel"), result.get("error"))
    return result


@celery_app.task(name="clinicflow.jobs.send_satisfaction_survey")
def send_satisfaction_survey_job(data: dict) -> dict:
    return _run(_send_satisfaction_survey(data))


async def _send_satisfaction_survey(data: dict) -> dict:
    from clinicflow.config import get_settings
    from clinicflow.core import crud
    from clinicflow.db import async_session
    from clinicflow.integrations.gateway import ChannelGateway

    settings = get_settings()
    if not data.get("conversation_id"):
        return {"success": False, "error": "conversation_required"}

    async with async_session() as db:
        conv = await crud.get_conversation(db, _uuid(data["conversation_id"]))
    if conv is None:
        return {"success": False, "error": "conversation_not_found"}

    gateway = ChannelGateway({"base_url": settings.channel_gateway_url, "timeout": settings.webhook_timeout_seconds})
    return await gateway.execute(
        "send_survey",
        {
            **data,
            "channel_type": conv.channel_type,
            "channel_account_id": conv.channel_account_id,
            "channel_user_id": conv.channel_user_id,
        },
    )


@celery_app.task(name="clinicflow.jobs.update_crm_customer")
def update_crm_customer_job(data: dict) -> dict:
    return _run(_crm_call("update_customer", data))


@celery_app.task(name="clinicflow.jobs.add_crm_note")
def add_crm_note_job(data: dict) -> dict:
    return _run(_crm_call("add_note", data))


async def _crm_call(action: str, data: dict) -> dict:
    from clinicflow.config import get_settings
    from clinicflow.integrations.gateway import CrmGateway

    settings = get_settings()
    gateway = CrmGateway({"base_url": settings.crm_gateway_url, "timeout": settings.webhook_timeout_seconds})
    result = await gateway.execute(action, data)
    if not result.get("success"):
        logger.error("CRM %s for customer %s failed: %s", action, data.get("customer_id"), result.get("error"))
    return result


# --- Scheduled ---


@celery_app.task(name="clinicflow.check_no_response")
def check_no_response_task() -> dict:
    return _run(_check_no_response())


async def _check_no_response(now: datetime | None = None) -> dict:
    """
    Fire no-response triggers for conversations waiting on the clinic.

    Each threshold fires once per unanswered inbound message; the message id is
    remembered in conversation.metadata["no_response_fired"].
    """
    from sqlalchemy.orm.attributes import flag_modified

    from clinicflow.config import get_settings
    from clinicflow.core import crud
    from clinicflow.db import async_session

    settings = get_settings()
    now = now or _utcnow()
    fired: dict[str, int] = {}

    async with async_session() as db:
        for threshold, trigger in NO_RESPONSE_THRESHOLDS:
            rows = await crud.list_unanswered_conversations(
                db, now - threshold, settings.no_response_batch_size, trigger
            )
            count = 0
            for conv, last_msg in rows:
                meta = dict(conv.metadata_ or {})
                marks = dict(meta.get("no_response_fired") or {})
                if marks.get(trigger) == str(last_msg.id):
                    continue
                marks[trigger] = str(last_msg.id)
                meta["no_response_fired"] = marks
                conv.metadata_ = meta
                flag_modified(conv, "metadata_")

                process_trigger_task.delay(
                    trigger,
                    {
                        "tenant_id": str(conv.tenant_id),
                        "conversation_id": str(conv.id),
                        "customer_id": str(conv.customer_id),
                        "message_id": str(last_msg.id),
                    },
                )
                count += 1
            fired[trigger] = count
        await db.commit()

    if any(fired.values()):
        logger.info("No-response triggers fired: %s", fired)
    return fired


def _uuid(value) -> UUID:
    return UUID(str(value))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
