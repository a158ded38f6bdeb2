from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import String, cast, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.models import (
    AutomationExecution,
    AutomationRule,
    BookingIntentLog,
    BookingNotification,
    BookingRequest,
    Conversation,
    Customer,
    Escalation,
    Message,
    Tenant,
)


async def get_tenant(db: AsyncSession, tenant_id: UUID) -> Tenant | None:
    return await db.get(Tenant, tenant_id)


async def get_tenant_by_slug(db: AsyncSession, slug: str) -> Tenant | None:
    result = await db.execute(select(Tenant).where(Tenant.slug == slug))
    return result.scalar_one_or_none()


async def get_customer(db: AsyncSession, customer_id: UUID) -> Customer | None:
    return await db.get(Customer, customer_id)


async def get_conversation(db: AsyncSession, conversation_id: UUID) -> Conversation | None:
    return await db.get(Conversation, conversation_id)


async def get_message(db: AsyncSession, message_id: UUID) -> Message | None:
    return await db.get(Message, message_id)


async def get_booking_request(db: AsyncSession, booking_id: UUID) -> BookingRequest | None:
    return await db.get(BookingRequest, booking_id)


async def list_active_rules(db: AsyncSession, tenant_id: UUID, trigger: str) -> list[AutomationRule]:
    """Active rules for a trigger, lowest priority first; ties by creation order."""
    result = await db.execute(
        select(AutomationRule)
        .where(
            AutomationRule.tenant_id == tenant_id,
            AutomationRule.trigger == trigger,
            AutomationRule.is_active.is_(True),
        )
        .order_by(AutomationRule.priority.asc(), AutomationRule.created_at.asc())
    )
    return list(result.scalars().all())


async def upsert_rule(db: AsyncSession, tenant_id: UUID, name: str, values: dict) -> AutomationRule:
    """Create or replace a tenant rule identified by its name."""
    result = await db.execute(
        select(AutomationRule).where(AutomationRule.tenant_id == tenant_id, AutomationRule.name == name)
    )
    rule = result.scalar_one_or_none()
    if rule is None:
        rule = AutomationRule(tenant_id=tenant_id, name=name, **values)
        db.add(rule)
    else:
        for key, value in values.items():
            setattr(rule, key, value)
    await db.flush()
    return rule


async def count_successful_executions(db: AsyncSession, rule_id: UUID, conversation_id: UUID) -> int:
    result = await db.execute(
        select(func.count(AutomationExecution.id)).where(
            AutomationExecution.rule_id == rule_id,
            AutomationExecution.conversation_id == conversation_id,
            AutomationExecution.success.is_(True),
        )
    )
    return int(result.scalar_one())


async def get_last_execution_at(db: AsyncSession, rule_id: UUID, conversation_id: UUID) -> datetime | None:
    result = await db.execute(
        select(AutomationExecution.created_at)
        .where(
            AutomationExecution.rule_id == rule_id,
            AutomationExecution.conversation_id == conversation_id,
        )
        .order_by(AutomationExecution.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def save_execution(db: AsyncSession, **values) -> AutomationExecution:
    execution = AutomationExecution(**values)
    db.add(execution)
    await db.flush()
    return execution


async def increment_rule_stats(db: AsyncSession, rule_id: UUID, executed_at: datetime) -> None:
    await db.execute(
        update(AutomationRule)
        .where(AutomationRule.id == rule_id)
        .values(
            execution_count=AutomationRule.execution_count + 1,
            last_executed_at=executed_at,
        )
    )


async def update_conversation(db: AsyncSession, conversation_id: UUID, **values) -> bool:
    result = await db.execute(update(Conversation).where(Conversation.id == conversation_id).values(**values))
    return result.rowcount > 0


async def update_customer(db: AsyncSession, customer_id: UUID, **values) -> bool:
    result = await db.execute(update(Customer).where(Customer.id == customer_id).values(**values))
    return result.rowcount > 0


async def save_message(
    db: AsyncSession,
    conversation_id: UUID,
    direction: str,
    role: str,
    content: str,
    is_internal: bool = False,
    metadata: dict | None = None,
) -> Message:
    msg = Message(
        conversation_id=conversation_id,
        direction=direction,
        role=role,
        content=content,
        is_internal=is_internal,
        metadata_=metadata or {},
    )
    db.add(msg)
    await db.flush()
    return msg


async def get_conversation_history(db: AsyncSession, conversation_id: UUID, limit: int = 10) -> list[dict]:
    """Return conversation history in the format: [{"role": "...", "content": "..."}, ...]."""
    result = await db.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id, Message.is_internal.is_(False))
        .order_by(Message.created_at.desc())
        .limit(limit)
    )
    messages = list(result.scalars().all())
    messages.reverse()
    return [{"role": m.role, "content": m.content} for m in messages]


async def insert_escalation(db: AsyncSession, dedupe_key: str | None = None, **values) -> UUID | None:
    """Insert an escalation; returns None when `dedupe_key` was already used."""
    stmt = pg_insert(Escalation).values(dedupe_key=dedupe_key, **values)
    if dedupe_key is not None:
        stmt = stmt.on_conflict_do_nothing(index_elements=[Escalation.dedupe_key])
    result = await db.execute(stmt.returning(Escalation.id))
    return result.scalar_one_or_none()


async def get_previous_assignee(db: AsyncSession, customer_id: UUID, exclude_conversation: UUID) -> str | None:
    result = await db.execute(
        select(Conversation.assigned_to)
        .where(
            Conversation.customer_id == customer_id,
            Conversation.id != exclude_conversation,
            Conversation.assigned_to.is_not(None),
        )
        .order_by(Conversation.last_message_at.desc().nulls_last())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_assignee_loads(db: AsyncSession, tenant_id: UUID, agents: list[str]) -> dict[str, int]:
    """Open conversation count per agent; agents with no open conversations map to 0."""
    result = await db.execute(
        select(Conversation.assigned_to, func.count(Conversation.id))
        .where(
            Conversation.tenant_id == tenant_id,
            Conversation.assigned_to.in_(agents),
            Conversation.status.in_(("active", "waiting", "escalated")),
        )
        .group_by(Conversation.assigned_to)
    )
    loads = {agent: 0 for agent in agents}
    for agent, count in result.all():
        loads[agent] = int(count)
    return loads


def unanswered_conversations_query(older_than: datetime, limit: int, trigger: str):
    """
    Open conversations whose last message is inbound and older than `older_than`.

    Conversations already fired for `trigger` on that same message are excluded
    before the limit, so old abandoned chats never crowd out new ones.
    """
    last_message = (
        select(Message.id)
        .where(Message.conversation_id == Conversation.id, Message.is_internal.is_(False))
        .order_by(Message.created_at.desc())
        .limit(1)
        .correlate(Conversation)
        .scalar_subquery()
    )
    fired_for = Conversation.metadata_[("no_response_fired", trigger)].astext
    return (
        select(Conversation, Message)
        .join(Message, Message.id == last_message)
        .where(
            Conversation.status.in_(("active", "waiting")),
            Message.direction == "inbound",
            Message.created_at < older_than,
            fired_for.is_distinct_from(cast(Message.id, String)),
        )
        .order_by(Message.created_at.asc())
        .limit(limit)
    )


async def list_unanswered_conversations(
    db: AsyncSession,
    older_than: datetime,
    limit: int,
    trigger: str,
) -> list[tuple[Conversation, Message]]:
    result = await db.execute(unanswered_conversations_query(older_than, limit, trigger))
    return [(conv, msg) for conv, msg in result.all()]


async def create_booking_request(db: AsyncSession, **values) -> BookingRequest:
    booking = BookingRequest(status="pending", **values)
    db.add(booking)
    await db.flush()
    await db.refresh(booking)
    return booking


async def transition_booking_request(
    db: AsyncSession,
    booking_id: UUID,
    from_statuses: tuple[str, ...],
    **values,
) -> BookingRequest | None:
    """Guarded single-statement transition; None when the request is not in `from_statuses`."""
    result = await db.execute(
        update(BookingRequest)
        .where(BookingRequest.id == booking_id, BookingRequest.status.in_(from_statuses))
        .values(**values)
        .returning(BookingRequest)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one_or_none()


async def list_booking_request_details(
    db: AsyncSession,
    status: str | None = None,
    tenant_id: UUID | None = None,
    booking_id: UUID | None = None,
) -> list[tuple[BookingRequest, Tenant, Customer, int]]:
    """Booking requests with tenant, customer and sent-notification count, oldest first."""
    sent = (
        select(func.count(BookingNotification.id))
        .where(
            BookingNotification.booking_request_id == BookingRequest.id,
            BookingNotification.success.is_(True),
        )
        .correlate(BookingRequest)
        .scalar_subquery()
    )
    stmt = (
        select(BookingRequest, Tenant, Customer, sent)
        .join(Tenant, Tenant.id == BookingRequest.tenant_id)
        .join(Customer, Customer.id == BookingRequest.customer_id)
        .order_by(BookingRequest.created_at.asc())
    )
    if status is not None:
        stmt = stmt.where(BookingRequest.status == status)
    if tenant_id is not None:
        stmt = stmt.where(BookingRequest.tenant_id == tenant_id)
    if booking_id is not None:
        stmt = stmt.where(BookingRequest.id == booking_id)

    result = await db.execute(stmt)
    return [(booking, tenant, customer, int(count or 0)) for booking, tenant, customer, count in result.all()]


async def save_booking_notification(
    db: AsyncSession,
    booking_request_id: UUID,
    channel: str,
    success: bool,
    error: str | None = None,
) -> BookingNotification:
    notification = BookingNotification(
        booking_request_id=booking_request_id,
        channel=channel,
        success=success,
        error=error,
    )
    db.add(notification)
    await db.flush()
    return notification


async def save_intent_log(db: AsyncSession, **values) -> BookingIntentLog:
    log = BookingIntentLog(**values)
    db.add(log)
    await db.flush()
    return log
