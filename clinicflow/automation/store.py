"""
Data-store boundary for the rule engine.

`AutomationStore` is what the engine, limiter, enricher and action executor
depend on. `SqlAlchemyAutomationStore` implements it over `clinicflow.core.crud`,
one short session per call; none of the operations span more than one row.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import flag_modified

from clinicflow.automation.types import (
    BookingSnapshot,
    ConversationSnapshot,
    CustomerSnapshot,
    ExecutionContext,
    ExecutionResult,
    MessageSnapshot,
)
from clinicflow.core import crud

logger = logging.getLogger(__name__)


class AutomationStore(ABC):
    @abstractmethod
    async def list_rules(self, tenant_id: str, trigger: str) -> list[dict]:
        """Raw rule rows, active only, ordered by (priority, created_at)."""

    @abstractmethod
    async def get_customer(self, customer_id: str) -> CustomerSnapshot | None: ...

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> ConversationSnapshot | None: ...

    @abstractmethod
    async def get_message(self, message_id: str) -> MessageSnapshot | None: ...

    @abstractmethod
    async def get_booking(self, booking_id: str) -> BookingSnapshot | None: ...

    @abstractmethod
    async def count_successful_executions(self, rule_id: str, conversation_id: str) -> int: ...

    @abstractmethod
    async def get_last_execution_at(self, rule_id: str, conversation_id: str) -> datetime | None: ...

    @abstractmethod
    async def save_execution(self, tenant_id: str, trigger: str, context: ExecutionContext, result: ExecutionResult) -> None: ...

    @abstractmethod
    async def increment_rule_stats(self, rule_id: str, executed_at: datetime) -> None: ...

    @abstractmethod
    async def update_conversation(self, conversation_id: str, **values) -> None: ...

    @abstractmethod
    async def set_customer_tags(self, customer_id: str, tags: list[str]) -> None: ...

    @abstractmethod
    async def update_consultation_tag(self, customer_id: str, tag: str) -> None: ...

    @abstractmethod
    async def create_escalation(
        self,
        tenant_id: str,
        conversation_id: str,
        message_id: str | None,
        reason: str,
        priority: str,
        dedupe_key: str | None = None,
    ) -> str | None:
        """Returns the new escalation id, or None if `dedupe_key` was already used."""

    @abstractmethod
    async def add_internal_note(self, conversation_id: str, content: str, mention_users: list[str]) -> None: ...

    @abstractmethod
    async def pick_assignee(self, tenant_id: str, conversation: ConversationSnapshot, customer_id: str | None, strategy: str) -> str | None:
        """Resolve round_robin / least_busy / previous_agent to a user id."""


def _uuid(value: str | None) -> UUID | None:
    return UUID(str(value)) if value else None


def rule_row_to_dict(rule) -> dict:
    return {
        "id": str(rule.id),
        "tenant_id": str(rule.tenant_id),
        "name": rule.name,
        "description": rule.description,
        "is_active": rule.is_active,
        "priority": rule.priority,
        "trigger": rule.trigger,
        "trigger_config": rule.trigger_config or {},
        "conditions": rule.conditions,
        "actions": rule.actions or [],
        "max_executions_per_conversation": rule.max_executions_per_conversation,
        "cooldown_minutes": rule.cooldown_minutes,
        "execution_count": rule.execution_count,
        "last_executed_at": rule.last_executed_at,
        "created_at": rule.created_at,
    }


class SqlAlchemyAutomationStore(AutomationStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_rules(self, tenant_id: str, trigger: str) -> list[dict]:
        async with self.session_factory() as db:
            rules = await crud.list_active_rules(db, _uuid(tenant_id), trigger)
            return [rule_row_to_dict(r) for r in rules]

    async def get_customer(self, customer_id: str) -> CustomerSnapshot | None:
        async with self.session_factory() as db:
            row = await crud.get_customer(db, _uuid(customer_id))
            if row is None:
                return None
            return CustomerSnapshot(
                id=str(row.id),
                name=row.name,
                language=row.language,
                country=row.country,
                tags=list(row.tags or []),
                consultation_tag=row.consultation_tag,
                vip_status=row.vip_status,
                email=row.email,
                phone=row.phone,
            )

    async def get_conversation(self, conversation_id: str) -> ConversationSnapshot | None:
        async with self.session_factory() as db:
            row = await crud.get_conversation(db, _uuid(conversation_id))
            if row is None:
                return None
            return ConversationSnapshot(
                id=str(row.id),
                customer_id=str(row.customer_id) if row.customer_id else None,
                status=row.status,
                channel_type=row.channel_type,
                assigned_to=row.assigned_to,
                ai_enabled=row.ai_enabled,
                channel_account_id=row.channel_account_id,
                channel_user_id=row.channel_user_id,
            )

    async def get_message(self, message_id: str) -> MessageSnapshot | None:
        async with self.session_factory() as db:
            row = await crud.get_message(db, _uuid(message_id))
            if row is None:
                return None
            return MessageSnapshot(
                id=str(row.id),
                content=row.content,
                content_type=row.content_type,
                sentiment=row.sentiment,
            )

    async def get_booking(self, booking_id: str) -> BookingSnapshot | None:
        async with self.session_factory() as db:
            row = await crud.get_booking_request(db, _uuid(booking_id))
            if row is None:
                return None
            return BookingSnapshot(
                id=str(row.id),
                status=row.status,
                type=row.treatment_type,
                date=row.requested_date,
                scheduled_date=row.confirmed_date,
            )

    async def count_successful_executions(self, rule_id: str, conversation_id: str) -> int:
        async with self.session_factory() as db:
            return await crud.count_successful_executions(db, _uuid(rule_id), _uuid(conversation_id))

    async def get_last_execution_at(self, rule_id: str, conversation_id: str) -> datetime | None:
        async with self.session_factory() as db:
            return await crud.get_last_execution_at(db, _uuid(rule_id), _uuid(conversation_id))

    async def save_execution(self, tenant_id: str, trigger: str, context: ExecutionContext, result: ExecutionResult) -> None:
        async with self.session_factory() as db:
            await crud.save_execution(
                db,
                rule_id=_uuid(result.rule_id),
                tenant_id=_uuid(tenant_id),
                conversation_id=_uuid(context.conversation_id),
                customer_id=_uuid(context.customer_id),
                trigger=trigger,
                success=result.success,
                actions_executed=result.actions_executed,
                duration_ms=result.duration_ms,
                error=result.error,
                results=[r.model_dump() for r in result.action_results],
            )
            await db.commit()

    async def increment_rule_stats(self, rule_id: str, executed_at: datetime) -> None:
        async with self.session_factory() as db:
            await crud.increment_rule_stats(db, _uuid(rule_id), executed_at)
            await db.commit()

    async def update_conversation(self, conversation_id: str, **values) -> None:
        async with self.session_factory() as db:
            await crud.update_conversation(db, _uuid(conversation_id), **values)
            await db.commit()

    async def set_customer_tags(self, customer_id: str, tags: list[str]) -> None:
        async with self.session_factory() as db:
            await crud.update_customer(db, _uuid(customer_id), tags=tags)
            await db.commit()

    async def update_consultation_tag(self, customer_id: str, tag: str) -> None:
        async with self.session_factory() as db:
            await crud.update_customer(db, _uuid(customer_id), consultation_tag=tag)
            await db.commit()

    async def create_escalation(
        self,
        tenant_id: str,
        conversation_id: str,
        message_id: str | None,
        reason: str,
        priority: str,
        dedupe_key: str | None = None,
    ) -> str | None:
        async with self.session_factory() as db:
            escalation_id = await crud.insert_escalation(
                db,
                dedupe_key=dedupe_key,
                tenant_id=_uuid(tenant_id),
                conversation_id=_uuid(conversation_id),
                message_id=_uuid(message_id),
                reason=reason,
                priority=priority,
                status="pending",
            )
            await db.commit()
            return str(escalation_id) if escalation_id else None

    async def add_internal_note(self, conversation_id: str, content: str, mention_users: list[str]) -> None:
        async with self.session_factory() as db:
            await crud.save_message(
                db,
                conversation_id=_uuid(conversation_id),
                direction="outbound",
                role="system",
                content=content,
                is_internal=True,
                metadata={"source": "automation", "mention_users": mention_users},
            )
            await db.commit()

    async def pick_assignee(self, tenant_id: str, conversation: ConversationSnapshot, customer_id: str | None, strategy: str) -> str | None:
        async with self.session_factory() as db:
            if strategy == "previous_agent":
                if not customer_id:
                    return None
                return await crud.get_previous_assignee(db, _uuid(customer_id), _uuid(conversation.id))

            tenant = await crud.get_tenant(db, _uuid(tenant_id))
            if tenant is None:
                return None
            agents = list((tenant.settings or {}).get("agents") or [])
            if not agents:
                logger.warning("Tenant %s has no agents configured for %s assignment", tenant_id, strategy)
                return None

            if strategy == "least_busy":
                loads = await crud.get_assignee_loads(db, tenant.id, agents)
                return min(agents, key=lambda agent: loads.get(agent, 0))

            # round_robin: cursor kept in tenant settings.
            settings = dict(tenant.settings or {})
            cursor = int(settings.get("round_robin_cursor", -1)) + 1
            settings["round_robin_cursor"] = cursor % len(agents)
            tenant.settings = settings
            flag_modified(tenant, "settings")
            await db.commit()
            return agents[cursor % len(agents)]
