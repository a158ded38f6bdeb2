from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable
from zoneinfo import ZoneInfo

from clinicflow.automation.store import AutomationStore
from clinicflow.automation.types import ExecutionContext

logger = logging.getLogger(__name__)

ANONYMOUS_CUSTOMER_NAME = "고객님"
DEFAULT_CUSTOMER_LANGUAGE = "KO"


def format_ko_date(value: datetime) -> str:
    """2024. 3. 15."""
    return f"{value.year}. {value.month}. {value.day}."


def format_ko_time(value: datetime) -> str:
    """오후 3:05:09"""
    meridiem = "오전" if value.hour < 12 else "오후"
    hour = value.hour % 12 or 12
    return f"{meridiem} {hour}:{value.minute:02d}:{value.second:02d}"


class ContextEnricher:
    """
    Loads the entities referenced by a partial context and derives template variables.

    Referenced ids that no longer resolve leave the snapshot empty; nothing is raised.
    """

    def __init__(
        self,
        store: AutomationStore,
        timezone: str = "Asia/Seoul",
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.tz = ZoneInfo(timezone)
        self._clock = clock or (lambda: datetime.now(self.tz))

    async def enrich(self, context: ExecutionContext) -> ExecutionContext:
        ctx = context.model_copy(deep=True)

        if ctx.conversation_id and ctx.conversation is None:
            ctx.conversation = await self.store.get_conversation(ctx.conversation_id)
        if not ctx.customer_id and ctx.conversation and ctx.conversation.customer_id:
            ctx.customer_id = ctx.conversation.customer_id

        if ctx.customer_id and ctx.customer is None:
            ctx.customer = await self.store.get_customer(ctx.customer_id)
        if ctx.message_id and ctx.message is None:
            ctx.message = await self.store.get_message(ctx.message_id)
        if ctx.booking_id and ctx.booking is None:
            ctx.booking = await self.store.get_booking(ctx.booking_id)

        variables = self.build_variables(ctx)
        variables.update(context.variables)
        ctx.variables = variables
        return ctx

    def build_variables(self, ctx: ExecutionContext) -> dict[str, Any]:
        now = self._clock().astimezone(self.tz)
        customer, conversation, message, booking = ctx.customer, ctx.conversation, ctx.message, ctx.booking

        booking_date = ""
        if booking is not None:
            if booking.scheduled_date is not None:
                booking_date = format_ko_date(booking.scheduled_date.astimezone(self.tz))
            elif booking.date:
                booking_date = booking.date

        return {
            "customer_name": (customer.name if customer else None) or ANONYMOUS_CUSTOMER_NAME,
            "customer_language": (customer.language if customer else None) or DEFAULT_CUSTOMER_LANGUAGE,
            "customer_country": (customer.country if customer else None) or "",
            "consultation_tag": (customer.consultation_tag if customer else None) or "",
            "conversation_status": conversation.status if conversation else "",
            "channel_type": conversation.channel_type if conversation else "",
            "message_content": (message.content if message else None) or "",
            "booking_date": booking_date,
            "booking_type": (booking.type if booking else None) or "",
            "current_date": format_ko_date(now),
            "current_time": format_ko_time(now),
        }
