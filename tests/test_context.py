from __future__ import annotations

from datetime import datetime, timezone

import pytest

from clinicflow.automation.context import ContextEnricher, format_ko_date, format_ko_time
from clinicflow.automation.types import BookingSnapshot, ExecutionContext

from .conftest import CONVERSATION_ID, CUSTOMER_ID, MESSAGE_ID, TENANT_ID


def test_korean_date_and_time_formats():
    assert format_ko_date(datetime(2024, 3, 5)) == "2024. 3. 5."
    assert format_ko_time(datetime(2024, 3, 5, 15, 5, 9)) == "오후 3:05:09"
    assert format_ko_time(datetime(2024, 3, 5, 0, 30, 0)) == "오전 12:30:00"
    assert format_ko_time(datetime(2024, 3, 5, 12, 0, 0)) == "오후 12:00:00"


@pytest.mark.asyncio
async def test_enrich_loads_entities_and_variables(store, clock):
    store.bookings["b1"] = BookingSnapshot(
        id="b1",
        status="confirmed",
        type="LASIK",
        scheduled_date=datetime(2024, 3, 20, 16, 0, tzinfo=timezone.utc),
    )
    ctx = ExecutionContext(tenant_id=TENANT_ID, conversation_id=CONVERSATION_ID, message_id=MESSAGE_ID, booking_id="b1")

    enriched = await ContextEnricher(store, clock=clock).enrich(ctx)

    assert enriched.customer_id == CUSTOMER_ID
    assert enriched.customer.name == "김민지"
    assert enriched.variables["customer_name"] == "김민지"
    assert enriched.variables["conversation_status"] == "active"
    assert enriched.variables["message_content"] == "환불 가능한가요?"
    # 16:00 UTC on the 20th is already the 21st in Seoul.
    assert enriched.variables["booking_date"] == "2024. 3. 21."
    assert enriched.variables["booking_type"] == "LASIK"
    assert enriched.variables["current_date"] == "2024. 3. 15."
    assert enriched.variables["current_time"] == "오후 3:00:00"
    # The caller's context is not mutated.
    assert ctx.customer is None


@pytest.mark.asyncio
async def test_missing_entities_get_fallbacks(store, clock):
    ctx = ExecutionContext(tenant_id=TENANT_ID, customer_id="gone", conversation_id="gone-too")

    enriched = await ContextEnricher(store, clock=clock).enrich(ctx)

    assert enriched.customer is None
    assert enriched.conversation is None
    assert enriched.variables["customer_name"] == "고객님"
    assert enriched.variables["customer_language"] == "KO"
    assert enriched.variables["booking_date"] == ""
