from __future__ import annotations

import threading
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from clinicflow.api.v1.automation import get_trigger_dispatcher
from clinicflow.api.v1.booking import get_booking_workflow
from clinicflow.booking.schemas import BookingRequestCreate
from clinicflow.booking.workflow import BookingWorkflow
from clinicflow.db import get_db
from clinicflow.main import app

from .conftest import CONVERSATION_ID, CUSTOMER_ID, TENANT_ID

MISSING_ID = "99999999-9999-9999-9999-999999999999"


@pytest.fixture
def workflow(booking_store, clock):
    wf = BookingWorkflow(booking_store, clock=clock)
    app.dependency_overrides[get_booking_workflow] = lambda: wf
    yield wf
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _pending(workflow: BookingWorkflow, date: str = "2024-04-01"):
    return await workflow.create(
        BookingRequestCreate(
            tenant_id=TENANT_ID,
            customer_id=CUSTOMER_ID,
            conversation_id=CONVERSATION_ID,
            requested_date=date,
        )
    )


@pytest.mark.asyncio
async def test_health_ok(client):
    resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "service": "clinicflow", "version": "0.1.0"}


@pytest.mark.asyncio
@pytest.mark.parametrize("failure, status_code, status", [(None, 200, "ready"), (OSError("db down"), 503, "unavailable")])
async def test_readiness_pings_database(client, failure, status_code, status):
    session = AsyncMock()
    session.execute = AsyncMock(side_effect=failure)

    async def _db():
        yield session

    app.dependency_overrides[get_db] = _db
    try:
        resp = await client.get("/health/ready")
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == status_code
    assert resp.json()["status"] == status
    session.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_list_pending(client, workflow, clock):
    record = await _pending(workflow)
    clock.advance(minutes=30)

    resp = await client.get("/api/v1/booking/requests", params={"tenant_id": TENANT_ID})

    assert resp.status_code == 200
    body = resp.json()
    assert [item["id"] for item in body] == [record.id]
    assert body[0]["waiting_minutes"] == 30.0
    assert body[0]["tenant_slug"] == "seoul-eye"


@pytest.mark.asyncio
async def test_get_request_404(client, workflow):
    resp = await client.get(f"/api/v1/booking/requests/{MISSING_ID}")

    assert resp.status_code == 404
    assert resp.json()["detail"] == "Booking request not found"


@pytest.mark.asyncio
async def test_approve_then_confirm(client, workflow):
    record = await _pending(workflow)

    resp = await client.patch(
        f"/api/v1/booking/requests/{record.id}/approve",
        json={"action": "approve", "confirmed_date": "2024-04-01T05:00:00Z", "human_response": "확정되었습니다"},
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "approved"

    resp = await client.post(f"/api/v1/booking/requests/{record.id}/confirm", json={"crm_booking_id": "CRM-5"})
    assert resp.status_code == 200
    assert resp.json() == {"id": record.id, "confirmed": True}

    resp = await client.post(f"/api/v1/booking/requests/{record.id}/confirm", json={"crm_booking_id": "CRM-6"})
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_reschedule_keeps_alternatives(client, workflow):
    record = await _pending(workflow)

    resp = await client.patch(
        f"/api/v1/booking/requests/{record.id}/approve",
        json={"action": "reschedule", "alternative_dates": ["2024-04-02", "2024-04-03"]},
    )

    assert resp.status_code == 200
    assert resp.json()["alternative_dates"] == ["2024-04-02", "2024-04-03"]
    assert resp.json()["confirmed_date"] is None


@pytest.mark.asyncio
async def test_reject_requires_reason(client, workflow):
    record = await _pending(workflow)

    resp = await client.patch(f"/api/v1/booking/requests/{record.id}/approve", json={"action": "reject"})
    assert resp.status_code == 422

    resp = await client.patch(
        f"/api/v1/booking/requests/{record.id}/approve",
        json={"action": "reject", "rejection_reason": "fully booked"},
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "rejected"

    resp = await client.patch(f"/api/v1/booking/requests/{record.id}/approve", json={"action": "approve"})
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_confirm_unknown_request_404(client, workflow):
    resp = await client.post(f"/api/v1/booking/requests/{MISSING_ID}/confirm", json={"crm_booking_id": "X"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_trigger_is_queued(client):
    calls: list[tuple] = []

    async def dispatch(trigger, context):
        calls.append((trigger, context))
        return "task-1"

    app.dependency_overrides[get_trigger_dispatcher] = lambda: dispatch
    try:
        resp = await client.post(
            "/api/v1/automation/triggers",
            json={
                "tenant_id": TENANT_ID,
                "trigger": "message_received",
                "conversation_id": CONVERSATION_ID,
                "variables": {"promo": "SPRING"},
            },
        )
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 202
    assert resp.json() == {"task_id": "task-1", "trigger": "message_received"}
    assert calls == [
        (
            "message_received",
            {"tenant_id": TENANT_ID, "conversation_id": CONVERSATION_ID, "variables": {"promo": "SPRING"}},
        )
    ]


@pytest.mark.asyncio
async def test_unknown_trigger_is_rejected(client):
    app.dependency_overrides[get_trigger_dispatcher] = lambda: AsyncMock(return_value="never")
    try:
        resp = await client.post("/api/v1/automation/triggers", json={"tenant_id": TENANT_ID, "trigger": "moon_phase"})
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_trigger_dispatch_publishes_off_the_event_loop(monkeypatch):
    import clinicflow.workers.tasks as tasks

    publishers: list[int] = []

    def delay(trigger, context):
        publishers.append(threading.get_ident())
        return SimpleNamespace(id="task-9")

    monkeypatch.setattr(tasks, "process_trigger_task", SimpleNamespace(delay=delay))

    task_id = await get_trigger_dispatcher()("message_received", {"tenant_id": TENANT_ID})

    assert task_id == "task-9"
    assert publishers and publishers[0] != threading.get_ident()
