from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from clinicflow.automation.store import AutomationStore
from clinicflow.automation.types import (
    BookingSnapshot,
    ConversationSnapshot,
    CustomerSnapshot,
    MessageSnapshot,
)
from clinicflow.booking.schemas import (
    BookingRequestCreate,
    BookingRequestRecord,
    BookingStatus,
    PendingBookingRequest,
)
from clinicflow.booking.store import BookingStore, waiting_minutes
from clinicflow.workers.jobs import Job, JobQueue

TENANT_ID = "11111111-1111-1111-1111-111111111111"
CUSTOMER_ID = "22222222-2222-2222-2222-222222222222"
CONVERSATION_ID = "33333333-3333-3333-3333-333333333333"
MESSAGE_ID = "44444444-4444-4444-4444-444444444444"

T0 = datetime(2024, 3, 15, 6, 0, tzinfo=timezone.utc)  # 15:00 in Seoul, a Friday


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeAutomationStore(AutomationStore):
    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.rules: list[dict] = []
        self.customers: dict[str, CustomerSnapshot] = {}
        self.conversations: dict[str, ConversationSnapshot] = {}
        self.messages: dict[str, MessageSnapshot] = {}
        self.bookings: dict[str, BookingSnapshot] = {}
        self.executions: list[dict] = []
        self.stats: dict[str, int] = {}
        self.conversation_updates: list[tuple[str, dict]] = []
        self.escalations: dict[str, dict] = {}
        self.notes: list[dict] = []
        self.assignees: dict[str, str | None] = {}
        self._ids = itertools.count(1)

    async def list_rules(self, tenant_id, trigger):
        return [
            dict(r)
            for r in self.rules
            if r["tenant_id"] == tenant_id and r["trigger"] == trigger and r.get("is_active", True)
        ]

    async def get_customer(self, customer_id):
        return self.customers.get(customer_id)

    async def get_conversation(self, conversation_id):
        return self.conversations.get(conversation_id)

    async def get_message(self, message_id):
        return self.messages.get(message_id)

    async def get_booking(self, booking_id):
        return self.bookings.get(booking_id)

    async def count_successful_executions(self, rule_id, conversation_id):
        return sum(
            1
            for e in self.executions
            if e["rule_id"] == rule_id and e["conversation_id"] == conversation_id and e["success"]
        )

    async def get_last_execution_at(self, rule_id, conversation_id):
        times = [
            e["created_at"]
            for e in self.executions
            if e["rule_id"] == rule_id and e["conversation_id"] == conversation_id
        ]
        return max(times) if times else None

    async def save_execution(self, tenant_id, trigger, context, result):
        self.executions.append(
            {
                "rule_id": result.rule_id,
                "tenant_id": tenant_id,
                "trigger": trigger,
                "conversation_id": context.conversation_id,
                "success": result.success,
                "result": result,
                "created_at": self.clock(),
            }
        )

    async def increment_rule_stats(self, rule_id, executed_at):
        self.stats[rule_id] = self.stats.get(rule_id, 0) + 1

    async def update_conversation(self, conversation_id, **values):
        self.conversation_updates.append((conversation_id, values))
        conv = self.conversations.get(conversation_id)
        if conv is not None:
            self.conversations[conversation_id] = conv.model_copy(update=values)

    async def set_customer_tags(self, customer_id, tags):
        customer = self.customers[customer_id]
        self.customers[customer_id] = customer.model_copy(update={"tags": list(tags)})

    async def update_consultation_tag(self, customer_id, tag):
        customer = self.customers[customer_id]
        self.customers[customer_id] = customer.model_copy(update={"consultation_tag": tag})

    async def create_escalation(self, tenant_id, conversation_id, message_id, reason, priority, dedupe_key=None):
        key = dedupe_key or f"auto-{next(self._ids)}"
        if key in self.escalations:
            return None
        escalation_id = f"esc-{next(self._ids)}"
        self.escalations[key] = {
            "id": escalation_id,
            "conversation_id": conversation_id,
            "message_id": message_id,
            "reason": reason,
            "priority": priority,
        }
        return escalation_id

    async def add_internal_note(self, conversation_id, content, mention_users):
        self.notes.append({"conversation_id": conversation_id, "content": content, "mention_users": mention_users})

    async def pick_assignee(self, tenant_id, conversation, customer_id, strategy):
        return self.assignees.get(strategy)


class RecordingJobQueue(JobQueue):
    def __init__(self):
        self.jobs: list[Job] = []

    async def enqueue(self, job: Job) -> str | None:
        self.jobs.append(job)
        return f"job-{len(self.jobs)}"


class FakeBookingStore(BookingStore):
    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.records: dict[str, BookingRequestRecord] = {}
        self.intents: list[tuple] = []
        self.notifications: list[tuple] = []
        self.tenant_slug = "seoul-eye"
        self.tenant_name = "Seoul Eye Clinic"
        self.customer_name: str | None = "Yuki"
        self.customer_language: str | None = "ja"
        self.fail_create = False
        self._ids = itertools.count(1)

    async def create_booking_request(self, data: BookingRequestCreate) -> BookingRequestRecord:
        if self.fail_create:
            raise RuntimeError("database unavailable")
        record = BookingRequestRecord(
            id=f"00000000-0000-0000-0000-{next(self._ids):012d}",
            tenant_id=data.tenant_id,
            customer_id=data.customer_id,
            conversation_id=data.conversation_id,
            requested_date=data.requested_date,
            requested_time=data.requested_time,
            treatment_type=data.treatment_type,
            special_requests=data.special_requests,
            status=BookingStatus.PENDING,
            metadata=data.metadata,
            created_at=self.clock(),
        )
        self.records[record.id] = record
        return record

    async def get_booking_request(self, booking_id):
        return self.records.get(booking_id)

    def _transition(self, booking_id, allowed, **values):
        record = self.records.get(booking_id)
        if record is None or record.status not in allowed:
            return None
        updated = record.model_copy(update=values)
        self.records[booking_id] = updated
        return updated

    async def approve_booking_request(self, booking_id, approval, responded_at):
        return self._transition(
            booking_id,
            (BookingStatus.PENDING,),
            status=BookingStatus.APPROVED,
            confirmed_date=approval.confirmed_date,
            alternative_dates=approval.alternative_dates,
            human_response=approval.human_response,
            human_responded_at=responded_at,
        )

    async def reject_booking_request(self, booking_id, reason, responded_at):
        return self._transition(
            booking_id,
            (BookingStatus.PENDING,),
            status=BookingStatus.REJECTED,
            rejection_reason=reason,
            human_responded_at=responded_at,
        )

    async def confirm_booking_to_crm(self, booking_id, crm_booking_id, confirmed_at):
        updated = self._transition(
            booking_id,
            (BookingStatus.PENDING, BookingStatus.APPROVED),
            status=BookingStatus.CONFIRMED,
            crm_booking_id=crm_booking_id,
            confirmed_at=confirmed_at,
        )
        return updated is not None

    async def list_requests(self, now, status=BookingStatus.PENDING, tenant_id=None, booking_id=None):
        views = []
        for record in sorted(self.records.values(), key=lambda r: r.created_at):
            if status is not None and record.status != status:
                continue
            if tenant_id and record.tenant_id != tenant_id:
                continue
            if booking_id and record.id != booking_id:
                continue
            views.append(
                PendingBookingRequest(
                    id=record.id,
                    tenant_id=record.tenant_id,
                    tenant_slug=self.tenant_slug,
                    tenant_name=self.tenant_name,
                    customer_id=record.customer_id,
                    customer_name=self.customer_name,
                    customer_language=self.customer_language,
                    requested_date=record.requested_date,
                    requested_time=record.requested_time,
                    treatment_type=record.treatment_type,
                    special_requests=record.special_requests,
                    status=record.status,
                    created_at=record.created_at,
                    waiting_minutes=waiting_minutes(record.created_at, now),
                    notifications_sent=sum(1 for n in self.notifications if n[0] == record.id and n[2]),
                )
            )
        return views

    async def log_intent(self, conversation_id, message_id, intent):
        self.intents.append((conversation_id, message_id, intent))

    async def log_notification(self, booking_id, channel, success, error=None):
        self.notifications.append((booking_id, channel, success, error))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> FakeAutomationStore:
    s = FakeAutomationStore(clock)
    s.customers[CUSTOMER_ID] = CustomerSnapshot(
        id=CUSTOMER_ID,
        name="김민지",
        language="ko",
        country="KR",
        tags=["new"],
    )
    s.conversations[CONVERSATION_ID] = ConversationSnapshot(
        id=CONVERSATION_ID,
        customer_id=CUSTOMER_ID,
        status="active",
        channel_type="kakao",
        channel_account_id="acc-1",
        channel_user_id="user-1",
    )
    s.messages[MESSAGE_ID] = MessageSnapshot(id=MESSAGE_ID, content="환불 가능한가요?")
    return s


@pytest.fixture
def jobs() -> RecordingJobQueue:
    return RecordingJobQueue()


@pytest.fixture
def booking_store(clock) -> FakeBookingStore:
    return FakeBookingStore(clock)
