"""
Data-store boundary for the booking workflow.

The three transitions (create, approve, confirm) plus reject are single guarded
statements: a transition from the wrong state changes nothing and reports it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinicflow.booking.schemas import (
    BookingApproval,
    BookingIntent,
    BookingRequestCreate,
    BookingRequestRecord,
    BookingStatus,
    PendingBookingRequest,
)
from clinicflow.core import crud

logger = logging.getLogger(__name__)


class BookingStore(ABC):
    @abstractmethod
    async def create_booking_request(self, data: BookingRequestCreate) -> BookingRequestRecord: ...

    @abstractmethod
    async def get_booking_request(self, booking_id: str) -> BookingRequestRecord | None: ...

    @abstractmethod
    async def approve_booking_request(
        self, booking_id: str, approval: BookingApproval, responded_at: datetime
    ) -> BookingRequestRecord | None:
        """pending -> approved; None if the request is not pending."""

    @abstractmethod
    async def reject_booking_request(self, booking_id: str, reason: str, responded_at: datetime) -> BookingRequestRecord | None:
        """pending -> rejected; None if the request is not pending."""

    @abstractmethod
    async def confirm_booking_to_crm(self, booking_id: str, crm_booking_id: str, confirmed_at: datetime) -> bool:
        """pending/approved -> confirmed; False if already terminal or missing."""

    @abstractmethod
    async def list_requests(
        self,
        now: datetime,
        status: BookingStatus | None = BookingStatus.PENDING,
        tenant_id: str | None = None,
        booking_id: str | None = None,
    ) -> list[PendingBookingRequest]:
        """Requests with tenant/customer details, oldest first."""

    @abstractmethod
    async def log_intent(self, conversation_id: str, message_id: str | None, intent: BookingIntent) -> None: ...

    @abstractmethod
    async def log_notification(self, booking_id: str, channel: str, success: bool, error: str | None = None) -> None: ...


def _uuid(value: str | None) -> UUID | None:
    return UUID(str(value)) if value else None


def booking_row_to_record(row) -> BookingRequestRecord:
    return BookingRequestRecord(
        id=str(row.id),
        tenant_id=str(row.tenant_id),
        customer_id=str(row.customer_id),
        conversation_id=str(row.conversation_id) if row.conversation_id else None,
        requested_date=row.requested_date,
        requested_time=row.requested_time,
        treatment_type=row.treatment_type,
        special_requests=row.special_requests,
        status=row.status,
        human_response=row.human_response,
        alternative_dates=row.alternative_dates,
        rejection_reason=row.rejection_reason,
        crm_booking_id=row.crm_booking_id,
        confirmed_date=row.confirmed_date,
        metadata=row.metadata_ or {},
        created_at=row.created_at,
        updated_at=row.updated_at,
        human_responded_at=row.human_responded_at,
        confirmed_at=row.confirmed_at,
    )


def waiting_minutes(created_at: datetime, now: datetime) -> float:
    return max(0.0, (now - created_at).total_seconds() / 60)


class SqlAlchemyBookingStore(BookingStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_booking_request(self, data: BookingRequestCreate) -> BookingRequestRecord:
        async with self.session_factory() as db:
            row = await crud.create_booking_request(
                db,
                tenant_id=_uuid(data.tenant_id),
                customer_id=_uuid(data.customer_id),
                conversation_id=_uuid(data.conversation_id),
                requested_date=data.requested_date,
                requested_time=data.requested_time,
                treatment_type=data.treatment_type,
                special_requests=data.special_requests,
                metadata_=data.metadata,
            )
            await db.commit()
            return booking_row_to_record(row)

    async def get_booking_request(self, booking_id: str) -> BookingRequestRecord | None:
        async with self.session_factory() as db:
            row = await crud.get_booking_request(db, _uuid(booking_id))
            return booking_row_to_record(row) if row else None

    async def approve_booking_request(
        self, booking_id: str, approval: BookingApproval, responded_at: datetime
    ) -> BookingRequestRecord | None:
        async with self.session_factory() as db:
            row = await crud.transition_booking_request(
                db,
                _uuid(booking_id),
                (BookingStatus.PENDING.value,),
                status=BookingStatus.APPROVED.value,
                confirmed_date=approval.confirmed_date,
                alternative_dates=approval.alternative_dates,
                human_response=approval.human_response,
                human_responded_at=responded_at,
            )
            await db.commit()
            return booking_row_to_record(row) if row else None

    async def reject_booking_request(self, booking_id: str, reason: str, responded_at: datetime) -> BookingRequestRecord | None:
        async with self.session_factory() as db:
            row = await crud.transition_booking_request(
                db,
                _uuid(booking_id),
                (BookingStatus.PENDING.value,),
                status=BookingStatus.REJECTED.value,
                rejection_reason=reason,
                human_responded_at=responded_at,
            )
            await db.commit()
            return booking_row_to_record(row) if row else None

    async def confirm_booking_to_crm(self, booking_id: str, crm_booking_id: str, confirmed_at: datetime) -> bool:
        async with self.session_factory() as db:
            row = await crud.transition_booking_request(
                db,
                _uuid(booking_id),
                (BookingStatus.PENDING.value, BookingStatus.APPROVED.value),
                status=BookingStatus.CONFIRMED.value,
                crm_booking_id=crm_booking_id,
                confirmed_at=confirmed_at,
            )
            await db.commit()
            return row is not None

    async def list_requests(
        self,
        now: datetime,
        status: BookingStatus | None = BookingStatus.PENDING,
        tenant_id: str | None = None,
        booking_id: str | None = None,
    ) -> list[PendingBookingRequest]:
        async with self.session_factory() as db:
            rows = await crud.list_booking_request_details(
                db,
                status=status.value if status else None,
                tenant_id=_uuid(tenant_id),
                booking_id=_uuid(booking_id),
            )
        return [
            PendingBookingRequest(
                id=str(booking.id),
                tenant_id=str(tenant.id),
                tenant_slug=tenant.slug,
                tenant_name=tenant.name,
                customer_id=str(customer.id),
                customer_name=customer.name,
                customer_language=customer.language,
                requested_date=booking.requested_date,
                requested_time=booking.requested_time,
                treatment_type=booking.treatment_type,
                special_requests=booking.special_requests,
                status=booking.status,
                created_at=booking.created_at,
                waiting_minutes=waiting_minutes(booking.created_at, now),
                notifications_sent=sent,
            )
            for booking, tenant, customer, sent in rows
        ]

    async def log_intent(self, conversation_id: str, message_id: str | None, intent: BookingIntent) -> None:
        async with self.session_factory() as db:
            await crud.save_intent_log(
                db,
                conversation_id=_uuid(conversation_id),
                message_id=_uuid(message_id),
                intent_detected=intent.detected,
                intent_confidence=intent.confidence,
                intent_type=intent.intent_type.value,
                extracted_entities=intent.entities.model_dump(exclude_none=True),
                ai_action=intent.recommended_action.value,
                ai_response=intent.suggested_response or None,
            )
            await db.commit()

    async def log_notification(self, booking_id: str, channel: str, success: bool, error: str | None = None) -> None:
        async with self.session_factory() as db:
            await crud.save_booking_notification(db, _uuid(booking_id), channel, success, error)
            await db.commit()
