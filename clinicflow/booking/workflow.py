"""
Booking request state machine.

    pending --approve--> approved --confirm--> confirmed
    pending --confirm--> confirmed
    pending --reject---> rejected

`confirmed` and `rejected` are terminal; reopening means a new request.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from clinicflow.automation.limiter import utcnow
from clinicflow.booking.notifications import ManagerNotifier
from clinicflow.booking.schemas import (
    BookingApproval,
    BookingRequestCreate,
    BookingRequestRecord,
    PendingBookingRequest,
)
from clinicflow.booking.store import BookingStore

logger = logging.getLogger(__name__)


class BookingRequestNotFound(LookupError):
    pass


class InvalidBookingTransition(ValueError):
    pass


class BookingWorkflow:
    def __init__(
        self,
        store: BookingStore,
        notifier: ManagerNotifier | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.notifier = notifier
        self._clock = clock

    async def create(self, data: BookingRequestCreate) -> BookingRequestRecord:
        record = await self.store.create_booking_request(data)
        logger.info(
            "Booking request %s created for customer %s (source=%s)",
            record.id,
            record.customer_id,
            data.metadata.get("source"),
        )
        if self.notifier is not None:
            try:
                await self.notifier.notify_booking_request(record.id)
            except Exception:
                # A failed alert leaves the request pending; the queue shows notifications_sent.
                logger.exception("Manager notification for booking request %s failed", record.id)
        return record

    async def get(self, booking_id: str) -> BookingRequestRecord:
        record = await self.store.get_booking_request(booking_id)
        if record is None:
            raise BookingRequestNotFound(booking_id)
        return record

    async def approve(self, booking_id: str, approval: BookingApproval) -> BookingRequestRecord:
        updated = await self.store.approve_booking_request(booking_id, approval, self._clock())
        if updated is None:
            await self._raise_transition_error(booking_id, "approve")
        logger.info("Booking request %s approved", booking_id)
        return updated

    async def reject(self, booking_id: str, reason: str) -> BookingRequestRecord:
        if not reason or not reason.strip():
            raise ValueError("A rejection reason is required")
        updated = await self.store.reject_booking_request(booking_id, reason.strip(), self._clock())
        if updated is None:
            await self._raise_transition_error(booking_id, "reject")
        logger.info("Booking request %s rejected: %s", booking_id, reason)
        return updated

    async def confirm_to_crm(self, booking_id: str, crm_booking_id: str) -> bool:
        """Mark the request as written to the CRM. False if it is missing or already terminal."""
        confirmed = await self.store.confirm_booking_to_crm(booking_id, crm_booking_id, self._clock())
        if confirmed:
            logger.info("Booking request %s confirmed as CRM booking %s", booking_id, crm_booking_id)
        else:
            logger.warning("Booking request %s could not be confirmed (missing or terminal)", booking_id)
        return confirmed

    async def list_pending(self, tenant_id: str | None = None) -> list[PendingBookingRequest]:
        return await self.store.list_requests(self._clock(), tenant_id=tenant_id)

    async def _raise_transition_error(self, booking_id: str, verb: str) -> None:
        current = await self.store.get_booking_request(booking_id)
        if current is None:
            raise BookingRequestNotFound(booking_id)
        raise InvalidBookingTransition(f"Cannot {verb} a booking request in status {current.status.value}")
