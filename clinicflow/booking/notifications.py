from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from clinicflow.automation.limiter import utcnow
from clinicflow.booking.store import BookingStore
from clinicflow.integrations.telegram_notify import BookingNotice, TelegramNotifier

logger = logging.getLogger(__name__)

NotifierFactory = Callable[[str], "TelegramNotifier | None"]


class ManagerNotifier:
    """Tells the clinic manager about a new booking request and records each attempt."""

    channel = "telegram"

    def __init__(
        self,
        store: BookingStore,
        notifier_factory: NotifierFactory = TelegramNotifier.from_secrets,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.notifier_factory = notifier_factory
        self._clock = clock

    async def notify_booking_request(self, booking_id: str) -> bool:
        views = await self.store.list_requests(self._clock(), status=None, booking_id=booking_id)
        if not views:
            logger.warning("Booking request %s vanished before notification", booking_id)
            return False
        view = views[0]

        notifier = self.notifier_factory(view.tenant_slug or "")
        if notifier is None:
            logger.info("No manager chat configured for tenant %s", view.tenant_slug)
            return False

        result = await notifier.send_booking_request(
            BookingNotice(
                booking_request_id=view.id,
                tenant_name=view.tenant_name or "",
                customer_name=view.customer_name,
                customer_language=view.customer_language,
                requested_date=view.requested_date,
                requested_time=view.requested_time,
                treatment_type=view.treatment_type,
                special_requests=view.special_requests,
                waiting_minutes=view.waiting_minutes,
            )
        )
        success = bool(result.get("success"))
        await self.store.log_notification(view.id, self.channel, success, result.get("error"))
        if not success:
            logger.warning("Manager notification for %s failed: %s", view.id, result.get("error"))
        return success
