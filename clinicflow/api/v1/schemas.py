from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from clinicflow.automation.types import AutomationTrigger


class BookingReviewRequest(BaseModel):
    """Human decision on a pending booking request."""

    action: Literal["approve", "reschedule", "reject"]
    confirmed_date: datetime | None = None
    alternative_dates: list[str] | None = None
    human_response: str | None = None
    rejection_reason: str | None = None

    @model_validator(mode="after")
    def _check_action_fields(self) -> "BookingReviewRequest":
        if self.action == "reschedule" and not self.alternative_dates:
            raise ValueError("reschedule requires alternative_dates")
        if self.action == "reject" and not (self.rejection_reason or "").strip():
            raise ValueError("reject requires rejection_reason")
        return self


class BookingConfirmRequest(BaseModel):
    crm_booking_id: str = Field(min_length=1)


class BookingConfirmResponse(BaseModel):
    id: str
    confirmed: bool


class TriggerRequest(BaseModel):
    tenant_id: UUID
    trigger: AutomationTrigger
    conversation_id: UUID | None = None
    customer_id: UUID | None = None
    message_id: UUID | None = None
    booking_id: UUID | None = None
    escalation_id: UUID | None = None
    status_from: str | None = None
    status_to: str | None = None
    variables: dict[str, Any] = Field(default_factory=dict)

    def to_context(self) -> dict:
        return self.model_dump(mode="json", exclude={"trigger"}, exclude_none=True)


class TriggerAcceptedResponse(BaseModel):
    task_id: str | None
    trigger: AutomationTrigger
