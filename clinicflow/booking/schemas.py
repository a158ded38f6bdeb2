from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class BookingStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class IntentType(str, Enum):
    INQUIRY = "inquiry"
    REQUEST = "request"
    MODIFICATION = "modification"
    CANCELLATION = "cancellation"
    NONE = "none"


class RecommendedAction(str, Enum):
    SEND_FORM = "send_form"
    ASK_DETAILS = "ask_details"
    CONFIRM_BOOKING = "confirm_booking"
    ESCALATE = "escalate"
    NONE = "none"


class BookingEntities(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    requested_date: str | None = None
    requested_time: str | None = None
    treatment_type: str | None = None
    special_requests: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return None


class BookingIntent(BaseModel):
    detected: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    intent_type: IntentType = IntentType.NONE
    entities: BookingEntities = Field(default_factory=BookingEntities)
    recommended_action: RecommendedAction = RecommendedAction.NONE
    suggested_response: str = ""

    @classmethod
    def not_detected(cls) -> "BookingIntent":
        return cls()

    @classmethod
    def from_llm_payload(cls, data: Any) -> "BookingIntent":
        """
        Build an intent from model-produced JSON without trusting it.

        Confidence is clamped to [0, 1]; unknown intent types and actions become
        `none`. Raises ValueError if the payload is not a JSON object.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Intent payload must be an object, got {type(data).__name__}")

        intent_raw = str(data.get("intentType") or data.get("intent_type") or "").strip().lower()
        intent_raw = intent_raw.removeprefix("booking_")
        intent_type = IntentType(intent_raw) if intent_raw in IntentType._value2member_map_ else IntentType.NONE

        action_raw = str(data.get("recommendedAction") or data.get("recommended_action") or "").strip().lower()
        action = (
            RecommendedAction(action_raw)
            if action_raw in RecommendedAction._value2member_map_
            else RecommendedAction.NONE
        )

        try:
            confidence = float(data.get("confidence") or 0.0)
        except (TypeError, ValueError):
            confidence = 0.0
        if math.isnan(confidence):
            confidence = 0.0
        confidence = max(0.0, min(1.0, confidence))

        detected = data.get("detected")
        if isinstance(detected, str):
            detected = detected.strip().lower() in ("true", "1", "yes")

        entities = data.get("entities")
        suggested = data.get("suggestedResponse") or data.get("suggested_response") or ""

        return cls(
            detected=bool(detected),
            confidence=confidence,
            intent_type=intent_type,
            entities=BookingEntities.model_validate(entities if isinstance(entities, dict) else {}),
            recommended_action=action,
            suggested_response=str(suggested),
        )


class BookingRequestCreate(BaseModel):
    tenant_id: str
    customer_id: str
    conversation_id: str | None = None
    requested_date: str = Field(min_length=1)
    requested_time: str | None = None
    treatment_type: str | None = None
    special_requests: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class BookingApproval(BaseModel):
    confirmed_date: datetime | None = None
    alternative_dates: list[str] | None = None
    human_response: str | None = None


class BookingRequestRecord(BaseModel):
    id: str
    tenant_id: str
    customer_id: str
    conversation_id: str | None = None
    requested_date: str
    requested_time: str | None = None
    treatment_type: str | None = None
    special_requests: str | None = None
    status: BookingStatus
    human_response: str | None = None
    alternative_dates: list[str] | None = None
    rejection_reason: str | None = None
    crm_booking_id: str | None = None
    confirmed_date: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    human_responded_at: datetime | None = None
    confirmed_at: datetime | None = None


class PendingBookingRequest(BaseModel):
    id: str
    tenant_id: str
    tenant_slug: str | None = None
    tenant_name: str | None = None
    customer_id: str
    customer_name: str | None = None
    customer_language: str | None = None
    requested_date: str
    requested_time: str | None = None
    treatment_type: str | None = None
    special_requests: str | None = None
    status: BookingStatus = BookingStatus.PENDING
    created_at: datetime
    waiting_minutes: float = 0.0
    notifications_sent: int = 0
