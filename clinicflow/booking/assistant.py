"""
Booking Assistant — booking logic layered onto an ordinary AI reply.

For each inbound message in a fully automated channel:
1. A filled booking form creates a request straight away
2. Otherwise the intent classifier runs and its result is logged
3. High confidence (>= 0.7): send the form, or create the request when the model
   recommends confirming
4. No / weak intent (< 0.5): append booking guidance to the reply
5. In between: use the classifier's suggested response
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from clinicflow.booking.forms import (
    GuidanceIntensity,
    add_booking_guidance,
    ask_for_date,
    booking_confirmation,
    booking_error_message,
    generate_booking_form,
    is_booking_form_response,
    parse_booking_form_response,
)
from clinicflow.booking.intent import IntentClassifier
from clinicflow.booking.schemas import BookingEntities, BookingIntent, BookingRequestCreate, RecommendedAction
from clinicflow.booking.store import BookingStore
from clinicflow.booking.workflow import BookingWorkflow

logger = logging.getLogger(__name__)

ACT_CONFIDENCE = 0.7
GUIDANCE_BELOW_CONFIDENCE = 0.5


@dataclass
class AssistantInput:
    tenant_id: str
    customer_id: str
    conversation_id: str
    message: str
    message_id: str | None = None
    language: str | None = "ko"
    history: list[dict] = field(default_factory=list)
    base_reply: str = ""
    full_automation: bool = True
    guidance_intensity: GuidanceIntensity = "medium"


@dataclass
class AssistantOutcome:
    reply: str
    intent: BookingIntent | None = None
    booking_request_id: str | None = None
    form_sent: bool = False
    guidance_added: bool = False
    escalate: bool = False
    escalation_reason: str | None = None


class BookingAssistant:
    def __init__(self, classifier: IntentClassifier, workflow: BookingWorkflow, store: BookingStore):
        self.classifier = classifier
        self.workflow = workflow
        self.store = store

    async def handle(self, inp: AssistantInput) -> AssistantOutcome:
        if not inp.full_automation:
            return AssistantOutcome(reply=inp.base_reply)

        if is_booking_form_response(inp.message):
            return await self._handle_form(inp)

        intent = await self.classifier.detect(inp.message, inp.history, inp.language)
        if inp.message_id:
            await self._log_intent(inp, intent)

        if intent.detected and intent.confidence >= ACT_CONFIDENCE:
            if intent.recommended_action is RecommendedAction.SEND_FORM:
                return self._form_reply(inp, intent)
            if intent.recommended_action is RecommendedAction.CONFIRM_BOOKING:
                if not intent.entities.requested_date:
                    return self._form_reply(inp, intent)
                return await self._create_request(inp, intent.entities, intent, source="intent_detection")

        if not intent.detected or intent.confidence < GUIDANCE_BELOW_CONFIDENCE:
            return AssistantOutcome(
                reply=add_booking_guidance(inp.base_reply, inp.guidance_intensity, inp.language),
                intent=intent,
                guidance_added=True,
            )

        return AssistantOutcome(reply=intent.suggested_response or inp.base_reply, intent=intent)

    def _form_reply(self, inp: AssistantInput, intent: BookingIntent) -> AssistantOutcome:
        form = generate_booking_form(inp.language, intent.entities)
        reply = f"{intent.suggested_response}\n\n{form.content}" if intent.suggested_response else form.content
        return AssistantOutcome(reply=reply, intent=intent, form_sent=True)

    async def _handle_form(self, inp: AssistantInput) -> AssistantOutcome:
        entities = parse_booking_form_response(inp.message)
        if not entities.requested_date:
            return AssistantOutcome(reply=ask_for_date(inp.language))
        return await self._create_request(inp, entities, None, source="booking_form")

    async def _create_request(
        self,
        inp: AssistantInput,
        entities: BookingEntities,
        intent: BookingIntent | None,
        source: str,
    ) -> AssistantOutcome:
        metadata: dict = {"source": source, "language": inp.language}
        if intent is not None:
            metadata["confidence"] = intent.confidence
        try:
            record = await self.workflow.create(
                BookingRequestCreate(
                    tenant_id=inp.tenant_id,
                    customer_id=inp.customer_id,
                    conversation_id=inp.conversation_id,
                    requested_date=entities.requested_date or "",
                    requested_time=entities.requested_time,
                    treatment_type=entities.treatment_type,
                    special_requests=entities.special_requests,
                    metadata=metadata,
                )
            )
        except Exception:
            logger.exception("Could not create booking request for conversation %s", inp.conversation_id)
            return AssistantOutcome(
                reply=booking_error_message(inp.language),
                intent=intent,
                escalate=True,
                escalation_reason="예약 처리 오류",
            )

        return AssistantOutcome(
            reply=booking_confirmation(inp.language, entities),
            intent=intent,
            booking_request_id=record.id,
        )

    async def _log_intent(self, inp: AssistantInput, intent: BookingIntent) -> None:
        try:
            await self.store.log_intent(inp.conversation_id, inp.message_id, intent)
        except Exception:
            logger.exception("Failed to log booking intent for message %s", inp.message_id)
