"""
Booking intent classification.

One LLM call per message with a strict JSON contract. Any failure (provider
error, timeout, non-JSON output, wrong shape) falls back to per-language keyword
matching, so `detect` never raises.
"""

from __future__ import annotations

import logging

from clinicflow.booking.forms import normalize_language
from clinicflow.booking.schemas import BookingIntent, IntentType, RecommendedAction
from clinicflow.core.brain import Brain

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 10

BOOKING_KEYWORDS: dict[str, list[str]] = {
    "ko": ["예약", "방문", "상담 신청", "예약하고 싶", "예약 가능"],
    "en": ["book", "appointment", "schedule", "reservation", "visit"],
    "ja": ["予約", "訪問", "カウンセリング", "予約したい"],
    "zh": ["预约", "预订", "咨询", "访问"],
}

FALLBACK_REPLIES: dict[str, str] = {
    "ko": "예약을 도와드리겠습니다. 희망하시는 날짜와 시술 종류를 알려주시겠어요?",
    "ja": "ご予約をお手伝いします。ご希望の日付と施術の種類を教えていただけますか？",
    "en": "I'd be happy to help you book an appointment. Could you share your preferred date and treatment type?",
    "zh": "我们很乐意为您安排预约。请告诉我们您希望的日期和治疗类型好吗？",
}

FALLBACK_CONFIDENCE = 0.6

SYSTEM_PROMPT = """You are an expert booking intent classifier for a medical clinic serving international patients.

Your task: Analyze customer messages to detect booking intentions and extract booking-related entities.

Response format (JSON only, no other text):
{{
  "detected": boolean,
  "confidence": 0.0-1.0,
  "intentType": "booking_inquiry" | "booking_request" | "booking_modification" | "booking_cancellation" | null,
  "entities": {{
    "requestedDate": "YYYY-MM-DD or natural language",
    "requestedTime": "HH:MM or natural language",
    "treatmentType": "specific treatment name",
    "specialRequests": "any special requests"
  }},
  "recommendedAction": "send_form" | "ask_details" | "confirm_booking" | "escalate" | null,
  "suggestedResponse": "appropriate response in customer's language"
}}

Intent types:
- booking_inquiry: Customer asking about availability ("예약 가능한가요?", "When can I book?")
- booking_request: Customer requesting a specific date ("2월 15일에 예약", "I want to book for next Monday")
- booking_modification: Change an existing booking
- booking_cancellation: Cancel a booking

Confidence scoring:
- 0.9-1.0: Explicit booking request with date/time
- 0.7-0.89: Clear booking intention but missing details
- 0.5-0.69: Possible booking interest (asking about prices with scheduling context)
- 0.0-0.49: No booking intent

Entity extraction rules:
- Extract dates in YYYY-MM-DD format or keep the original natural language
- Recognize relative dates: "다음주", "next week", "来週", "下周"
- Extract treatment types: LASIK, LASEK, Smile LASIK, Cataract, etc.
- Capture any special requests or concerns

Recommended actions:
- send_form: Confidence >0.7, customer ready to book
- ask_details: Confidence 0.5-0.7, need more info
- confirm_booking: Confidence >0.9, has date/time/treatment
- escalate: Complex situation or VIP customer

Customer language: {language}
Respond in customer's language."""


def keyword_fallback(message: str, language: str | None) -> BookingIntent:
    lang = normalize_language(language, default="en")
    lowered = (message or "").lower()
    keywords = BOOKING_KEYWORDS.get(lang, BOOKING_KEYWORDS["en"])

    if any(kw.lower() in lowered for kw in keywords):
        return BookingIntent(
            detected=True,
            confidence=FALLBACK_CONFIDENCE,
            intent_type=IntentType.INQUIRY,
            recommended_action=RecommendedAction.ASK_DETAILS,
            suggested_response=FALLBACK_REPLIES[lang],
        )
    return BookingIntent.not_detected()


def render_user_prompt(message: str, history: list[dict]) -> str:
    lines = [f"{m.get('role', 'user')}: {m.get('content', '')}" for m in history[-HISTORY_LIMIT:]]
    return (
        f'Current message: "{message}"\n\n'
        f"Conversation history:\n" + "\n".join(lines) + "\n\nAnalyze and respond with JSON only."
    )


class IntentClassifier:
    def __init__(self, brain: Brain | None):
        self.brain = brain

    async def detect(self, message: str, history: list[dict] | None = None, language: str | None = "ko") -> BookingIntent:
        if self.brain is None:
            return keyword_fallback(message, language)

        try:
            response = await self.brain.think(
                SYSTEM_PROMPT.format(language=language or "ko"),
                [{"role": "user", "content": render_user_prompt(message, history or [])}],
            )
            payload = response.json()
            return BookingIntent.from_llm_payload(payload)
        except Exception as e:
            logger.warning("Intent classification fell back to keywords: %s", e)
            return keyword_fallback(message, language)
