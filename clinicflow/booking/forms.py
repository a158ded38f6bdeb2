"""
Customer-facing booking texts: the booking form, its parser, confirmations and guidance.

Supported languages are ko, ja, en, zh; anything else gets English.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

from clinicflow.booking.schemas import BookingEntities

SUPPORTED_LANGUAGES = ("ko", "ja", "en", "zh")

GuidanceIntensity = Literal["low", "medium", "high"]

_DATE_RE = re.compile(r"(?:날짜|date)[:：][ \t]*(.+)", re.IGNORECASE)
_TIME_RE = re.compile(r"(?:시간|time)[:：][ \t]*(.+)", re.IGNORECASE)
_TREATMENT_RE = re.compile(r"(?:시술|treatment)[:：][ \t]*(.+)", re.IGNORECASE)
_REQUESTS_RE = re.compile(r"(?:요청사항|requests)[:：][ \t]*(.+)", re.IGNORECASE)


def normalize_language(language: str | None, default: str = "ko") -> str:
    """'KO', 'ko-KR' -> 'ko'; unsupported -> 'en'."""
    if not language:
        return default
    code = language.strip().lower().replace("_", "-").split("-")[0]
    return code if code in SUPPORTED_LANGUAGES else "en"


_FORM_LABELS = {
    "ko": {
        "title": "📋 예약 신청서",
        "intro": "아래 정보를 입력해주세요:",
        "date": "희망 날짜",
        "time": "희망 시간",
        "treatment": "시술 종류",
        "requests": "특별 요청사항",
    },
    "ja": {
        "title": "📋 予約申込書",
        "intro": "以下の情報を入力してください：",
        "date": "ご希望日",
        "time": "ご希望時間",
        "treatment": "施術の種類",
        "requests": "特別なご要望",
    },
    "en": {
        "title": "📋 Booking Form",
        "intro": "Please provide the following information:",
        "date": "Preferred Date",
        "time": "Preferred Time",
        "treatment": "Treatment Type",
        "requests": "Special Requests",
    },
    "zh": {
        "title": "📋 预约表",
        "intro": "请提供以下信息：",
        "date": "希望日期",
        "time": "希望时间",
        "treatment": "治疗类型",
        "requests": "特殊要求",
    },
}

_BLANK = "_______"

# The parser reads these keys regardless of the customer's language.
_ANSWER_FORMAT = "📝 아래 형식으로 답변해주세요:\n날짜: YYYY-MM-DD\n시간: HH:MM\n시술: 종류\n요청사항: 내용"


@dataclass
class BookingForm:
    content: str
    form_type: str = "text"
    metadata: dict = field(default_factory=dict)


def generate_booking_form(language: str | None, prefill: BookingEntities | None = None) -> BookingForm:
    lang = normalize_language(language)
    labels = _FORM_LABELS[lang]
    prefill = prefill or BookingEntities()

    content = "\n".join(
        [
            labels["title"],
            "",
            labels["intro"],
            "",
            f"1️⃣ {labels['date']}: {prefill.requested_date or _BLANK}",
            f"2️⃣ {labels['time']}: {prefill.requested_time or _BLANK}",
            f"3️⃣ {labels['treatment']}: {prefill.treatment_type or _BLANK}",
            f"4️⃣ {labels['requests']}: {_BLANK}",
            "",
            _ANSWER_FORMAT,
        ]
    )
    return BookingForm(
        content=content,
        metadata={
            "form_id": "booking_form_v1",
            "prefilled": prefill.model_dump(exclude_none=True),
            "language": lang,
        },
    )


def is_booking_form_response(text: str) -> bool:
    """A filled form has a date plus a time or a treatment."""
    if not text:
        return False
    has_date = _DATE_RE.search(text) is not None
    return has_date and (_TIME_RE.search(text) is not None or _TREATMENT_RE.search(text) is not None)


def parse_booking_form_response(text: str) -> BookingEntities:
    def _grab(pattern: re.Pattern) -> str | None:
        match = pattern.search(text or "")
        return match.group(1).strip() if match else None

    return BookingEntities(
        requested_date=_grab(_DATE_RE),
        requested_time=_grab(_TIME_RE),
        treatment_type=_grab(_TREATMENT_RE),
        special_requests=_grab(_REQUESTS_RE),
    )


_CONFIRMATION = {
    "ko": ("✅ 예약 신청이 접수되었습니다!", "📅 희망 날짜", "🕐 희망 시간", "💊 시술",
           "담당자가 확인 후 24시간 내에 예약 가능 여부를 안내해드리겠습니다.\n감사합니다! 🙏"),
    "ja": ("✅ 予約申し込みを受け付けました！", "📅 ご希望日", "🕐 ご希望時間", "💊 施術",
           "担当者が確認後、24時間以内に予約可能かどうかをご案内いたします。\nありがとうございます！ 🙏"),
    "en": ("✅ Your booking request has been received!", "📅 Preferred Date", "🕐 Preferred Time", "💊 Treatment",
           "Our staff will review and confirm availability within 24 hours.\nThank you! 🙏"),
    "zh": ("✅ 您的预约申请已收到！", "📅 希望日期", "🕐 希望时间", "💊 治疗",
           "我们的工作人员将在24小时内确认并通知您预约是否可行。\n谢谢！ 🙏"),
}


def booking_confirmation(language: str | None, entities: BookingEntities) -> str:
    title, date_label, time_label, treatment_label, footer = _CONFIRMATION[normalize_language(language)]
    lines = [title, "", f"{date_label}: {entities.requested_date or ''}"]
    if entities.requested_time:
        lines.append(f"{time_label}: {entities.requested_time}")
    if entities.treatment_type:
        lines.append(f"{treatment_label}: {entities.treatment_type}")
    lines += ["", footer]
    return "\n".join(lines)


_GUIDANCE = {
    "ko": {
        "low": "💡 상담 예약도 가능합니다.",
        "medium": "📅 상담 예약을 원하시면 말씀해주세요. 희망하시는 날짜를 알려주시면 도와드리겠습니다.",
        "high": "✨ 지금 바로 상담 예약을 도와드릴까요? 희망 날짜와 시술 종류를 말씀해주시면 빠르게 안내해드립니다!",
    },
    "ja": {
        "low": "💡 カウンセリングの予約も可能です。",
        "medium": "📅 カウンセリングの予約をご希望の場合はお知らせください。ご希望の日付をお教えいただければお手伝いいたします。",
        "high": "✨ 今すぐカウンセリングの予約をお手伝いしましょうか？ご希望の日付と施術の種類をお知らせください！",
    },
    "en": {
        "low": "💡 Consultation booking is available.",
        "medium": "📅 Please let me know if you'd like to book a consultation. I'll help you with your preferred date.",
        "high": "✨ Would you like to book a consultation right now? Just tell me your preferred date and treatment type!",
    },
    "zh": {
        "low": "💡 也可以预约咨询。",
        "medium": "📅 如果您想预约咨询，请告诉我。我会帮您安排您希望的日期。",
        "high": "✨ 现在就帮您预约咨询吗？请告诉我您希望的日期和治疗类型！",
    },
}


def add_booking_guidance(reply: str, intensity: GuidanceIntensity, language: str | None) -> str:
    guidance = _GUIDANCE[normalize_language(language)].get(intensity) or _GUIDANCE["en"]["medium"]
    return f"{reply}\n\n{guidance}" if reply else guidance


_ASK_DATE = {
    "ko": "희망하시는 날짜를 알려주시겠어요?",
    "ja": "ご希望の日付を教えていただけますか？",
    "en": "Could you please provide your preferred date?",
    "zh": "请告诉我们您希望的日期好吗？",
}

_BOOKING_ERROR = {
    "ko": "죄송합니다. 예약 처리 중 오류가 발생했습니다. 담당자에게 연결해드리겠습니다.",
    "ja": "申し訳ございません。予約処理中にエラーが発生しました。担当者にお繋ぎします。",
    "en": "I'm sorry, there was an error processing your booking. Let me connect you with our staff.",
    "zh": "抱歉，处理您的预约时出现错误。我们将为您转接工作人员。",
}


def ask_for_date(language: str | None) -> str:
    return _ASK_DATE[normalize_language(language)]


def booking_error_message(language: str | None) -> str:
    return _BOOKING_ERROR[normalize_language(language)]
