from __future__ import annotations

import pytest

from clinicflow.booking.forms import (
    add_booking_guidance,
    ask_for_date,
    booking_confirmation,
    generate_booking_form,
    is_booking_form_response,
    normalize_language,
    parse_booking_form_response,
)
from clinicflow.booking.schemas import BookingEntities


@pytest.mark.parametrize(
    "raw, expected",
    [("KO", "ko"), ("ja-JP", "ja"), ("zh_CN", "zh"), ("ru", "en"), (None, "ko"), ("", "ko")],
)
def test_normalize_language(raw, expected):
    assert normalize_language(raw) == expected


def test_form_is_localized_and_prefilled():
    form = generate_booking_form("ja", BookingEntities(treatment_type="LASIK"))

    assert form.content.startswith("📋 予約申込書")
    assert "3️⃣ 施術の種類: LASIK" in form.content
    assert "날짜: YYYY-MM-DD" in form.content
    assert form.metadata["prefilled"] == {"treatment_type": "LASIK"}
    assert form.metadata["language"] == "ja"


def test_unsupported_language_gets_english_form():
    assert generate_booking_form("ru").content.startswith("📋 Booking Form")


def test_filled_form_is_recognized_and_parsed():
    reply = "날짜: 2024-04-01\n시간: 14:00\n시술: 라식\n요청사항: 통역 필요"

    assert is_booking_form_response(reply) is True
    entities = parse_booking_form_response(reply)
    assert entities.requested_date == "2024-04-01"
    assert entities.requested_time == "14:00"
    assert entities.treatment_type == "라식"
    assert entities.special_requests == "통역 필요"


def test_english_keys_parse_too():
    reply = "Date: next Monday\nTreatment: LASEK"
    assert is_booking_form_response(reply) is True
    assert parse_booking_form_response(reply).requested_date == "next Monday"


def test_date_alone_is_not_a_form_response():
    assert is_booking_form_response("날짜: 2024-04-01") is False
    assert is_booking_form_response("") is False


def test_confirmation_lists_only_known_fields():
    text = booking_confirmation("en", BookingEntities(requested_date="2024-04-01", treatment_type="LASIK"))

    assert text.startswith("✅ Your booking request has been received!")
    assert "📅 Preferred Date: 2024-04-01" in text
    assert "💊 Treatment: LASIK" in text
    assert "Preferred Time" not in text


def test_guidance_is_appended_by_intensity():
    assert add_booking_guidance("라식 비용은 ...", "low", "ko") == "라식 비용은 ...\n\n💡 상담 예약도 가능합니다."
    assert add_booking_guidance("", "high", "zh").startswith("✨")


def test_ask_for_date():
    assert ask_for_date("ko") == "희망하시는 날짜를 알려주시겠어요?"
