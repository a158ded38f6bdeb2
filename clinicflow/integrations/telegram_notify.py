from __future__ import annotations

import os
from dataclasses import dataclass

import httpx

from clinicflow.core.secrets import MANAGER_CHAT_ID, MANAGER_THREAD_ID, TELEGRAM_BOT_TOKEN, resolve_secret


@dataclass
class BookingNotice:
    booking_request_id: str
    tenant_name: str
    customer_name: str | None
    customer_language: str | None
    requested_date: str
    requested_time: str | None = None
    treatment_type: str | None = None
    special_requests: str | None = None
    waiting_minutes: float | None = None


@dataclass
class TelegramNotifier:
    """Lightweight Telegram sender for clinic manager alerts."""

    bot_token: str
    chat_id: str
    thread_id: int | None = None
    dashboard_url: str = ""
    transport: httpx.AsyncBaseTransport | None = None

    @classmethod
    def from_secrets(cls, tenant_slug: str, dashboard_url: str = "") -> "TelegramNotifier | None":
        token = (
            resolve_secret(tenant_slug, TELEGRAM_BOT_TOKEN)
            or os.getenv("TELEGRAM_BOT_TOKEN")
            or ""
        ).strip()
        chat_id = (
            resolve_secret(tenant_slug, MANAGER_CHAT_ID)
            or os.getenv("TELEGRAM_MANAGER_CHAT_ID")
            or ""
        ).strip()
        thread_raw = (resolve_secret(tenant_slug, MANAGER_THREAD_ID) or "").strip()

        if not token or not chat_id:
            return None

        thread_id: int | None = None
        if thread_raw.isdigit():
            thread_id = int(thread_raw)

        return cls(bot_token=token, chat_id=chat_id, thread_id=thread_id, dashboard_url=dashboard_url)

    async def send_booking_request(self, notice: BookingNotice) -> dict:
        waiting = f"{round(notice.waiting_minutes)}분" if notice.waiting_minutes else "방금"
        lines = [
            "🔔 새로운 예약 신청",
            f"병원: {notice.tenant_name}",
            f"고객: {notice.customer_name or '고객님'} ({notice.customer_language or 'ko'})",
            f"희망 날짜: {notice.requested_date}",
            f"희망 시간: {notice.requested_time or '미정'}",
            f"시술: {notice.treatment_type or '미정'}",
            f"대기 시간: {waiting}",
        ]
        if notice.special_requests:
            lines.append(f"특별 요청: {notice.special_requests[:1200]}")
        if self.dashboard_url:
            lines.append(f"확인: {self.dashboard_url.rstrip('/')}/bookings/{notice.booking_request_id}")
        lines.append("예약 가능 여부를 확인하고 승인/조율/거절로 응답해주세요.")
        return await self.send_text("\n".join(lines))

    async def send_text(self, text: str) -> dict:
        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload: dict = {
            "chat_id": self.chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if self.thread_id is not None:
            payload["message_thread_id"] = self.thread_id

        try:
            async with httpx.AsyncClient(timeout=15.0, transport=self.transport) as client:
                resp = await client.post(url, json=payload)
                data = resp.json()

            if resp.status_code == 200 and data.get("ok"):
                result = data.get("result") or {}
                return {"success": True, "message_id": result.get("message_id")}

            return {
                "success": False,
                "error": data.get("description") or f"telegram_http_{resp.status_code}",
            }
        except Exception as e:
            return {"success": False, "error": str(e)}
