from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinicflow.models.base import Base, TimestampMixin, UUIDMixin


class BookingRequest(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "booking_requests"
    __table_args__ = (
        Index("ix_booking_requests_tenant_status_created", "tenant_id", "status", "created_at"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("tenants.id"),
        nullable=False,
    )
    customer_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("customers.id"),
        nullable=False,
    )
    conversation_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("conversations.id"),
        nullable=True,
    )
    requested_date: Mapped[str] = mapped_column(String(64), nullable=False)
    requested_time: Mapped[str | None] = mapped_column(String(64), nullable=True)
    treatment_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)
    # pending | approved | confirmed | rejected
    status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)
    human_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    alternative_dates: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    crm_booking_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    confirmed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONB, default=dict, nullable=False)
    human_responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    notifications: Mapped[list["BookingNotification"]] = relationship(back_populates="booking_request")


class BookingNotification(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "booking_notifications"
    __table_args__ = (Index("ix_booking_notifications_request_id", "booking_request_id"),)

    booking_request_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("booking_requests.id"),
        nullable=False,
    )
    channel: Mapped[str] = mapped_column(String(32), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    booking_request: Mapped["BookingRequest"] = relationship(back_populates="notifications")


class BookingIntentLog(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "booking_intent_logs"
    __table_args__ = (Index("ix_booking_intent_logs_conversation_id", "conversation_id"),)

    conversation_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    message_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    intent_detected: Mapped[bool] = mapped_column(Boolean, nullable=False)
    intent_confidence: Mapped[float] = mapped_column(Float, nullable=False)
    intent_type: Mapped[str] = mapped_column(String(32), nullable=False)
    extracted_entities: Mapped[dict] = mapped_column(JSONB, default=dict, nullable=False)
    ai_action: Mapped[str] = mapped_column(String(32), nullable=False)
    ai_response: Mapped[str | None] = mapped_column(Text, nullable=True)
