"""create clinic automation and booking tables

Revision ID: d1e2f3a4b5c6
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from __future__ import annotations

from typing import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


revision: str = "d1e2f3a4b5c6"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            nullable=False,
        ),
    ]


def _jsonb(name: str, default: str | None = "'{}'::jsonb", nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        postgresql.JSONB(astext_type=sa.Text()),
        server_default=sa.text(default) if default else None,
        nullable=nullable,
    )


def _fk(name: str, target: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), sa.ForeignKey(target), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("country", sa.String(length=8), nullable=True),
        _jsonb("settings"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_base_columns(),
    )
    op.create_index(op.f("ix_tenants_slug"), "tenants", ["slug"], unique=True)

    op.create_table(
        "customers",
        _fk("tenant_id", "tenants.id"),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("country", sa.String(length=8), nullable=True),
        sa.Column("language", sa.String(length=8), nullable=True),
        sa.Column(
            "tags",
            postgresql.ARRAY(sa.String()),
            server_default=sa.text("'{}'::varchar[]"),
            nullable=False,
        ),
        sa.Column("consultation_tag", sa.String(length=32), nullable=True),
        sa.Column("vip_status", sa.String(length=32), nullable=True),
        sa.Column("crm_customer_id", sa.String(length=255), nullable=True),
        _jsonb("metadata"),
        *_base_columns(),
    )
    op.create_index("ix_customers_tenant_id", "customers", ["tenant_id"], unique=False)

    op.create_table(
        "conversations",
        _fk("tenant_id", "tenants.id"),
        _fk("customer_id", "customers.id"),
        sa.Column("channel_type", sa.String(length=32), nullable=False),
        sa.Column("channel_account_id", sa.String(length=255), nullable=False),
        sa.Column("channel_user_id", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), server_default=sa.text("'active'"), nullable=False),
        sa.Column("assigned_to", sa.String(length=255), nullable=True),
        sa.Column("ai_enabled", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        _jsonb("metadata"),
        *_base_columns(),
    )
    op.create_index("ix_conversations_tenant_id", "conversations", ["tenant_id"], unique=False)
    op.create_index(
        "ix_conversations_status_last_message_at",
        "conversations",
        ["status", "last_message_at"],
        unique=False,
    )

    op.create_table(
        "messages",
        _fk("conversation_id", "conversations.id"),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("content_type", sa.String(length=32), server_default=sa.text("'text'"), nullable=False),
        sa.Column("is_internal", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("sentiment", sa.String(length=16), nullable=True),
        _jsonb("metadata", default=None, nullable=True),
        *_base_columns(),
    )
    op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"], unique=False)
    op.create_index("ix_messages_created_at", "messages", ["created_at"], unique=False)

    op.create_table(
        "escalations",
        _fk("tenant_id", "tenants.id"),
        _fk("conversation_id", "conversations.id"),
        _fk("message_id", "messages.id", nullable=True),
        sa.Column("priority", sa.String(length=16), server_default=sa.text("'medium'"), nullable=False),
        sa.Column("status", sa.String(length=16), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("dedupe_key", sa.String(length=255), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        *_base_columns(),
        sa.UniqueConstraint("dedupe_key", name="uq_escalations_dedupe_key"),
    )
    op.create_index("ix_escalations_conversation_id", "escalations", ["conversation_id"], unique=False)

    op.create_table(
        "automation_rules",
        _fk("tenant_id", "tenants.id"),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("priority", sa.Integer(), server_default=sa.text("100"), nullable=False),
        sa.Column("trigger", sa.String(length=64), nullable=False),
        _jsonb("trigger_config"),
        _jsonb("conditions", default=None, nullable=True),
        _jsonb("actions", default="'[]'::jsonb"),
        sa.Column("max_executions_per_conversation", sa.Integer(), nullable=True),
        sa.Column("cooldown_minutes", sa.Integer(), nullable=True),
        sa.Column("execution_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        *_base_columns(),
        sa.UniqueConstraint("tenant_id", "name", name="uq_automation_rules_tenant_id_name"),
    )
    op.create_index(
        "ix_automation_rules_tenant_trigger_priority",
        "automation_rules",
        ["tenant_id", "trigger", "priority"],
        unique=False,
    )

    op.create_table(
        "automation_executions",
        _fk("rule_id", "automation_rules.id"),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("conversation_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("trigger", sa.String(length=64), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("actions_executed", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("duration_ms", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        _jsonb("results", default="'[]'::jsonb"),
        *_base_columns(),
    )
    op.create_index(
        "ix_automation_executions_rule_conversation_created",
        "automation_executions",
        ["rule_id", "conversation_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "booking_requests",
        _fk("tenant_id", "tenants.id"),
        _fk("customer_id", "customers.id"),
        _fk("conversation_id", "conversations.id", nullable=True),
        sa.Column("requested_date", sa.String(length=64), nullable=False),
        sa.Column("requested_time", sa.String(length=64), nullable=True),
        sa.Column("treatment_type", sa.String(length=255), nullable=True),
        sa.Column("special_requests", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("human_response", sa.Text(), nullable=True),
        _jsonb("alternative_dates", default=None, nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("crm_booking_id", sa.String(length=255), nullable=True),
        sa.Column("confirmed_date", sa.DateTime(timezone=True), nullable=True),
        _jsonb("metadata"),
        sa.Column("human_responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        *_base_columns(),
    )
    op.create_index(
        "ix_booking_requests_tenant_status_created",
        "booking_requests",
        ["tenant_id", "status", "created_at"],
        unique=False,
    )

    op.create_table(
        "booking_notifications",
        _fk("booking_request_id", "booking_requests.id"),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        *_base_columns(),
    )
    op.create_index(
        "ix_booking_notifications_request_id",
        "booking_notifications",
        ["booking_request_id"],
        unique=False,
    )

    op.create_table(
        "booking_intent_logs",
        sa.Column("conversation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("message_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("intent_detected", sa.Boolean(), nullable=False),
        sa.Column("intent_confidence", sa.Float(), nullable=False),
        sa.Column("intent_type", sa.String(length=32), nullable=False),
        _jsonb("extracted_entities"),
        sa.Column("ai_action", sa.String(length=32), nullable=False),
        sa.Column("ai_response", sa.Text(), nullable=True),
        *_base_columns(),
    )
    op.create_index(
        "ix_booking_intent_logs_conversation_id",
        "booking_intent_logs",
        ["conversation_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_booking_intent_logs_conversation_id", table_name="booking_intent_logs")
    op.drop_table("booking_intent_logs")
    op.drop_index("ix_booking_notifications_request_id", table_name="booking_notifications")
    op.drop_table("booking_notifications")
    op.drop_index("ix_booking_requests_tenant_status_created", table_name="booking_requests")
    op.drop_table("booking_requests")
    op.drop_index("ix_automation_executions_rule_conversation_created", table_name="automation_executions")
    op.drop_table("automation_executions")
    op.drop_index("ix_automation_rules_tenant_trigger_priority", table_name="automation_rules")
    op.drop_table("automation_rules")
    op.drop_index("ix_escalations_conversation_id", table_name="escalations")
    op.drop_table("escalations")
    op.drop_index("ix_messages_created_at", table_name="messages")
    op.drop_index("ix_messages_conversation_id", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_conversations_status_last_message_at", table_name="conversations")
    op.drop_index("ix_conversations_tenant_id", table_name="conversations")
    op.drop_table("conversations")
    op.drop_index("ix_customers_tenant_id", table_name="customers")
    op.drop_table("customers")
    op.drop_index(op.f("ix_tenants_slug"), table_name="tenants")
    op.drop_table("tenants")
