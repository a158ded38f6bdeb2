"""
Automation types — triggers, condition trees, actions, execution context and results.

Rule definitions are stored as JSON (camelCase from the dashboard, snake_case from
YAML); both spellings are accepted. Actions form a closed tagged union keyed by
`type`; unknown action types are kept as `UnsupportedAction` so an older engine
can still run the rest of a rule written for a newer dashboard.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    model_validator,
)
from pydantic.alias_generators import to_camel

# Parse-time limits on rule shape. Evaluation cost is bounded by these.
MAX_CONDITION_DEPTH = 8
MAX_CONDITION_NODES = 200
MAX_BRANCH_DEPTH = 4


class AutomationTrigger(str, Enum):
    MESSAGE_RECEIVED = "message_received"
    CONVERSATION_CREATED = "conversation_created"
    CONVERSATION_STATUS_CHANGED = "conversation_status_changed"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"
    VISIT_DAY_BEFORE = "visit_day_before"
    VISIT_COMPLETED = "visit_completed"
    NO_RESPONSE_24H = "no_response_24h"
    NO_RESPONSE_48H = "no_response_48h"
    CUSTOMER_IDLE_7D = "customer_idle_7d"
    ESCALATION_CREATED = "escalation_created"
    ESCALATION_RESOLVED = "escalation_resolved"
    TAG_ADDED = "tag_added"
    SCHEDULE_CRON = "schedule_cron"

    @classmethod
    def _missing_(cls, value: object) -> "AutomationTrigger | None":
        if value == "status_changed":
            return cls.CONVERSATION_STATUS_CHANGED
        return None


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN_LIST = "in_list"
    NOT_IN_LIST = "not_in_list"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    REGEX_MATCH = "regex_match"


class _RuleModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Conditions ---


class AutomationCondition(_RuleModel):
    """Leaf comparison: `field` is a dotted path such as `customer.country`."""

    field: str
    operator: ConditionOperator
    value: Any = None


def _condition_kind(value: Any) -> str:
    if isinstance(value, dict):
        return "group" if "logic" in value else "condition"
    return "group" if isinstance(value, ConditionGroup) else "condition"


ConditionNode = Annotated[
    Union[
        Annotated[AutomationCondition, Tag("condition")],
        Annotated["ConditionGroup", Tag("group")],
    ],
    Discriminator(_condition_kind),
]


class ConditionGroup(_RuleModel):
    logic: Literal["and", "or"] = "and"
    conditions: list[ConditionNode] = Field(default_factory=list)


# --- Actions ---


class SendMessageConfig(_RuleModel):
    template: str
    channel: str | None = None
    translate_to_customer_language: bool = False


class SendInternalNoteConfig(_RuleModel):
    content: str
    mention_users: list[str] = Field(default_factory=list)


class SendNotificationConfig(_RuleModel):
    channel: str = "slack"
    template: str
    recipients: list[str] | str = "all_agents"


class AssignConversationConfig(_RuleModel):
    # A user id, or one of: round_robin, least_busy, previous_agent.
    assign_to: str


class UpdateConversationStatusConfig(_RuleModel):
    status: Literal["active", "waiting", "resolved", "escalated"]


class CustomerTagConfig(_RuleModel):
    tag: str


class UpdateConsultationTagConfig(_RuleModel):
    tag: Literal["prospect", "potential", "first_booking", "confirmed", "completed", "cancelled"]


class CreateCrmBookingConfig(_RuleModel):
    booking_type: str
    scheduled_date: str | None = None
    notes: str | None = None


class UpdateCrmCustomerConfig(_RuleModel):
    fields: dict[str, str] = Field(default_factory=dict)


class AddCrmNoteConfig(_RuleModel):
    content: str


class SendSatisfactionSurveyConfig(_RuleModel):
    survey_template: str
    delay_minutes: float = 0


class CreateEscalationConfig(_RuleModel):
    reason: str
    priority: Literal["low", "medium", "high", "urgent"] = "medium"


class TriggerWebhookConfig(_RuleModel):
    url: str
    method: Literal["GET", "POST", "PUT"] = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | None = None


class DelayConfig(_RuleModel):
    duration: float
    unit: Literal["seconds", "minutes", "hours", "days"] = "seconds"

    @property
    def seconds(self) -> float:
        multiplier = {"seconds": 1, "minutes": 60, "hours": 3600, "days": 86400}[self.unit]
        return self.duration * multiplier


class BranchConfig(_RuleModel):
    conditions: ConditionGroup
    true_actions: "ActionList" = Field(default_factory=list)
    false_actions: "ActionList" = Field(default_factory=list)


class SendMessageAction(_RuleModel):
    type: Literal["send_message"]
    config: SendMessageConfig


class SendInternalNoteAction(_RuleModel):
    type: Literal["send_internal_note"]
    config: SendInternalNoteConfig


class SendNotificationAction(_RuleModel):
    type: Literal["send_notification"]
    config: SendNotificationConfig


class AssignConversationAction(_RuleModel):
    type: Literal["assign_conversation"]
    config: AssignConversationConfig


class UpdateConversationStatusAction(_RuleModel):
    type: Literal["update_conversation_status"]
    config: UpdateConversationStatusConfig


class AddCustomerTagAction(_RuleModel):
    type: Literal["add_customer_tag"]
    config: CustomerTagConfig


class RemoveCustomerTagAction(_RuleModel):
    type: Literal["remove_customer_tag"]
    config: CustomerTagConfig


class UpdateConsultationTagAction(_RuleModel):
    type: Literal["update_consultation_tag"]
    config: UpdateConsultationTagConfig


class CreateCrmBookingAction(_RuleModel):
    type: Literal["create_crm_booking"]
    config: CreateCrmBookingConfig


class UpdateCrmCustomerAction(_RuleModel):
    type: Literal["update_crm_customer"]
    config: UpdateCrmCustomerConfig


class AddCrmNoteAction(_RuleModel):
    type: Literal["add_crm_note"]
    config: AddCrmNoteConfig


class SendSatisfactionSurveyAction(_RuleModel):
    type: Literal["send_satisfaction_survey"]
    config: SendSatisfactionSurveyConfig


class CreateEscalationAction(_RuleModel):
    type: Literal["create_escalation"]
    config: CreateEscalationConfig


class TriggerWebhookAction(_RuleModel):
    type: Literal["trigger_webhook"]
    config: TriggerWebhookConfig


class DelayAction(_RuleModel):
    type: Literal["delay"]
    config: DelayConfig


class BranchAction(_RuleModel):
    type: Literal["branch"]
    config: BranchConfig


class UnsupportedAction(_RuleModel):
    """Placeholder for an action type this engine does not know."""

    type: Literal["unsupported"] = "unsupported"
    original_type: str
    config: dict = Field(default_factory=dict)


AutomationAction = Annotated[
    Union[
        SendMessageAction,
        SendInternalNoteAction,
        SendNotificationAction,
        AssignConversationAction,
        UpdateConversationStatusAction,
        AddCustomerTagAction,
        RemoveCustomerTagAction,
        UpdateConsultationTagAction,
        CreateCrmBookingAction,
        UpdateCrmCustomerAction,
        AddCrmNoteAction,
        SendSatisfactionSurveyAction,
        CreateEscalationAction,
        TriggerWebhookAction,
        DelayAction,
        BranchAction,
        UnsupportedAction,
    ],
    Field(discriminator="type"),
]

ACTION_TYPES: frozenset[str] = frozenset(
    {
        "send_message",
        "send_internal_note",
        "send_notification",
        "assign_conversation",
        "update_conversation_status",
        "add_customer_tag",
        "remove_customer_tag",
        "update_consultation_tag",
        "create_crm_booking",
        "update_crm_customer",
        "add_crm_note",
        "send_satisfaction_survey",
        "create_escalation",
        "trigger_webhook",
        "delay",
        "branch",
    }
)


def _wrap_unknown_actions(value: Any) -> Any:
    if not isinstance(value, list):
        return value
    wrapped = []
    for item in value:
        if isinstance(item, dict) and item.get("type") not in ACTION_TYPES:
            wrapped.append(
                {
                    "type": "unsupported",
                    "original_type": str(item.get("type")),
                    "config": item.get("config") or {},
                }
            )
        else:
            wrapped.append(item)
    return wrapped


ActionList = Annotated[list[AutomationAction], BeforeValidator(_wrap_unknown_actions)]


# --- Rule ---


class TriggerConfig(_RuleModel):
    cron: str | None = None
    status_from: str | None = None
    status_to: str | None = None


class AutomationRule(_RuleModel):
    id: str
    tenant_id: str
    name: str
    description: str | None = None
    is_active: bool = True
    priority: int = 100
    trigger: AutomationTrigger
    trigger_config: TriggerConfig = Field(default_factory=TriggerConfig)
    conditions: ConditionGroup | None = None
    actions: ActionList = Field(min_length=1)
    max_executions_per_conversation: int | None = None
    cooldown_minutes: int | None = None
    execution_count: int = 0
    last_executed_at: datetime | None = None
    created_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _check_shape(cls, data: Any) -> Any:
        if isinstance(data, dict):
            check_rule_shape(data)
            if data.get("trigger_config") is None and data.get("triggerConfig") is None:
                data = {k: v for k, v in data.items() if k not in ("trigger_config", "triggerConfig")}
        return data


def check_rule_shape(data: dict) -> None:
    """
    Reject rule definitions whose condition trees or branch nesting exceed the limits.

    Runs on raw JSON before model construction and walks with an explicit stack,
    so a hostile definition never reaches recursive validation.
    """
    nodes = 0
    # (node, kind, condition depth, branch depth)
    stack: list[tuple[Any, str, int, int]] = []
    if data.get("conditions") is not None:
        stack.append((data["conditions"], "group", 1, 0))
    for action in data.get("actions") or []:
        stack.append((action, "action", 0, 0))

    while stack:
        node, kind, depth, branch_depth = stack.pop()
        if not isinstance(node, dict):
            continue

        if kind == "action":
            if node.get("type") != "branch":
                continue
            if branch_depth + 1 > MAX_BRANCH_DEPTH:
                raise ValueError(f"branch nesting exceeds {MAX_BRANCH_DEPTH}")
            config = node.get("config") or {}
            if not isinstance(config, dict):
                continue
            if config.get("conditions") is not None:
                stack.append((config["conditions"], "group", 1, branch_depth + 1))
            for key in ("true_actions", "trueActions", "false_actions", "falseActions"):
                for child in config.get(key) or []:
                    stack.append((child, "action", 0, branch_depth + 1))
            continue

        nodes += 1
        if nodes > MAX_CONDITION_NODES:
            raise ValueError(f"condition tree exceeds {MAX_CONDITION_NODES} nodes")
        if "logic" not in node:
            continue
        if depth > MAX_CONDITION_DEPTH:
            raise ValueError(f"condition tree deeper than {MAX_CONDITION_DEPTH}")
        for child in node.get("conditions") or []:
            stack.append((child, "group", depth + 1, branch_depth))


# --- Execution context ---


class CustomerSnapshot(BaseModel):
    id: str
    name: str | None = None
    language: str | None = None
    country: str | None = None
    tags: list[str] = Field(default_factory=list)
    consultation_tag: str | None = None
    vip_status: str | None = None
    email: str | None = None
    phone: str | None = None


class ConversationSnapshot(BaseModel):
    id: str
    customer_id: str | None = None
    status: str
    channel_type: str
    assigned_to: str | None = None
    ai_enabled: bool = True
    channel_account_id: str | None = None
    channel_user_id: str | None = None


class MessageSnapshot(BaseModel):
    id: str
    content: str | None = None
    content_type: str = "text"
    sentiment: str | None = None


class BookingSnapshot(BaseModel):
    id: str
    status: str
    type: str | None = None
    date: str | None = None
    scheduled_date: datetime | None = None


class ExecutionContext(BaseModel):
    """Per-firing context. Rebuilt for every trigger; never persisted."""

    tenant_id: str | None = None
    trigger: AutomationTrigger | None = None

    conversation_id: str | None = None
    customer_id: str | None = None
    message_id: str | None = None
    booking_id: str | None = None
    escalation_id: str | None = None

    # Status transition for conversation_status_changed triggers.
    status_from: str | None = None
    status_to: str | None = None

    customer: CustomerSnapshot | None = None
    conversation: ConversationSnapshot | None = None
    message: MessageSnapshot | None = None
    booking: BookingSnapshot | None = None

    variables: dict[str, Any] = Field(default_factory=dict)


# --- Results ---


class ActionResult(BaseModel):
    action_type: str
    success: bool
    error: str | None = None
    skipped: bool = False


class ExecutionResult(BaseModel):
    rule_id: str
    success: bool
    actions_executed: int = 0
    duration_ms: int = 0
    error: str | None = None
    action_results: list[ActionResult] = Field(default_factory=list)


ConditionGroup.model_rebuild()
BranchConfig.model_rebuild()
BranchAction.model_rebuild()
AutomationRule.model_rebuild()
