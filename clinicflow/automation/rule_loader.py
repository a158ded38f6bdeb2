from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from clinicflow.automation.types import AutomationRule, BranchAction, UnsupportedAction


def load_rules_file(path: str | Path, tenant_id: str = "") -> list[AutomationRule]:
    """
    Load and validate tenant automation rules from YAML.

    Expected structure:
      automations:
        - name: Refund escalation
          priority: 1
          trigger: message_received
          conditions: {logic: and, conditions: [...]}
          actions: [...]

    Raises pydantic.ValidationError on the first invalid rule.
    """
    rules_path = Path(path)
    if not rules_path.exists():
        raise FileNotFoundError(f"{rules_path} not found")

    data = _load_yaml(rules_path)
    raw_rules = data.get("automations", []) if isinstance(data, dict) else data
    if not isinstance(raw_rules, list):
        raise ValueError(f"{rules_path}: 'automations' must be a list")

    rules = []
    for entry in raw_rules:
        if not isinstance(entry, dict):
            raise ValueError(f"{rules_path}: every automation must be a mapping")
        payload = {"id": entry.get("name", ""), "tenant_id": tenant_id, **entry}
        rules.append(AutomationRule.model_validate(payload))
    return rules


def rule_values(rule: AutomationRule) -> dict[str, Any]:
    """Column values for storing a validated rule (everything except identity)."""
    return {
        "description": rule.description,
        "is_active": rule.is_active,
        "priority": rule.priority,
        "trigger": rule.trigger.value,
        "trigger_config": rule.trigger_config.model_dump(mode="json", exclude_none=True),
        "conditions": rule.conditions.model_dump(mode="json") if rule.conditions else None,
        "actions": [_action_values(action) for action in rule.actions],
        "max_executions_per_conversation": rule.max_executions_per_conversation,
        "cooldown_minutes": rule.cooldown_minutes,
    }


def _action_values(action) -> dict[str, Any]:
    """Dump an action, restoring unknown types at any branch depth."""
    if isinstance(action, UnsupportedAction):
        return {"type": action.original_type, "config": action.config}
    values = action.model_dump(mode="json")
    if isinstance(action, BranchAction):
        values["config"]["true_actions"] = [_action_values(a) for a in action.config.true_actions]
        values["config"]["false_actions"] = [_action_values(a) for a in action.config.false_actions]
    return values


def _load_yaml(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}
