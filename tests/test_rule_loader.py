from __future__ import annotations

import pytest
from pydantic import ValidationError

from clinicflow.automation.rule_loader import load_rules_file, rule_values
from clinicflow.automation.types import AutomationRule

RULES_YAML = """
automations:
  - name: refund-escalation
    priority: 1
    trigger: message_received
    conditions:
      logic: and
      conditions:
        - field: message.content
          operator: regex_match
          value: "환불|취소"
    actions:
      - type: create_escalation
        config:
          reason: "환불 문의"
          priority: high
      - type: send_pigeon
        config:
          to: roof
  - name: welcome
    trigger: conversation_created
    maxExecutionsPerConversation: 1
    actions:
      - type: send_message
        config:
          template: "안녕하세요 {{customer_name}}님!"
"""


def test_load_rules_file(tmp_path):
    path = tmp_path / "automations.yaml"
    path.write_text(RULES_YAML, encoding="utf-8")

    rules = load_rules_file(path, tenant_id="t1")

    assert [r.id for r in rules] == ["refund-escalation", "welcome"]
    assert rules[0].tenant_id == "t1"
    assert rules[1].max_executions_per_conversation == 1


def test_rule_values_restore_unsupported_actions(tmp_path):
    path = tmp_path / "automations.yaml"
    path.write_text(RULES_YAML, encoding="utf-8")

    values = rule_values(load_rules_file(path)[0])

    assert values["trigger"] == "message_received"
    assert values["actions"][1] == {"type": "send_pigeon", "config": {"to": "roof"}}
    assert values["conditions"]["conditions"][0]["operator"] == "regex_match"
    assert "name" not in values



def test_rule_values_restore_unsupported_actions_inside_branches(tmp_path):
    path = tmp_path / "automations.yaml"
    path.write_text(
        """
automations:
  - name: vip-routing
    trigger: message_received
    actions:
      - type: branch
        config:
          conditions:
            logic: and
            conditions:
              - field: customer.tags
                operator: contains
                value: vip
          trueActions:
            - type: send_pigeon
              config:
                to: roof
          falseActions:
            - type: send_message
              config:
                template: "hello"
""",
        encoding="utf-8",
    )
    rule = load_rules_file(path)[0]

    values = rule_values(rule)
    branch = values["actions"][0]["config"]
    reloaded = AutomationRule.model_validate({"id": rule.id, "tenant_id": "t1", "name": rule.name, **values})

    assert branch["true_actions"] == [{"type": "send_pigeon", "config": {"to": "roof"}}]
    assert branch["false_actions"][0]["type"] == "send_message"
    assert reloaded.actions[0].config.true_actions[0].original_type == "send_pigeon"

def test_invalid_rule_raises(tmp_path):
    path = tmp_path / "automations.yaml"
    path.write_text("automations:\n  - name: bad\n    trigger: nope\n    actions: []\n", encoding="utf-8")

    with pytest.raises(ValidationError):
        load_rules_file(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_rules_file(tmp_path / "absent.yaml")
