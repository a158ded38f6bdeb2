from __future__ import annotations

from clinicflow.automation.templates import interpolate


def test_replaces_known_tokens():
    assert interpolate("안녕하세요 {{customer_name}}님", {"customer_name": "김민지"}) == "안녕하세요 김민지님"


def test_unknown_tokens_are_left_verbatim():
    assert interpolate("Hi {{customer_name}}, see {{unknown}}", {"customer_name": "Anna"}) == "Hi Anna, see {{unknown}}"


def test_none_renders_empty_and_numbers_stringify():
    assert interpolate("[{{a}}] [{{b}}]", {"a": None, "b": 3}) == "[] [3]"


def test_substituted_text_is_not_rescanned():
    assert interpolate("{{a}}", {"a": "{{b}}", "b": "nope"}) == "{{b}}"


def test_plain_text_passes_through():
    assert interpolate("no tokens here", {}) == "no tokens here"
    assert interpolate("", {"a": 1}) == ""
