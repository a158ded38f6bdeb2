from __future__ import annotations

from clinicflow.core.secrets import MANAGER_CHAT_ID, env_key, list_secrets, llm_key_name, resolve_secret, save_secret


def test_env_secret_wins(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "secrets" / "seoul-eye").mkdir(parents=True)
    (tmp_path / "secrets" / "seoul-eye" / "openai_key").write_text("from-file\n", encoding="utf-8")
    monkeypatch.setenv("CLINICFLOW_SECRET_SEOUL_EYE_OPENAI_KEY", "from-env")

    assert resolve_secret("seoul-eye", "openai_key") == "from-env"


def test_file_fallback_is_stripped(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CLINICFLOW_SECRET_SEOUL_EYE_OPENAI_KEY", raising=False)
    (tmp_path / "secrets" / "seoul-eye").mkdir(parents=True)
    (tmp_path / "secrets" / "seoul-eye" / "openai_key").write_text("from-file\n", encoding="utf-8")

    assert resolve_secret("seoul-eye", "openai_key") == "from-file"


def test_missing_secret_is_none(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    assert resolve_secret("nobody", "openai_key") is None


def test_save_and_list_file_secrets(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)

    assert list_secrets("seoul-eye") is None
    path = save_secret("seoul-eye", MANAGER_CHAT_ID, "-100123")

    assert path.read_text(encoding="utf-8") == "-100123"
    assert (tmp_path / "secrets" / "seoul-eye" / ".gitignore").is_file()
    assert list_secrets("seoul-eye") == [MANAGER_CHAT_ID]
    assert resolve_secret("seoul-eye", MANAGER_CHAT_ID) == "-100123"


def test_env_key_and_llm_key_name():
    assert env_key("seoul.eye-clinic", "openai_key") == "CLINICFLOW_SECRET_SEOUL_EYE_CLINIC_OPENAI_KEY"
    assert llm_key_name("anthropic") == "anthropic_key"
