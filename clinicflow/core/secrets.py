"""
Per-tenant secrets: LLM API keys, the Telegram bot token, the manager chat.

Lookup order for resolve_secret("seoul-skin", "telegram_bot_token"):
1. env CLINICFLOW_SECRET_SEOUL_SKIN_TELEGRAM_BOT_TOKEN
2. file secrets/seoul-skin/telegram_bot_token (relative to the working directory)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

SECRETS_DIR = Path("secrets")
ENV_PREFIX = "CLINICFLOW_SECRET"

TELEGRAM_BOT_TOKEN = "telegram_bot_token"
MANAGER_CHAT_ID = "manager_chat_id"
MANAGER_THREAD_ID = "manager_thread_id"


def llm_key_name(provider: str) -> str:
    """openai -> openai_key"""
    return f"{provider}_key"


def env_key(tenant_slug: str, secret_name: str) -> str:
    return f"{ENV_PREFIX}_{_env_part(tenant_slug)}_{_env_part(secret_name)}"


def resolve_secret(tenant_slug: str, secret_name: str) -> str | None:
    value = os.environ.get(env_key(tenant_slug, secret_name))
    if value:
        return value

    secret_file = _tenant_dir(tenant_slug) / secret_name
    if secret_file.is_file():
        return secret_file.read_text(encoding="utf-8").strip() or None

    logger.debug("Secret %s/%s not configured", tenant_slug, secret_name)
    return None


def save_secret(tenant_slug: str, secret_name: str, value: str) -> Path:
    """Write a file secret; the tenant directory is git-ignored on creation."""
    tenant_dir = _tenant_dir(tenant_slug)
    tenant_dir.mkdir(parents=True, exist_ok=True)

    gitignore = tenant_dir / ".gitignore"
    if not gitignore.exists():
        gitignore.write_text("*\n!.gitignore\n", encoding="utf-8")

    path = tenant_dir / secret_name
    path.write_text(value, encoding="utf-8")
    return path


def list_secrets(tenant_slug: str) -> list[str] | None:
    """Names of file secrets for a tenant; None when the tenant has no directory."""
    tenant_dir = _tenant_dir(tenant_slug)
    if not tenant_dir.is_dir():
        return None
    return sorted(f.name for f in tenant_dir.iterdir() if f.is_file() and f.name != ".gitignore")


def _tenant_dir(tenant_slug: str) -> Path:
    return SECRETS_DIR / tenant_slug


def _env_part(s: str) -> str:
    return s.replace("-", "_").replace(".", "_").upper()
