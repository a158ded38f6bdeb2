"""
LLM access for classification calls, provider-agnostic through LiteLLM.

Provider names follow the settings (`openai`, `anthropic`, `google`,
`openrouter`); the LiteLLM model prefix is added here.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

import litellm

logger = logging.getLogger(__name__)

PROVIDER_PREFIXES = {
    "anthropic": "anthropic/",
    "google": "gemini/",
    "openrouter": "openrouter/",
}

USAGE_COUNTERS = ("prompt_tokens", "completion_tokens", "total_tokens")

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass
class BrainResponse:
    content: str
    model: str
    usage: dict = field(default_factory=dict)
    raw: dict = field(default_factory=dict)

    def json(self) -> Any:
        """Parse the reply as JSON, tolerating a Markdown code fence around it."""
        return json.loads(_CODE_FENCE.sub("", self.content.strip()))


class Brain:
    """
    Chat completion client with per-instance defaults.

        brain = Brain(provider="openai", model="gpt-4", temperature=0.1, max_tokens=500)
        reply = await brain.think(system_prompt, [{"role": "user", "content": "..."}])
        payload = reply.json()
    """

    def __init__(
        self,
        provider: str,
        model: str,
        temperature: float = 0.1,
        api_key: str | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ):
        self.provider = provider
        self.model = self._resolve_model(provider, model)
        self.temperature = temperature
        self.api_key = api_key
        self.max_tokens = max_tokens
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings, api_key: str | None = None) -> "Brain":
        return cls(
            provider=settings.intent_provider,
            model=settings.intent_model,
            temperature=settings.intent_temperature,
            api_key=api_key,
            max_tokens=settings.intent_max_tokens,
            timeout=settings.llm_timeout_seconds,
        )

    async def think(
        self,
        system_prompt: str,
        messages: list[dict],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> BrainResponse:
        """
        One completion call. Provider errors and timeouts propagate to the caller.

        Args:
            system_prompt: Prepended as the system message.
            messages: Chat messages without the system message.
            temperature: Per-call override.
            max_tokens: Per-call override.
        """
        response = await litellm.acompletion(
            model=self.model,
            messages=[{"role": "system", "content": system_prompt}, *messages],
            temperature=self.temperature if temperature is None else temperature,
            max_tokens=self.max_tokens if max_tokens is None else max_tokens,
            timeout=self.timeout,
            api_key=self.api_key,
        )

        usage = self._safe_usage(getattr(response, "usage", None))
        logger.debug("LLM %s usage: %s", self.model, usage)
        return BrainResponse(
            content=response.choices[0].message.content or "",
            model=response.model,
            usage=usage,
            raw=response.model_dump(),
        )

    @staticmethod
    def _safe_usage(usage_obj) -> dict:
        """Integer token counters only; provider wrapper objects are not JSON-safe."""
        if usage_obj is None:
            return {}
        if isinstance(usage_obj, dict):
            values = {key: usage_obj.get(key) for key in USAGE_COUNTERS}
        else:
            values = {key: getattr(usage_obj, key, None) for key in USAGE_COUNTERS}
        return {key: val for key, val in values.items() if isinstance(val, int)}

    @staticmethod
    def _resolve_model(provider: str, model: str) -> str:
        prefix = PROVIDER_PREFIXES.get(provider, "")
        if not prefix or model.startswith(prefix):
            return model
        return prefix + model
