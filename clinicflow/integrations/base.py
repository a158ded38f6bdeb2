"""
Base Integration Adapter — outbound calls to services outside the automation core.

Adapters report remote failures as {"success": False, "error": ...} instead of
raising; callers turn that into a failed action or job result.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import httpx

DEFAULT_TIMEOUT = 10.0


class IntegrationAdapter(ABC):
    """
    Config keys shared by HTTP adapters:
        timeout: seconds before a call is abandoned
        transport: optional httpx transport (tests)
    """

    integration_type: str = ""

    def __init__(self, config: dict):
        self.config = config

    @abstractmethod
    async def execute(self, action: str, params: dict) -> dict:
        """
        Args:
            action: "call" for webhooks; gateway endpoints such as "send_message" or "add_note"
            params: Action-specific parameters

        Returns:
            {"success": bool, ...}; failures carry "error".
        """

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=float(self.config.get("timeout") or DEFAULT_TIMEOUT),
            transport=self.config.get("transport"),
        )

    @staticmethod
    def failure(error: str, **extra) -> dict:
        return {"success": False, "error": error, **extra}
