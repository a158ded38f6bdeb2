"""
HTTP gateways to systems outside the automation core.

The channel gateway delivers outbound messages to messaging channels; the CRM
gateway forwards customer updates and notes. Both are opaque HTTP sinks: each
action is POSTed as JSON to `{base_url}/{action}`.
"""

from __future__ import annotations

import logging

import httpx

from clinicflow.integrations.base import IntegrationAdapter

logger = logging.getLogger(__name__)


class HttpGateway(IntegrationAdapter):
    integration_type = "gateway"

    async def execute(self, action: str, params: dict) -> dict:
        base_url = (self.config.get("base_url") or "").rstrip("/")
        if not base_url:
            return self.failure(f"{self.integration_type}_not_configured")

        try:
            async with self.http_client() as client:
                resp = await client.post(f"{base_url}/{action}", json=params)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", self.integration_type, action, e)
            return self.failure(str(e) or type(e).__name__)

        if resp.status_code >= 400:
            return self.failure(f"{self.integration_type}_http_{resp.status_code}")

        try:
            data = resp.json()
        except ValueError:
            data = {}
        return {"success": True, "data": data}


class ChannelGateway(HttpGateway):
    integration_type = "channel_gateway"


class CrmGateway(HttpGateway):
    integration_type = "crm_gateway"
