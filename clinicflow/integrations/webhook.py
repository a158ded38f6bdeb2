from __future__ import annotations

import json
import logging

import httpx

from clinicflow.integrations.base import IntegrationAdapter

logger = logging.getLogger(__name__)


class WebhookAdapter(IntegrationAdapter):
    """
    Outbound webhook calls for `trigger_webhook` actions.

    The body template is rendered before the call and must be JSON.
    """

    integration_type = "webhook"

    async def execute(self, action: str, params: dict) -> dict:
        if action != "call":
            return self.failure(f"Unknown webhook action: {action}")

        url = params["url"]
        method = (params.get("method") or "POST").upper()
        headers = {"Content-Type": "application/json", **(params.get("headers") or {})}

        payload = None
        body = params.get("body")
        if body:
            try:
                payload = json.loads(body)
            except json.JSONDecodeError as e:
                return self.failure(f"Webhook body is not valid JSON: {e}")

        try:
            async with self.http_client() as client:
                resp = await client.request(method, url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.warning("Webhook %s %s failed: %s", method, url, e)
            return self.failure(str(e) or type(e).__name__)

        if resp.status_code >= 400:
            return self.failure(f"webhook_http_{resp.status_code}", status_code=resp.status_code)
        return {"success": True, "status_code": resp.status_code}
