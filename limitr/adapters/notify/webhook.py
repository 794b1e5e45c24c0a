"""Webhook notifications for requests that exceeded their limit.

Delivery is fire-and-forget from the pipeline's point of view: transport
errors and non-2xx responses are logged and never raised.
"""

from __future__ import annotations

import inspect
import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from starlette.requests import Request

from limitr.schemas.options import WebhookConfig
from limitr.schemas.usage import RateLimitUsage
from limitr.utils.client_ip import get_client_ip

logger = logging.getLogger(__name__)


class WebhookNotifier:
    """Send limit-exceeded alerts to a configured URL.

    Args:
        config: Target URL, method, headers and optional payload builder.
        client: Optional ``httpx.AsyncClient`` to send with. A short-lived
            client is created per notification when omitted.
    """

    def __init__(self, config: WebhookConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._client = client

    async def _build_body(self, request: Request, usage: RateLimitUsage) -> Any:
        if self.config.payload is not None:
            body = self.config.payload(request, usage)
            if inspect.isawaitable(body):
                body = await body
            return body

        return {
            "ip": get_client_ip(request),
            "path": request.url.path,
            "method": request.method,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "usage": usage.to_dict(),
        }

    async def _send(self, client: httpx.AsyncClient, body: Any) -> httpx.Response:
        headers = {"Content-Type": "application/json", **self.config.headers}
        return await client.request(
            self.config.method.upper(),
            self.config.url,
            headers=headers,
            json=body,
        )

    async def notify(self, request: Request, usage: RateLimitUsage) -> None:
        """Deliver one notification. Never raises.

        Args:
            request: The denied request.
            usage: Usage record carrying the enforced limit.
        """
        try:
            body = await self._build_body(request, usage)
            if self._client is not None:
                response = await self._send(self._client, body)
            else:
                async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                    response = await self._send(client, body)
        except Exception as exc:
            logger.error(
                "webhook.error",
                extra={
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                    "path": request.url.path,
                },
            )
            return

        if response.is_success:
            logger.info(
                "webhook.sent",
                extra={"status_code": response.status_code, "path": request.url.path},
            )
            return

        logger.error(
            "webhook.failed",
            extra={
                "status_code": response.status_code,
                "response_text": response.text[:500],
                "path": request.url.path,
            },
        )
