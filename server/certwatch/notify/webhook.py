"""
Webhook Sink

POSTs one JSON document per matched domain to an HTTP endpoint
(Slack incoming webhooks by default). All deliveries share a single
aiohttp.ClientSession.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import urlsplit

import aiohttp

from certwatch.core.types import DeliveryError
from certwatch.models.cert import MatchResult

logger = logging.getLogger(__name__)

WEBHOOK_FORMATS = ("slack", "json")


def build_payload(result: MatchResult, fmt: str) -> dict[str, Any]:
    """
    Build the webhook body.

    slack: {"text": "<domain> -> <p1>, <p2>"}
    json:  {"domain": ..., "patterns": [...], "text": ...}
    """
    if fmt == "slack":
        return {"text": result.summary}
    if fmt == "json":
        payload = result.to_dict()
        payload["text"] = result.summary
        return payload
    raise ValueError(f"Unsupported webhook format: {fmt}")


def mask_url(url: str) -> str:
    """Hide the path of a webhook URL, which usually embeds its secret."""
    parts = urlsplit(url)
    if not parts.netloc:
        return "***"
    return f"{parts.scheme}://{parts.netloc}/***"


class WebhookSink:
    """Sink that POSTs matches to a webhook. Failures raise DeliveryError."""

    name = "webhook"

    def __init__(
        self,
        url: str,
        *,
        fmt: str = "slack",
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """
        Initialize the sink.

        Args:
            url: Endpoint to POST to
            fmt: Payload format, "slack" or "json"
            timeout: Total request timeout (seconds)
            session: Existing session to use; created lazily otherwise
        """
        if fmt not in WEBHOOK_FORMATS:
            raise ValueError(f"Unsupported webhook format: {fmt}")
        self._url = url
        self._format = fmt
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None

    @property
    def safe_url(self) -> str:
        return mask_url(self._url)

    def _get_session(self) -> aiohttp.ClientSession:
        # ClientSession must be created inside the running event loop.
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
            self._owns_session = True
        return self._session

    async def send(self, result: MatchResult) -> None:
        """
        POST one MatchResult.

        Raises:
            DeliveryError: On network errors, timeouts or a non-2xx status.
        """
        session = self._get_session()
        payload = build_payload(result, self._format)

        try:
            async with session.post(self._url, json=payload) as resp:
                if not 200 <= resp.status < 300:
                    body = await resp.text(errors="replace")
                    raise DeliveryError(
                        f"Webhook returned HTTP {resp.status}",
                        sink=self.name,
                        status=resp.status,
                        context={"url": self.safe_url, "body": body[:200]},
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DeliveryError(
                f"Webhook request failed: {e!r}",
                sink=self.name,
                context={"url": self.safe_url},
            ) from e

        logger.debug(
            "Webhook delivered",
            extra={"domain": result.domain, "url": self.safe_url},
        )

    async def close(self) -> None:
        """Close the HTTP session if this sink created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None
