"""Webhook notifier: POST the new digest as ``{"content": ...}`` JSON."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from recap.errors import NotificationError

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "Daily Digest: "
DEFAULT_TIMEOUT = 15


class WebhookNotifier:
    """Announce digests to a Discord-style webhook.

    ``notify`` raises :class:`NotificationError` when the URL is missing, the
    request fails in transport, times out, or answers with a non-2xx status.
    """

    def __init__(self, config: Dict[str, Any]) -> None:
        notify = config.get("notify", {})
        self.webhook_url: Optional[str] = notify.get("webhook_url") or None
        self.prefix: str = notify.get("prefix", DEFAULT_PREFIX)
        timeout = config.get("timeouts", {}).get("notify_seconds", DEFAULT_TIMEOUT)
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url)

    def build_payload(self, digest_text: str) -> Dict[str, str]:
        return {"content": f"{self.prefix}{digest_text}"}

    async def notify(self, digest_text: str) -> None:
        """POST the digest. Returns on any 2xx status."""
        if not self.webhook_url:
            raise NotificationError("Webhook URL not configured (set DISCORD_WEBHOOK)")

        payload = self.build_payload(digest_text)
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.webhook_url, json=payload) as resp:
                    if not 200 <= resp.status < 300:
                        body = await resp.text()
                        raise NotificationError(
                            f"Webhook returned HTTP {resp.status}: {body[:200]}",
                            status=resp.status,
                        )
        except asyncio.TimeoutError as e:
            raise NotificationError(f"Webhook timed out after {self.timeout.total}s") from e
        except aiohttp.ClientError as e:
            raise NotificationError(f"Webhook request failed: {e}") from e

        logger.info("Sent digest to webhook (%d chars)", len(payload["content"]))
