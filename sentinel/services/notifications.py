"""
User-facing notifications.

Delivers price alerts and auto-pause notices to a sentinel's notification
target. Targets are Discord-compatible webhooks. Delivery failures raise
NotifierFailed; callers decide whether that matters.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

import httpx

from sentinel.core.config import settings
from sentinel.core.errors import NotifierFailed

logger = logging.getLogger(__name__)

ALERT_COLOR = 0xFF0000
PAUSED_COLOR = 0xFFA500
FOOTER = {"text": "Sentinel Price Alert System"}


def _usd(value: Decimal) -> str:
    return f"${Decimal(value):,.2f} USD"


class WebhookNotifier:
    """Sends notifications to webhook targets."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self.client = client or httpx.AsyncClient(timeout=settings.notifier_timeout_seconds)

    async def notify(
        self,
        target: str | None,
        title: str,
        price: Decimal,
        threshold: Decimal,
        timestamp: datetime,
        message: str | None = None,
    ) -> None:
        """
        Send a price alert.

        Args:
            target: Webhook URL; nothing is sent when unset
            title: Alert title
            price: Observed price
            threshold: Threshold that was crossed
            timestamp: When the alert fired
            message: Optional custom description

        Raises:
            NotifierFailed: If the webhook could not be delivered
        """
        direction = "up" if price > threshold else "down"
        payload = {
            "embeds": [
                {
                    "title": title,
                    "description": message or "A price threshold has been crossed!",
                    "color": ALERT_COLOR,
                    "fields": [
                        {"name": "Current Price", "value": _usd(price), "inline": True},
                        {"name": "Threshold", "value": _usd(threshold), "inline": True},
                        {
                            "name": "Difference",
                            "value": f"{direction} {_usd(abs(price - threshold))}",
                            "inline": True,
                        },
                    ],
                    "timestamp": timestamp.isoformat(),
                    "footer": FOOTER,
                }
            ]
        }
        await self._post(target, payload, kind="alert")

    async def notify_paused(
        self,
        target: str | None,
        sentinel_id: str,
        reason: str,
        timestamp: datetime,
    ) -> None:
        """
        Send the auto-pause notice, distinct from a price alert.

        Raises:
            NotifierFailed: If the webhook could not be delivered
        """
        payload = {
            "embeds": [
                {
                    "title": "Sentinel paused: insufficient balance",
                    "description": (
                        f"Sentinel {sentinel_id} stopped monitoring because its wallet "
                        f"cannot pay for price checks. Top up the wallet and reactivate it."
                    ),
                    "color": PAUSED_COLOR,
                    "fields": [{"name": "Reason", "value": reason, "inline": False}],
                    "timestamp": timestamp.isoformat(),
                    "footer": FOOTER,
                }
            ]
        }
        await self._post(target, payload, kind="pause notice")

    async def _post(self, target: str | None, payload: dict[str, Any], kind: str) -> None:
        if not target:
            logger.debug(f"No notification target, skipping {kind}")
            return

        try:
            response = await self.client.post(target, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send {kind}: {e}")
            raise NotifierFailed(f"Failed to deliver {kind}", detail=str(e)) from e

        if response.status_code >= 400:
            logger.error(f"Webhook rejected {kind}: HTTP {response.status_code}")
            raise NotifierFailed(f"Webhook rejected {kind}", detail=f"HTTP {response.status_code}")

        logger.info(f"Sent {kind} to webhook")

    async def close(self) -> None:
        await self.client.aclose()
