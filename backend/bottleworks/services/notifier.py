"""Customer notifications for order milestones.

The state machine only decides *whether* a status change is worth
telling the customer about; composing and delivering the email / SMS is
the job of whatever listens on the configured webhook.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from bottleworks.models.order import OrderStatus

logger = logging.getLogger(__name__)

ORDER_STATUS_EVENT = "order_status_changed"
QUOTE_EXPIRED_EVENT = "quote_expired"
QUOTE_EXPIRING_EVENT = "quote_expiring"

# Statuses the customer is told about
NOTIFY_STATUSES = frozenset({
    OrderStatus.IN_PRODUCTION.value,
    OrderStatus.IN_PACKING.value,
    OrderStatus.PACKED.value,
    OrderStatus.SHIPPED.value,
})


def should_notify(status: str) -> bool:
    return status in NOTIFY_STATUSES


class Notifier(Protocol):
    async def notify(self, event: str, payload: dict) -> None: ...


class WebhookNotifier:
    """POSTs ``{"event": ..., "payload": {...}}`` to a webhook URL.

    Delivery is best effort: HTTP failures are logged, never raised.
    """

    def __init__(self, url: str, timeout: float = 5.0, client: httpx.AsyncClient | None = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def notify(self, event: str, payload: dict) -> None:
        if not self.url:
            logger.debug("Notifications disabled; dropping %s %s", event, payload)
            return

        body = {"event": event, "payload": payload}
        try:
            if self._client is not None:
                resp = await self._client.post(self.url, json=body, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(self.url, json=body)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Notification %s failed: %s", event, exc)
            return

        logger.info("Notification %s sent for %s", event, payload.get("order_id"))
