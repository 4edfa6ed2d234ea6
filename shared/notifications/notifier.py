"""
Outbound order notifications.

Delivery is best-effort: a notification is sent after the ledger change has
committed, and a failure here is logged and counted, never raised.
"""
from typing import Any, Dict, Optional, Protocol

import httpx
import structlog

from shared.config.settings import INTERNAL_API_KEY, NOTIFICATION_URL
from shared.observability.metrics import ecomm_notification_failures_total

logger = structlog.get_logger(__name__)


class OrderNotifier(Protocol):
    async def publish(self, event_type: str, payload: Dict[str, Any]) -> None: ...


class LoggingOrderNotifier:
    """Used when no notification endpoint is configured."""

    async def publish(self, event_type: str, payload: Dict[str, Any]) -> None:
        logger.info("notification_skipped", event_type=event_type, payload=payload)


class HttpOrderNotifier:
    def __init__(
        self,
        url: str,
        api_key: str = INTERNAL_API_KEY,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.headers = {"X-Internal-API-Key": api_key}
        self.timeout = timeout
        self._transport = transport

    async def publish(self, event_type: str, payload: Dict[str, Any]) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    self.url,
                    json={"type": event_type, "payload": payload},
                    headers=self.headers,
                )
                resp.raise_for_status()
            logger.info("notification_sent", event_type=event_type)
        except Exception as e:
            # Never break the request that triggered the notification
            ecomm_notification_failures_total.labels(event=event_type).inc()
            logger.warning("notification_failed", event_type=event_type, error=repr(e))


def build_notifier() -> OrderNotifier:
    if NOTIFICATION_URL:
        return HttpOrderNotifier(NOTIFICATION_URL)
    return LoggingOrderNotifier()
