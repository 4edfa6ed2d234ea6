"""
Payment gateway adapter (Razorpay REST API).

The adapter only talks to the gateway. It never touches the database, so
callers can keep every gateway round-trip outside their units of work.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional, Protocol

import httpx
import structlog

from shared.config.settings import (
    GATEWAY_TIMEOUT_SECONDS,
    RAZORPAY_API_URL,
    RAZORPAY_KEY_ID,
    RAZORPAY_KEY_SECRET,
)
from shared.exceptions import GatewayError, GatewayUnavailableError

logger = structlog.get_logger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Rupees to paise: 1999.00 -> 199900."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class GatewayOrder:
    id: str
    amount: int
    currency: str


class PaymentGateway(Protocol):
    key_id: str

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, Any]] = None,
    ) -> GatewayOrder: ...

    async def fetch_payment(self, payment_id: str) -> Dict[str, Any]: ...


class RazorpayGateway:
    def __init__(
        self,
        key_id: str = RAZORPAY_KEY_ID,
        key_secret: str = RAZORPAY_KEY_SECRET,
        base_url: str = RAZORPAY_API_URL,
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id
        self._auth = (key_id, key_secret)
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            auth=self._auth,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                resp = await client.request(method, path, **kwargs)
        except httpx.TimeoutException:
            raise GatewayUnavailableError("Payment gateway timeout")
        except httpx.RequestError:
            raise GatewayUnavailableError("Payment gateway unavailable")

        if resp.status_code >= 400:
            logger.error("gateway_request_failed", path=path, status=resp.status_code, body=resp.text[:500])
            raise GatewayError(f"Payment gateway rejected the request ({resp.status_code})")

        try:
            return resp.json()
        except ValueError:
            raise GatewayError("Bad response from payment gateway")

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, Any]] = None,
    ) -> GatewayOrder:
        data = await self._request(
            "POST",
            "/orders",
            json={"amount": amount, "currency": currency, "receipt": receipt, "notes": notes or {}},
        )
        logger.info("gateway_order_created", gateway_order_id=data.get("id"), receipt=receipt)
        return GatewayOrder(id=data["id"], amount=int(data.get("amount", amount)), currency=data.get("currency", currency))

    async def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/payments/{payment_id}")
