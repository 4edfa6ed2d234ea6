import base64
import json
from decimal import Decimal

import httpx
import pytest

from services.payment_service.gateway import RazorpayGateway, to_minor_units
from services.payment_service.service import extract_method_details
from services.payment_service.signature import (
    sign_checkout,
    sign_webhook,
    verify_checkout_signature,
    verify_webhook_signature,
)
from shared.exceptions import GatewayError, GatewayUnavailableError


def gateway_with(handler):
    return RazorpayGateway(
        key_id="rzp_test_key",
        key_secret="rzp_secret",
        base_url="https://api.razorpay.test/v1",
        transport=httpx.MockTransport(handler),
    )


class TestMinorUnits:
    @pytest.mark.parametrize(
        "amount, expected",
        [
            (Decimal("1999.00"), 199900),
            (Decimal("0.01"), 1),
            (Decimal("199.50"), 19950),
            (Decimal("10.005"), 1001),
            (Decimal("10"), 1000),
        ],
    )
    def test_conversion(self, amount, expected):
        assert to_minor_units(amount) == expected


class TestRazorpayGateway:
    async def test_create_order(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "order_ABC", "amount": 199900, "currency": "INR"})

        order = await gateway_with(handler).create_order(199900, "INR", "ORD-2026-0001", {"order_id": "1"})

        assert order.id == "order_ABC"
        assert order.amount == 199900
        assert seen["path"] == "/v1/orders"
        assert seen["body"] == {
            "amount": 199900,
            "currency": "INR",
            "receipt": "ORD-2026-0001",
            "notes": {"order_id": "1"},
        }
        expected = base64.b64encode(b"rzp_test_key:rzp_secret").decode()
        assert seen["auth"] == f"Basic {expected}"

    async def test_fetch_payment(self):
        def handler(request):
            assert request.url.path == "/v1/payments/pay_1"
            return httpx.Response(200, json={"id": "pay_1", "method": "upi", "vpa": "a@b"})

        entity = await gateway_with(handler).fetch_payment("pay_1")
        assert entity["vpa"] == "a@b"

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(GatewayUnavailableError):
            await gateway_with(handler).create_order(100, "INR", "r")

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(GatewayUnavailableError):
            await gateway_with(handler).fetch_payment("pay_1")

    async def test_rejected_request(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"description": "amount too small"}})

        with pytest.raises(GatewayError) as exc:
            await gateway_with(handler).create_order(1, "INR", "r")
        assert not isinstance(exc.value, GatewayUnavailableError)
        assert exc.value.status_code == 502

    async def test_non_json_response(self):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        with pytest.raises(GatewayError):
            await gateway_with(handler).fetch_payment("pay_1")


class TestSignatures:
    def test_checkout_signature_round_trip(self):
        signature = sign_checkout("order_1", "pay_1", "secret")
        assert verify_checkout_signature("order_1", "pay_1", signature, "secret")

    def test_checkout_signature_binds_both_references(self):
        signature = sign_checkout("order_1", "pay_1", "secret")
        assert not verify_checkout_signature("order_2", "pay_1", signature, "secret")
        assert not verify_checkout_signature("order_1", "pay_2", signature, "secret")
        assert not verify_checkout_signature("order_1", "pay_1", signature, "other")

    def test_empty_secret_or_signature_never_verifies(self):
        assert not verify_checkout_signature("order_1", "pay_1", sign_checkout("order_1", "pay_1", ""), "")
        assert not verify_checkout_signature("order_1", "pay_1", "", "secret")
        assert not verify_webhook_signature(b"{}", "", "secret")

    def test_webhook_signature_covers_raw_body(self):
        body = b'{"event":"payment.captured"}'
        signature = sign_webhook(body, "whsec")
        assert verify_webhook_signature(body, signature, "whsec")
        assert not verify_webhook_signature(body + b" ", signature, "whsec")


class TestMethodDetails:
    def test_card(self):
        details = extract_method_details({"method": "card", "card": {"last4": "1111", "network": "RuPay"}})
        assert (details.method, details.card_last4, details.card_network) == ("card", "1111", "RuPay")
        assert details.vpa is None

    def test_netbanking(self):
        assert extract_method_details({"method": "netbanking", "bank": "SBIN"}).bank_name == "SBIN"

    def test_wallet(self):
        assert extract_method_details({"method": "wallet", "wallet": "paytm"}).wallet_name == "paytm"

    def test_missing_entity(self):
        assert extract_method_details(None).as_values() == {
            "method": None,
            "card_last4": None,
            "card_network": None,
            "bank_name": None,
            "vpa": None,
            "wallet_name": None,
        }
