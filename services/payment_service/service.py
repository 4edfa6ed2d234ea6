"""
Payment reconciliation.

Turns verified gateway callbacks into payment status changes. Everything here
runs inside a unit of work opened by the lifecycle controller, which is also
the place where the linked order is advanced.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.exceptions import InvalidSignatureError, NotFoundError, StateError
from .gateway import to_minor_units
from .models import CAPTURABLE_STATUSES, CONFIRMABLE_STATUSES, SETTLED_STATUSES, Payment, PaymentStatus
from .repository import PaymentRepository
from .signature import verify_checkout_signature, verify_webhook_signature

logger = structlog.get_logger(__name__)

OUTCOME_CONFIRMED = "confirmed"
OUTCOME_REPLAY = "replay"
OUTCOME_REFUND_OWED = "refund_owed"
OUTCOME_FAILED = "failed"
OUTCOME_REFUNDED = "refunded"
OUTCOME_IGNORED = "ignored"


@dataclass(frozen=True)
class GatewayCallback:
    gateway_order_id: str
    gateway_payment_id: str
    signature: str


@dataclass
class PaymentMethodDetails:
    method: Optional[str] = None
    card_last4: Optional[str] = None
    card_network: Optional[str] = None
    bank_name: Optional[str] = None
    vpa: Optional[str] = None
    wallet_name: Optional[str] = None

    def as_values(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReconcileResult:
    payment_id: int
    order_id: int
    order_number: str
    status: str
    order_status: str
    amount: Decimal
    outcome: str
    notification: Optional[Dict[str, Any]] = field(default=None, repr=False)

    @property
    def already_processed(self) -> bool:
        return self.outcome == OUTCOME_REPLAY


def extract_method_details(entity: Optional[Dict[str, Any]]) -> PaymentMethodDetails:
    """Pick the instrument fields relevant to the payment method."""
    if not entity:
        return PaymentMethodDetails()

    method = entity.get("method")
    details = PaymentMethodDetails(method=method)
    if method == "card":
        card = entity.get("card") or {}
        details.card_last4 = card.get("last4")
        details.card_network = card.get("network")
    elif method == "netbanking":
        details.bank_name = entity.get("bank")
    elif method == "upi":
        details.vpa = entity.get("vpa")
    elif method == "wallet":
        details.wallet_name = entity.get("wallet")
    return details


class PaymentService:

    @staticmethod
    def verify_callback(callback: GatewayCallback, secret: str) -> None:
        if not verify_checkout_signature(
            callback.gateway_order_id, callback.gateway_payment_id, callback.signature, secret
        ):
            logger.warning("payment_signature_invalid", gateway_order_id=callback.gateway_order_id)
            raise InvalidSignatureError("Payment verification failed. Invalid signature")

    @staticmethod
    def verify_webhook(body: bytes, signature: Optional[str], secret: str) -> None:
        if not signature:
            raise InvalidSignatureError("Missing webhook signature")
        if not verify_webhook_signature(body, signature, secret):
            logger.warning("webhook_signature_invalid")
            raise InvalidSignatureError("Invalid webhook signature")

    @staticmethod
    async def find_for_capture(db: AsyncSession, gateway_order_id: str) -> Payment:
        payment = await PaymentRepository.get_by_gateway_order_id(db, gateway_order_id)
        if not payment:
            raise NotFoundError("Payment not found")
        return payment

    @staticmethod
    async def apply_capture(
        db: AsyncSession,
        payment: Payment,
        gateway_payment_id: str,
        signature: Optional[str],
        details: PaymentMethodDetails,
        paid_at: datetime,
        refund_owed: bool = False,
    ) -> str:
        """
        Move a payment to SUCCESS (or straight to REFUNDED when its order was
        cancelled first). ``payment`` must be freshly loaded under lock.

        Returns the reconciliation outcome. Replays of a processed capture are
        reported as OUTCOME_REPLAY and change nothing.
        """
        if payment.status not in [s.value for s in CAPTURABLE_STATUSES]:
            if payment.status in [s.value for s in SETTLED_STATUSES]:
                if payment.gateway_payment_id != gateway_payment_id:
                    logger.warning(
                        "capture_for_settled_payment",
                        payment_id=payment.id,
                        recorded=payment.gateway_payment_id,
                        received=gateway_payment_id,
                    )
                return OUTCOME_REPLAY
            raise StateError(f"Payment is already {payment.status.lower()}")

        target = PaymentStatus.REFUNDED if refund_owed else PaymentStatus.SUCCESS
        swapped = await PaymentRepository.transition_status(
            db,
            payment.id,
            CAPTURABLE_STATUSES,
            status=target.value,
            gateway_payment_id=gateway_payment_id,
            gateway_signature=signature,
            paid_at=paid_at,
            failure_reason=None,
            failure_code=None,
            **details.as_values(),
        )
        if not swapped:
            current = await PaymentRepository.get_by_id(db, payment.id)
            if current and current.status == PaymentStatus.SUCCESS.value:
                return OUTCOME_REPLAY
            raise StateError("Payment status changed concurrently")
        return OUTCOME_REFUND_OWED if refund_owed else OUTCOME_CONFIRMED

    @staticmethod
    async def apply_failure(db: AsyncSession, payment: Payment, entity: Dict[str, Any]) -> str:
        swapped = await PaymentRepository.transition_status(
            db,
            payment.id,
            CONFIRMABLE_STATUSES,
            status=PaymentStatus.FAILED.value,
            gateway_payment_id=entity.get("id"),
            failure_reason=(entity.get("error_description") or "Payment failed")[:255],
            failure_code=entity.get("error_code"),
        )
        if not swapped:
            logger.info("failure_event_ignored", payment_id=payment.id, status=payment.status)
            return OUTCOME_IGNORED
        return OUTCOME_FAILED

    @staticmethod
    async def apply_refund(db: AsyncSession, payment: Payment, refunded_minor: int) -> str:
        if payment.status == PaymentStatus.REFUNDED.value:
            return OUTCOME_IGNORED

        partial = refunded_minor < to_minor_units(payment.amount)
        target = PaymentStatus.PARTIALLY_REFUNDED if partial else PaymentStatus.REFUNDED
        swapped = await PaymentRepository.transition_status(
            db,
            payment.id,
            (PaymentStatus.SUCCESS, PaymentStatus.PARTIALLY_REFUNDED),
            status=target.value,
        )
        return OUTCOME_REFUNDED if swapped else OUTCOME_IGNORED
