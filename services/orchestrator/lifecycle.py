"""
Order lifecycle controller.

The only component that changes orders, payments and product stock together.
Every mutation happens inside one UnitOfWork, and gateway round-trips happen
outside of them. Notifications go out after commit and can never undo a
committed transition.

Lock order is always order row first, then payment row, so cancellation and
payment confirmation for the same order serialize instead of interleaving.
"""
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.customer_service.repository import AddressRepository
from services.order_service.models import (
    ADMIN_TRANSITIONS,
    CANCELLABLE_STATUSES,
    STATUS_TIMESTAMPS,
    Order,
    OrderItem,
    OrderStatus,
)
from services.order_service.repository import OrderRepository
from services.order_service.schemas import OrderItemCreate, OrderResponse
from services.order_service.service import format_order_number, to_order_response
from services.payment_service.gateway import PaymentGateway, to_minor_units
from services.payment_service.models import Payment, PaymentStatus
from services.payment_service.repository import PaymentRepository
from services.payment_service.schemas import PaymentIntentResponse
from services.payment_service.service import (
    OUTCOME_CONFIRMED,
    OUTCOME_IGNORED,
    GatewayCallback,
    PaymentMethodDetails,
    PaymentService,
    ReconcileResult,
    extract_method_details,
)
from services.product_service.models import AVAILABILITY_IN_STOCK
from services.product_service.repository import ProductRepository
from shared.config import settings
from shared.exceptions import (
    AppError,
    ConflictError,
    EmptyCartError,
    ForbiddenError,
    GatewayError,
    InsufficientStockError,
    InternalError,
    InvalidAddressError,
    NotFoundError,
    ProductUnavailableError,
    StateError,
    ValidationError,
)
from shared.notifications import OrderNotifier
from shared.observability.metrics import (
    ecomm_checkout_duration_seconds,
    ecomm_order_cancellations_total,
    ecomm_order_number_conflicts_total,
    ecomm_orders_created_total,
    ecomm_payment_intents_total,
    ecomm_payment_reconciliations_total,
)
from shared.security import Principal
from .unit_of_work import UnitOfWork

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def append_note(existing: Optional[str], note: str) -> str:
    """Notes are an audit trail: always appended, never replaced."""
    return f"{existing}\n\n{note}" if existing else note


def merge_items(items: Iterable[OrderItemCreate]) -> Dict[int, int]:
    merged: Dict[int, int] = {}
    for item in items:
        merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
    if not merged:
        raise EmptyCartError("Cart is empty")
    return merged


def _event_entity(payload: Dict[str, Any], kind: str, *required: str) -> Dict[str, Any]:
    try:
        entity = payload[kind]["entity"]
    except (KeyError, TypeError):
        raise ValidationError(f"Webhook payload has no {kind} entity")
    if not isinstance(entity, dict):
        raise ValidationError(f"Webhook payload has no {kind} entity")

    missing = [key for key in required if not entity.get(key)]
    if missing:
        raise ValidationError(f"Webhook {kind} entity is missing {', '.join(missing)}", details=missing)
    return entity


def _refund_amount(entity: Dict[str, Any]) -> int:
    """Refunded amount in minor units."""
    try:
        return int(entity["amount"])
    except (TypeError, ValueError):
        raise ValidationError("Webhook refund amount must be an integer")


@dataclass
class CancelResult:
    order_id: int
    status: str
    refund_status: Optional[str] = None


class OrderLifecycleController:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: PaymentGateway,
        notifier: OrderNotifier,
        clock: Callable[[], datetime] = utcnow,
        currency: str = settings.PAYMENT_CURRENCY,
        key_secret: Optional[str] = None,
        webhook_secret: Optional[str] = None,
    ):
        self._session_factory = session_factory
        self._gateway = gateway
        self._notifier = notifier
        self._clock = clock
        self._currency = currency
        self._key_secret = settings.RAZORPAY_KEY_SECRET if key_secret is None else key_secret
        self._webhook_secret = settings.RAZORPAY_WEBHOOK_SECRET if webhook_secret is None else webhook_secret

    def _unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(self._session_factory)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_order(
        self,
        principal: Principal,
        address_id: int,
        items: Iterable[OrderItemCreate],
        notes: Optional[str] = None,
    ) -> OrderResponse:
        merged = merge_items(items)

        with ecomm_checkout_duration_seconds.time():
            for attempt in range(1, settings.ORDER_NUMBER_MAX_ATTEMPTS + 1):
                try:
                    async with self._unit_of_work() as uow:
                        order = await self._place_order(uow.session, principal, address_id, merged, notes)
                        await uow.commit()
                except IntegrityError as e:
                    # Another creator took the same order number or seeded the counter first
                    ecomm_order_number_conflicts_total.inc()
                    logger.warning("order_number_conflict", attempt=attempt, error=str(e.orig))
                    continue
                except AppError as e:
                    ecomm_orders_created_total.labels(outcome="rejected").inc()
                    logger.info("order_rejected", user_id=principal.id, reason=e.message)
                    raise

                ecomm_orders_created_total.labels(outcome="created").inc()
                logger.info(
                    "order_created",
                    order_id=order.id,
                    order_number=order.order_number,
                    user_id=principal.id,
                    total_amount=str(order.total_amount),
                )
                return to_order_response(order)

        ecomm_orders_created_total.labels(outcome="conflict").inc()
        raise ConflictError("Could not allocate an order number, please retry")

    async def _place_order(
        self,
        db: AsyncSession,
        principal: Principal,
        address_id: int,
        merged: Dict[int, int],
        notes: Optional[str],
    ) -> Order:
        address = await AddressRepository.get_by_id(db, address_id)
        if not address or address.user_id != principal.id:
            raise InvalidAddressError("Address not found")

        subtotal = Decimal("0")
        discount = Decimal("0")
        lines = []
        # Fixed lock order across concurrent checkouts
        for product_id, quantity in sorted(merged.items()):
            product = await ProductRepository.get_by_id(db, product_id, for_update=True)
            if product is None or not product.is_active:
                raise ProductUnavailableError(f"Product {product_id} is no longer available")
            if product.availability != AVAILABILITY_IN_STOCK:
                raise ProductUnavailableError(f'Product "{product.title}" is out of stock')
            if quantity > product.stock_quantity:
                raise InsufficientStockError(
                    f'Insufficient stock for "{product.title}". Only {product.stock_quantity} available'
                )

            unit_price = Decimal(product.effective_price).quantize(CENTS)
            subtotal += unit_price * quantity
            if product.sale_price is not None:
                discount += (Decimal(product.price) - Decimal(product.sale_price)) * quantity

            lines.append(
                OrderItem(
                    product_id=product.id,
                    quantity=quantity,
                    unit_price=unit_price,
                    product_snapshot={
                        "title": product.title,
                        "sku": product.sku,
                        "price": str(product.price),
                        "sale_price": str(product.sale_price) if product.sale_price is not None else None,
                    },
                )
            )

        now = self._clock()
        sequence = await OrderRepository.next_order_sequence(db, now.year, settings.ORDER_NUMBER_PREFIX)
        total = subtotal.quantize(CENTS)
        order = Order(
            order_number=format_order_number(settings.ORDER_NUMBER_PREFIX, now.year, sequence),
            user_id=principal.id,
            address_id=address.id,
            status=OrderStatus.PENDING.value,
            subtotal=total,
            discount=discount.quantize(CENTS),
            total_amount=total,
            notes=notes,
            ordered_at=now,
            items=lines,
        )
        await OrderRepository.add_order(db, order)

        # Soft reservation: stock leaves the shelf when the order is placed
        for product_id, quantity in sorted(merged.items()):
            if not await ProductRepository.adjust_stock(db, product_id, -quantity):
                raise InsufficientStockError(f"Insufficient stock for product {product_id}")

        await db.refresh(order)
        return order

    # ------------------------------------------------------------------
    # Cancellation and administrative transitions
    # ------------------------------------------------------------------

    async def cancel_order(
        self,
        order_id: int,
        principal: Principal,
        reason: Optional[str] = None,
    ) -> CancelResult:
        async with self._unit_of_work() as uow:
            order = await OrderRepository.get_order(uow.session, order_id, for_update=True)
            if not order:
                raise NotFoundError("Order not found")
            if order.user_id != principal.id:
                raise ForbiddenError("You do not have access to this order")

            result = await self._cancel_locked(uow.session, order, reason or settings.DEFAULT_CANCEL_REASON)
            await uow.commit()

        logger.info(
            "order_cancelled",
            order_id=order_id,
            cancelled_by=principal.id,
            refund_owed=result.refund_status is not None,
        )
        return result

    async def _cancel_locked(self, db: AsyncSession, order: Order, reason: str) -> CancelResult:
        if order.status not in [s.value for s in CANCELLABLE_STATUSES]:
            raise StateError(f"Order cannot be cancelled. Order is already {order.status.lower()}")

        swapped = await OrderRepository.transition_status(
            db,
            order.id,
            CANCELLABLE_STATUSES,
            status=OrderStatus.CANCELLED.value,
            cancelled_at=self._clock(),
            notes=append_note(order.notes, f"Cancellation reason: {reason}"),
        )
        if not swapped:
            raise StateError("Order status changed while cancelling, please retry")

        for item in order.items:
            if not await ProductRepository.adjust_stock(db, item.product_id, item.quantity):
                raise InternalError(f"Could not restore stock for product {item.product_id}")

        refund_status = None
        payment = await PaymentRepository.get_by_order_id(db, order.id, for_update=True)
        if payment and payment.status == PaymentStatus.SUCCESS.value:
            # Marks the refund as owed; money movement happens with the gateway later
            if await PaymentRepository.transition_status(
                db, payment.id, (PaymentStatus.SUCCESS,), status=PaymentStatus.REFUNDED.value
            ):
                refund_status = settings.REFUND_NOTE

        ecomm_order_cancellations_total.labels(refund="owed" if refund_status else "none").inc()
        return CancelResult(order_id=order.id, status=OrderStatus.CANCELLED.value, refund_status=refund_status)

    async def update_order_status(
        self,
        order_id: int,
        principal: Principal,
        status: OrderStatus,
        tracking_number: Optional[str] = None,
        tracking_url: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> OrderResponse:
        if not principal.is_admin:
            raise ForbiddenError("Admin access required")
        status = OrderStatus(status)

        async with self._unit_of_work() as uow:
            db = uow.session
            order = await OrderRepository.get_order(db, order_id, for_update=True)
            if not order:
                raise NotFoundError("Order not found")
            previous = order.status

            if status == OrderStatus.CANCELLED:
                await self._cancel_locked(db, order, notes or "Cancelled by administrator")
            else:
                allowed = ADMIN_TRANSITIONS[OrderStatus(order.status)]
                if status not in allowed:
                    raise StateError(
                        f"Cannot transition from {order.status} to {status.value}. "
                        f"Allowed: {', '.join(s.value for s in allowed) or 'None'}"
                    )

                now = self._clock()
                values: Dict[str, Any] = {"status": status.value, STATUS_TIMESTAMPS[status]: now}
                if status == OrderStatus.SHIPPED:
                    if tracking_number:
                        values["tracking_number"] = tracking_number
                    if tracking_url:
                        values["tracking_url"] = str(tracking_url)
                if notes:
                    values["notes"] = append_note(order.notes, f"[{now.isoformat()}] {notes}")

                if not await OrderRepository.transition_status(db, order.id, (order.status,), **values):
                    raise StateError("Order status changed concurrently, please retry")

            await db.refresh(order)
            payment = await PaymentRepository.get_by_order_id(db, order.id)
            response = to_order_response(order, payment)
            await uow.commit()

        logger.info("order_status_updated", order_id=order_id, previous=previous, status=status.value, admin_id=principal.id)
        return response

    # ------------------------------------------------------------------
    # Payment intent
    # ------------------------------------------------------------------

    async def create_payment_intent(self, order_id: int, principal: Principal) -> PaymentIntentResponse:
        async with self._unit_of_work() as uow:
            order, payment = await self._load_payable_order(uow.session, order_id, principal)
            if payment is not None and payment.gateway_order_id:
                ecomm_payment_intents_total.labels(result="reused").inc()
                return self._intent_response(order, payment)
            amount_minor = to_minor_units(order.total_amount)
            receipt = order.order_number
            notes = {"order_id": str(order.id), "user_id": str(principal.id), "order_number": order.order_number}

        # Gateway call sits between the two units of work
        gateway_order = await self._gateway.create_order(
            amount=amount_minor, currency=self._currency, receipt=receipt, notes=notes
        )

        for _ in range(2):
            try:
                async with self._unit_of_work() as uow:
                    db = uow.session
                    order, payment = await self._load_payable_order(db, order_id, principal, lock=True)

                    if payment is None:
                        payment = await PaymentRepository.create_payment(
                            db,
                            Payment(
                                order_id=order.id,
                                gateway_order_id=gateway_order.id,
                                amount=order.total_amount,
                                currency=self._currency,
                                status=PaymentStatus.PENDING.value,
                            ),
                        )
                    elif not payment.gateway_order_id:
                        attached = await PaymentRepository.attach_gateway_order(
                            db,
                            payment.id,
                            gateway_order.id,
                            amount=order.total_amount,
                            currency=self._currency,
                            status=PaymentStatus.PENDING.value,
                        )
                        payment = await PaymentRepository.get_by_id(db, payment.id)
                        if not attached:
                            self._log_orphan(gateway_order.id, payment)
                    else:
                        self._log_orphan(gateway_order.id, payment)

                    response = self._intent_response(order, payment)
                    await uow.commit()
            except IntegrityError:
                # Lost the race to insert the payment row; the winner's row is fetched next round
                logger.info("payment_row_exists", order_id=order_id)
                continue

            result = "created" if response.gateway_order_id == gateway_order.id else "reused"
            ecomm_payment_intents_total.labels(result=result).inc()
            logger.info("payment_intent_ready", order_id=order_id, gateway_order_id=response.gateway_order_id, result=result)
            return response

        raise ConflictError("Payment for this order is being created, please retry")

    async def _load_payable_order(
        self,
        db: AsyncSession,
        order_id: int,
        principal: Principal,
        lock: bool = False,
    ) -> Tuple[Order, Optional[Payment]]:
        order = await OrderRepository.get_order(db, order_id, for_update=lock)
        if not order:
            raise NotFoundError("Order not found")
        if order.user_id != principal.id:
            raise ForbiddenError("You do not have access to this order")
        if order.status != OrderStatus.PENDING.value:
            raise StateError(f"Cannot create payment for order with status {order.status}")
        payment = await PaymentRepository.get_by_order_id(db, order.id, for_update=lock)
        return order, payment

    def _intent_response(self, order: Order, payment: Payment) -> PaymentIntentResponse:
        return PaymentIntentResponse(
            gateway_order_id=payment.gateway_order_id,
            amount=to_minor_units(payment.amount),
            currency=payment.currency,
            total_amount=payment.amount,
            order_id=order.id,
            order_number=order.order_number,
            key_id=getattr(self._gateway, "key_id", ""),
        )

    @staticmethod
    def _log_orphan(gateway_order_id: str, payment: Payment) -> None:
        logger.warning(
            "gateway_order_orphaned",
            orphaned=gateway_order_id,
            kept=payment.gateway_order_id,
            payment_id=payment.id,
        )

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def reconcile_payment(
        self,
        callback: GatewayCallback,
        principal: Optional[Principal] = None,
        details: Optional[PaymentMethodDetails] = None,
    ) -> ReconcileResult:
        """Apply a signed checkout callback. Signature is checked before anything is read."""
        try:
            PaymentService.verify_callback(callback, self._key_secret)
        except AppError:
            ecomm_payment_reconciliations_total.labels(outcome="invalid_signature").inc()
            raise

        if details is None:
            details = await self._fetch_method_details(callback.gateway_payment_id)

        async with self._unit_of_work() as uow:
            result = await self._apply_capture(
                uow.session,
                callback.gateway_order_id,
                callback.gateway_payment_id,
                callback.signature,
                details,
                principal,
            )
            await uow.commit()

        await self._after_capture(result)
        return result

    async def _fetch_method_details(self, gateway_payment_id: str) -> PaymentMethodDetails:
        try:
            entity = await self._gateway.fetch_payment(gateway_payment_id)
        except GatewayError as e:
            # Metadata only; the signed callback is enough to settle the payment
            logger.warning("payment_details_unavailable", gateway_payment_id=gateway_payment_id, error=e.message)
            return PaymentMethodDetails()
        return extract_method_details(entity)

    async def _apply_capture(
        self,
        db: AsyncSession,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: Optional[str],
        details: PaymentMethodDetails,
        principal: Optional[Principal],
    ) -> ReconcileResult:
        found = await PaymentService.find_for_capture(db, gateway_order_id)

        order = await OrderRepository.get_order(db, found.order_id, for_update=True)
        if principal is not None and order.user_id != principal.id and not principal.is_admin:
            raise ForbiddenError("You do not have access to this order")
        payment = await PaymentRepository.get_by_id(db, found.id, for_update=True)

        now = self._clock()
        order_cancelled = order.status == OrderStatus.CANCELLED.value
        outcome = await PaymentService.apply_capture(
            db,
            payment,
            gateway_payment_id,
            signature,
            details,
            paid_at=now,
            refund_owed=order_cancelled,
        )

        notification = None
        if outcome == OUTCOME_CONFIRMED and order.status == OrderStatus.PENDING.value:
            if await OrderRepository.transition_status(
                db,
                order.id,
                (OrderStatus.PENDING,),
                status=OrderStatus.CONFIRMED.value,
                confirmed_at=now,
            ):
                notification = self._confirmation_payload(order)

        if order_cancelled and outcome != OUTCOME_CONFIRMED:
            logger.warning("capture_after_cancellation", order_id=order.id, gateway_payment_id=gateway_payment_id)

        await db.refresh(order)
        payment = await PaymentRepository.get_by_id(db, payment.id)
        return ReconcileResult(
            payment_id=payment.id,
            order_id=order.id,
            order_number=order.order_number,
            status=payment.status,
            order_status=order.status,
            amount=payment.amount,
            outcome=outcome,
            notification=notification,
        )

    async def _after_capture(self, result: ReconcileResult) -> None:
        ecomm_payment_reconciliations_total.labels(outcome=result.outcome).inc()
        logger.info(
            "payment_reconciled",
            payment_id=result.payment_id,
            order_id=result.order_id,
            outcome=result.outcome,
            status=result.status,
        )
        if result.notification is not None:
            await self._notify("order.confirmed", result.notification)

    @staticmethod
    def _confirmation_payload(order: Order) -> Dict[str, Any]:
        return {
            "order_id": order.id,
            "order_number": order.order_number,
            "user_id": order.user_id,
            "total_amount": str(order.total_amount),
            "items": [
                {
                    "product_id": item.product_id,
                    "title": (item.product_snapshot or {}).get("title"),
                    "quantity": item.quantity,
                    "unit_price": str(item.unit_price),
                }
                for item in order.items
            ],
        }

    async def _notify(self, event_type: str, payload: Dict[str, Any]) -> None:
        try:
            await self._notifier.publish(event_type, payload)
        except Exception as e:
            # The ledger change is already committed
            logger.warning("notification_failed", event_type=event_type, error=repr(e))

    # ------------------------------------------------------------------
    # Gateway webhooks
    # ------------------------------------------------------------------

    async def handle_gateway_event(self, body: bytes, signature: Optional[str]) -> str:
        """Process a signed gateway webhook and return the outcome."""
        try:
            PaymentService.verify_webhook(body, signature, self._webhook_secret)
        except AppError:
            ecomm_payment_reconciliations_total.labels(outcome="invalid_signature").inc()
            raise

        try:
            event = json.loads(body)
        except ValueError:
            raise ValidationError("Malformed webhook payload")
        if not isinstance(event, dict):
            raise ValidationError("Malformed webhook payload")
        event_type = event.get("event")
        payload = event.get("payload") or {}

        if event_type == "payment.captured":
            entity = _event_entity(payload, "payment", "id", "order_id")
            try:
                async with self._unit_of_work() as uow:
                    result = await self._apply_capture(
                        uow.session,
                        entity["order_id"],
                        entity["id"],
                        None,
                        extract_method_details(entity),
                        None,
                    )
                    await uow.commit()
            except NotFoundError:
                logger.error("webhook_payment_not_found", gateway_order_id=entity.get("order_id"))
                return OUTCOME_IGNORED
            await self._after_capture(result)
            return result.outcome

        if event_type == "payment.failed":
            entity = _event_entity(payload, "payment", "order_id")
            async with self._unit_of_work() as uow:
                payment = await PaymentRepository.get_by_gateway_order_id(uow.session, entity.get("order_id"))
                if not payment:
                    logger.error("webhook_payment_not_found", gateway_order_id=entity.get("order_id"))
                    return OUTCOME_IGNORED
                outcome = await PaymentService.apply_failure(uow.session, payment, entity)
                await uow.commit()
            ecomm_payment_reconciliations_total.labels(outcome=outcome).inc()
            logger.info("payment_failed", payment_id=payment.id, outcome=outcome)
            return outcome

        if event_type == "refund.created":
            entity = _event_entity(payload, "refund", "payment_id", "amount")
            refunded_minor = _refund_amount(entity)
            async with self._unit_of_work() as uow:
                payment = await PaymentRepository.get_by_gateway_payment_id(uow.session, entity.get("payment_id"))
                if not payment:
                    logger.error("webhook_payment_not_found", gateway_payment_id=entity.get("payment_id"))
                    return OUTCOME_IGNORED
                outcome = await PaymentService.apply_refund(uow.session, payment, refunded_minor)
                await uow.commit()
            ecomm_payment_reconciliations_total.labels(outcome=outcome).inc()
            logger.info("payment_refund_recorded", payment_id=payment.id, outcome=outcome)
            return outcome

        logger.info("webhook_event_ignored", event_type=event_type)
        return OUTCOME_IGNORED
