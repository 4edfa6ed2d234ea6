import pytest

from conftest import get_order_row, get_payment_row, get_stock, place_order, place_paid_order
from services.order_service.models import OrderStatus
from services.order_service.schemas import OrderItemCreate
from shared.config.settings import DEFAULT_CANCEL_REASON, REFUND_NOTE
from shared.exceptions import ForbiddenError, NotFoundError, StateError


class TestCancelPendingOrder:
    async def test_restores_stock(self, controller, session_factory, customer, address, products):
        board, _ = products
        order = await place_order(controller, customer, address, board, quantity=3)
        assert await get_stock(session_factory, board.id) == 7

        result = await controller.cancel_order(order.id, customer, "Changed my mind")

        assert result.status == "CANCELLED"
        assert result.refund_status is None
        assert await get_stock(session_factory, board.id) == 10

        stored = await get_order_row(session_factory, order.id)
        assert stored.status == "CANCELLED"
        assert stored.cancelled_at is not None
        assert stored.notes == "Cancellation reason: Changed my mind"

    async def test_default_reason(self, controller, session_factory, customer, address, products):
        board, _ = products
        order = await place_order(controller, customer, address, board)
        await controller.cancel_order(order.id, customer)

        stored = await get_order_row(session_factory, order.id)
        assert stored.notes == f"Cancellation reason: {DEFAULT_CANCEL_REASON}"

    async def test_reason_is_appended_to_existing_notes(self, controller, session_factory, customer, address, products):
        board, _ = products
        order = await controller.create_order(
            customer, address.id, [OrderItemCreate(product_id=board.id, quantity=1)], notes="Gift wrap"
        )
        await controller.cancel_order(order.id, customer, "Ordered twice")

        stored = await get_order_row(session_factory, order.id)
        assert stored.notes == "Gift wrap\n\nCancellation reason: Ordered twice"


class TestCancelPaidOrder:
    async def test_marks_payment_refunded(self, controller, session_factory, customer, address, products):
        board, _ = products
        order, _ = await place_paid_order(controller, customer, address, board, quantity=2)
        assert (await get_order_row(session_factory, order.id)).status == "CONFIRMED"

        result = await controller.cancel_order(order.id, customer)

        assert result.status == "CANCELLED"
        assert result.refund_status == REFUND_NOTE
        assert (await get_payment_row(session_factory, order.id)).status == "REFUNDED"
        assert await get_stock(session_factory, board.id) == 10

    async def test_second_cancel_is_rejected(self, controller, session_factory, customer, address, products):
        board, _ = products
        order, _ = await place_paid_order(controller, customer, address, board, quantity=2)
        await controller.cancel_order(order.id, customer)

        with pytest.raises(StateError) as exc:
            await controller.cancel_order(order.id, customer)

        assert "already cancelled" in exc.value.message
        assert await get_stock(session_factory, board.id) == 10
        assert (await get_payment_row(session_factory, order.id)).status == "REFUNDED"


class TestCancelGuards:
    async def test_other_customer_is_forbidden(self, controller, session_factory, customer, other_customer, address, products):
        board, _ = products
        order = await place_order(controller, customer, address, board)

        with pytest.raises(ForbiddenError):
            await controller.cancel_order(order.id, other_customer)
        assert (await get_order_row(session_factory, order.id)).status == "PENDING"

    async def test_unknown_order(self, controller, customer):
        with pytest.raises(NotFoundError):
            await controller.cancel_order(12345, customer)

    @pytest.mark.parametrize("target", [OrderStatus.PROCESSING, OrderStatus.SHIPPED])
    async def test_orders_in_fulfilment_cannot_be_cancelled(
        self, controller, session_factory, customer, admin, address, products, target
    ):
        board, _ = products
        order, _ = await place_paid_order(controller, customer, address, board)
        await controller.update_order_status(order.id, admin, OrderStatus.PROCESSING)
        if target == OrderStatus.SHIPPED:
            await controller.update_order_status(order.id, admin, OrderStatus.SHIPPED)

        with pytest.raises(StateError):
            await controller.cancel_order(order.id, customer)
        assert await get_stock(session_factory, board.id) == 9
        assert (await get_payment_row(session_factory, order.id)).status == "SUCCESS"
