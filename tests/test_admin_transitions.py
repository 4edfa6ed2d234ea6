import pytest

from conftest import get_order_row, get_payment_row, get_stock, place_order, place_paid_order
from services.order_service.models import OrderStatus
from shared.exceptions import ForbiddenError, NotFoundError, StateError


class TestFulfilmentFlow:
    async def test_confirmed_order_moves_to_delivered(self, controller, session_factory, customer, admin, address, products):
        board, _ = products
        order, _ = await place_paid_order(controller, customer, address, board)

        processing = await controller.update_order_status(order.id, admin, OrderStatus.PROCESSING)
        assert processing.status == "PROCESSING"
        assert processing.processed_at is not None
        assert processing.payment.status == "SUCCESS"

        shipped = await controller.update_order_status(
            order.id,
            admin,
            OrderStatus.SHIPPED,
            tracking_number="AWB123456",
            tracking_url="https://track.example.com/AWB123456",
        )
        assert shipped.tracking_number == "AWB123456"
        assert shipped.tracking_url == "https://track.example.com/AWB123456"

        delivered = await controller.update_order_status(order.id, admin, OrderStatus.DELIVERED)
        assert delivered.status == "DELIVERED"
        assert delivered.delivered_at is not None

    async def test_admin_notes_are_timestamped_and_appended(self, controller, session_factory, customer, admin, address, products):
        board, _ = products
        order, _ = await place_paid_order(controller, customer, address, board)

        await controller.update_order_status(order.id, admin, OrderStatus.PROCESSING, notes="Packed")
        await controller.update_order_status(order.id, admin, OrderStatus.SHIPPED, notes="Handed to courier")

        notes = (await get_order_row(session_factory, order.id)).notes
        assert notes.startswith("[2026-03-15T10:30:00+00:00] Packed")
        assert notes.endswith("Handed to courier")
        assert "\n\n" in notes

    async def test_admin_can_confirm_pending_order(self, controller, customer, admin, address, products):
        board, _ = products
        order = await place_order(controller, customer, address, board)

        updated = await controller.update_order_status(order.id, admin, OrderStatus.CONFIRMED)
        assert updated.status == "CONFIRMED"
        assert updated.payment is None


class TestInvalidTransitions:
    async def test_cannot_skip_steps(self, controller, customer, admin, address, products):
        board, _ = products
        order = await place_order(controller, customer, address, board)

        with pytest.raises(StateError) as exc:
            await controller.update_order_status(order.id, admin, OrderStatus.SHIPPED)
        assert "Allowed: CONFIRMED" in exc.value.message

    async def test_delivered_is_terminal(self, controller, customer, admin, address, products):
        board, _ = products
        order, _ = await place_paid_order(controller, customer, address, board)
        for status in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            await controller.update_order_status(order.id, admin, status)

        with pytest.raises(StateError):
            await controller.update_order_status(order.id, admin, OrderStatus.SHIPPED)
        with pytest.raises(StateError):
            await controller.update_order_status(order.id, admin, OrderStatus.CANCELLED)

    async def test_customer_is_forbidden(self, controller, customer, address, products):
        board, _ = products
        order = await place_order(controller, customer, address, board)

        with pytest.raises(ForbiddenError):
            await controller.update_order_status(order.id, customer, OrderStatus.CONFIRMED)

    async def test_unknown_order(self, controller, admin):
        with pytest.raises(NotFoundError):
            await controller.update_order_status(404, admin, OrderStatus.CONFIRMED)


class TestAdminCancellation:
    async def test_runs_full_compensation(self, controller, session_factory, customer, admin, address, products):
        board, _ = products
        order, _ = await place_paid_order(controller, customer, address, board, quantity=4)

        updated = await controller.update_order_status(order.id, admin, OrderStatus.CANCELLED, notes="Fraud check")

        assert updated.status == "CANCELLED"
        assert updated.cancelled_at is not None
        assert "Cancellation reason: Fraud check" in updated.notes
        assert await get_stock(session_factory, board.id) == 10
        assert (await get_payment_row(session_factory, order.id)).status == "REFUNDED"
