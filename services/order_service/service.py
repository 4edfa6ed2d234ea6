import math
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from services.payment_service.models import Payment
from shared.exceptions import ForbiddenError, NotFoundError
from shared.security import Principal
from .models import Order
from .repository import OrderRepository
from .schemas import (
    OrderListQuery,
    OrderListResponse,
    OrderResponse,
    Pagination,
    PaymentSummary,
)


def format_order_number(prefix: str, year: int, sequence: int) -> str:
    """ORD-2026-0042 style: year-scoped sequence, zero-padded to four digits."""
    return f"{prefix}-{year}-{sequence:04d}"


def to_order_response(order: Order, payment: Optional[Payment] = None) -> OrderResponse:
    response = OrderResponse.model_validate(order)
    if payment is not None:
        response.payment = PaymentSummary.model_validate(payment)
    return response


class OrderService:
    """Read side of the order ledger. Mutations go through the lifecycle controller."""

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int, principal: Principal) -> OrderResponse:
        order = await OrderRepository.get_order(db, order_id)
        if not order:
            raise NotFoundError("Order not found")
        if order.user_id != principal.id and not principal.is_admin:
            raise ForbiddenError("You do not have access to this order")

        payment = await db.scalar(select(Payment).where(Payment.order_id == order.id))
        return to_order_response(order, payment)

    @staticmethod
    async def list_orders(
        db: AsyncSession,
        principal: Principal,
        query: OrderListQuery,
    ) -> OrderListResponse:
        orders, total = await OrderRepository.list_for_user(
            db,
            principal.id,
            status=query.status.value if query.status else None,
            newest_first=query.sort == "newest",
            page=query.page,
            limit=query.limit,
        )
        return await OrderService._build_page(db, orders, total, query.page, query.limit)

    @staticmethod
    async def list_all_orders(
        db: AsyncSession,
        status: Optional[str],
        payment_status: Optional[str],
        page: int,
        limit: int,
    ) -> OrderListResponse:
        orders, total = await OrderRepository.list_all(
            db, status=status, payment_status=payment_status, page=page, limit=limit
        )
        return await OrderService._build_page(db, orders, total, page, limit)

    @staticmethod
    async def _build_page(db: AsyncSession, orders, total: int, page: int, limit: int) -> OrderListResponse:
        payments = {}
        if orders:
            result = await db.execute(
                select(Payment).where(Payment.order_id.in_([o.id for o in orders]))
            )
            payments = {p.order_id: p for p in result.scalars().all()}

        return OrderListResponse(
            orders=[to_order_response(o, payments.get(o.id)) for o in orders],
            pagination=Pagination(
                current_page=page,
                total_pages=math.ceil(total / limit) if total else 0,
                total_items=total,
            ),
        )
