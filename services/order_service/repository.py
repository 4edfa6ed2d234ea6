from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from services.payment_service.models import Payment
from .models import Order, OrderNumberSequence, OrderStatus


class OrderRepository:
    """Order persistence. Methods flush but never commit; units of work own commits."""

    @staticmethod
    async def add_order(db: AsyncSession, order: Order) -> Order:
        db.add(order)
        await db.flush()
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int, for_update: bool = False) -> Optional[Order]:
        stmt = select(Order).where(Order.id == order_id)
        if for_update:
            # Serializes cancellation against payment confirmation per order
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def transition_status(
        db: AsyncSession,
        order_id: int,
        from_statuses: Iterable[str],
        **values,
    ) -> bool:
        """Compare-and-swap on status. Returns False when the order has moved on."""
        stmt = (
            update(Order)
            .where(Order.id == order_id)
            .where(Order.status.in_([OrderStatus(s).value for s in from_statuses]))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def next_order_sequence(db: AsyncSession, year: int, prefix: str) -> int:
        """
        Issue the next per-year sequence value.

        The increment is a single UPDATE, so concurrent creators queue on the
        counter row. The first order of a year seeds the row from the year's
        existing orders; two creators racing to seed collide on the primary key.
        """
        result = await db.execute(
            update(OrderNumberSequence)
            .where(OrderNumberSequence.year == year)
            .values(last_value=OrderNumberSequence.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return await db.scalar(
                select(OrderNumberSequence.last_value).where(OrderNumberSequence.year == year)
            )

        existing = await db.scalar(
            select(func.count(Order.id)).where(Order.order_number.like(f"{prefix}-{year}-%"))
        )
        value = (existing or 0) + 1
        db.add(OrderNumberSequence(year=year, last_value=value))
        await db.flush()
        return value

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: int,
        status: Optional[str] = None,
        newest_first: bool = True,
        page: int = 1,
        limit: int = 10,
    ):
        where = [Order.user_id == user_id]
        if status:
            where.append(Order.status == status)
        return await OrderRepository._paginate(db, where, newest_first, page, limit)

    @staticmethod
    async def list_all(
        db: AsyncSession,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        newest_first: bool = True,
        page: int = 1,
        limit: int = 20,
    ):
        where = []
        if status:
            where.append(Order.status == status)
        if payment_status:
            where.append(
                Order.id.in_(select(Payment.order_id).where(Payment.status == payment_status))
            )
        return await OrderRepository._paginate(db, where, newest_first, page, limit)

    @staticmethod
    async def _paginate(db: AsyncSession, where: list, newest_first: bool, page: int, limit: int):
        ordering = Order.ordered_at.desc() if newest_first else Order.ordered_at.asc()
        stmt = (
            select(Order)
            .where(*where)
            .order_by(ordering, Order.id.desc() if newest_first else Order.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await db.execute(stmt)
        total = await db.scalar(select(func.count(Order.id)).where(*where))
        return result.scalars().all(), total or 0
