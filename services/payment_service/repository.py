from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Payment, PaymentStatus


class PaymentRepository:

    @staticmethod
    async def create_payment(db: AsyncSession, payment: Payment) -> Payment:
        """Insert a payment row. A second row for the same order raises IntegrityError."""
        db.add(payment)
        await db.flush()
        await db.refresh(payment)
        return payment

    @staticmethod
    async def get_by_id(db: AsyncSession, payment_id: int, for_update: bool = False) -> Optional[Payment]:
        stmt = select(Payment).where(Payment.id == payment_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def get_by_order_id(db: AsyncSession, order_id: int, for_update: bool = False) -> Optional[Payment]:
        stmt = select(Payment).where(Payment.order_id == order_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def get_by_gateway_order_id(db: AsyncSession, gateway_order_id: str) -> Optional[Payment]:
        result = await db.execute(select(Payment).where(Payment.gateway_order_id == gateway_order_id))
        return result.scalars().first()

    @staticmethod
    async def get_by_gateway_payment_id(db: AsyncSession, gateway_payment_id: str) -> Optional[Payment]:
        result = await db.execute(select(Payment).where(Payment.gateway_payment_id == gateway_payment_id))
        return result.scalars().first()

    @staticmethod
    async def attach_gateway_order(db: AsyncSession, payment_id: int, gateway_order_id: str, **values) -> bool:
        """Set the gateway reference only if none is set yet."""
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id)
            .where(Payment.gateway_order_id.is_(None))
            .values(gateway_order_id=gateway_order_id, **values)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def transition_status(
        db: AsyncSession,
        payment_id: int,
        from_statuses: Iterable[str],
        **values,
    ) -> bool:
        """Compare-and-swap on status."""
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id)
            .where(Payment.status.in_([PaymentStatus(s).value for s in from_statuses]))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount == 1
