from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Product


class ProductRepository:
    """Catalog reads and stock adjustments. Never commits; the caller owns the transaction."""

    @staticmethod
    async def create_product(db: AsyncSession, product: Product) -> Product:
        db.add(product)
        await db.flush()
        return product

    @staticmethod
    async def get_all_products(db: AsyncSession, active_only: bool = True):
        stmt = select(Product).order_by(Product.id)
        if active_only:
            stmt = stmt.where(Product.is_active.is_(True))
        result = await db.execute(stmt)
        return result.scalars().all()

    @staticmethod
    async def get_by_id(db: AsyncSession, product_id: int, for_update: bool = False) -> Optional[Product]:
        stmt = select(Product).where(Product.id == product_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def adjust_stock(db: AsyncSession, product_id: int, delta: int) -> bool:
        """
        Atomically add ``delta`` to a product's stock.

        The guard lives in the UPDATE itself, so a decrement that would take
        stock below zero matches no row and returns False.
        """
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .where(Product.stock_quantity + delta >= 0)
            .values(stock_quantity=Product.stock_quantity + delta)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount == 1
