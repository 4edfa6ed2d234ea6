import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.exceptions import ConflictError, NotFoundError
from .models import Product
from .repository import ProductRepository
from .schemas import ProductCreate

logger = structlog.get_logger(__name__)


class ProductService:

    @staticmethod
    async def create_product(db: AsyncSession, data: ProductCreate):
        product = Product(**data.model_dump())
        try:
            await ProductRepository.create_product(db, product)
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(f'A product with SKU "{data.sku}" already exists')
        await db.refresh(product)
        logger.info("product_created", product_id=product.id, sku=product.sku, stock=product.stock_quantity)
        return product

    @staticmethod
    async def list_products(db: AsyncSession):
        return await ProductRepository.get_all_products(db)

    @staticmethod
    async def get_product(db: AsyncSession, product_id: int):
        product = await ProductRepository.get_by_id(db, product_id)
        if not product or not product.is_active:
            raise NotFoundError("Product not found")
        return product
