from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.responses import success_response
from shared.security import Principal, require_admin
from .schemas import ProductCreate, ProductResponse
from .service import ProductService

router = APIRouter(prefix="/products", tags=["Products"])


@router.get("")
async def list_products(db: AsyncSession = Depends(get_db)):
    products = await ProductService.list_products(db)
    return success_response([ProductResponse.model_validate(p) for p in products])


@router.get("/{product_id}")
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    product = await ProductService.get_product(db, product_id)
    return success_response(ProductResponse.model_validate(product))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await ProductService.create_product(db, payload)
    return success_response(ProductResponse.model_validate(product), "Product created", 201)
