from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProductCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    sku: Optional[str] = Field(default=None, max_length=64)
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    sale_price: Optional[Decimal] = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    stock_quantity: int = Field(default=0, ge=0)
    availability: str = "IN_STOCK"
    is_active: bool = True


class ProductResponse(BaseModel):
    id: int
    title: str
    sku: Optional[str]
    price: Decimal
    sale_price: Optional[Decimal]
    stock_quantity: int
    availability: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)
