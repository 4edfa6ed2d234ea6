from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from .models import OrderStatus


class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0, le=100)


class OrderCreate(BaseModel):
    address_id: int
    # Emptiness is reported by the controller as an empty cart
    items: List[OrderItemCreate] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=1000)


class OrderCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = Field(default=None, max_length=100)
    tracking_url: Optional[HttpUrl] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class OrderListQuery(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=50)
    status: Optional[OrderStatus] = None
    sort: Literal["newest", "oldest"] = "newest"


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    product_snapshot: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentSummary(BaseModel):
    status: str
    method: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    id: int
    order_number: str
    user_id: int
    address_id: int
    status: str
    subtotal: Decimal
    discount: Decimal
    total_amount: Decimal
    notes: Optional[str]
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    ordered_at: datetime
    confirmed_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    items: List[OrderItemResponse]
    payment: Optional[PaymentSummary] = None

    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    pagination: Pagination


class OrderCancelResponse(BaseModel):
    order_id: int
    status: str
    refund_status: Optional[str] = None
