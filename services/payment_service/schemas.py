from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PaymentIntentCreate(BaseModel):
    order_id: int


class PaymentIntentResponse(BaseModel):
    gateway_order_id: str
    amount: int  # minor units (paise)
    currency: str
    total_amount: Decimal
    order_id: int
    order_number: str
    key_id: str


class PaymentVerify(BaseModel):
    """Checkout callback, posted by the client with the gateway's field names."""
    gateway_order_id: str = Field(alias="razorpay_order_id", min_length=1)
    gateway_payment_id: str = Field(alias="razorpay_payment_id", min_length=1)
    signature: str = Field(alias="razorpay_signature", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class PaymentVerifyResponse(BaseModel):
    payment_id: int
    order_id: int
    order_number: str
    status: str
    order_status: str
    amount: Decimal
    already_processed: bool = False


class PaymentResponse(BaseModel):
    id: int
    order_id: int
    gateway_order_id: Optional[str]
    gateway_payment_id: Optional[str]
    amount: Decimal
    currency: str
    status: str
    method: Optional[str]
    card_last4: Optional[str]
    card_network: Optional[str]
    bank_name: Optional[str]
    vpa: Optional[str]
    wallet_name: Optional[str]
    failure_reason: Optional[str]
    paid_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)
