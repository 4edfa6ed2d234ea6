import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.sql import func

from shared.config.database import Base


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


# Statuses a failure event may move to FAILED
CONFIRMABLE_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PROCESSING)

# A capture is authoritative: a declined earlier attempt on the same gateway
# order does not block a later successful one
CAPTURABLE_STATUSES = CONFIRMABLE_STATUSES + (PaymentStatus.FAILED,)

# Money has been captured; a repeated capture callback is a replay
SETTLED_STATUSES = (PaymentStatus.SUCCESS, PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    # At most one payment per order
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, unique=True)

    # Idempotency anchor: written once, never changed afterwards
    gateway_order_id = Column(String(64), nullable=True, unique=True)
    gateway_payment_id = Column(String(64), nullable=True, index=True)
    gateway_signature = Column(String(256), nullable=True)

    # money => NUMERIC, not FLOAT
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)

    method = Column(String(30), nullable=True)
    card_last4 = Column(String(4), nullable=True)
    card_network = Column(String(30), nullable=True)
    bank_name = Column(String(60), nullable=True)
    vpa = Column(String(100), nullable=True)
    wallet_name = Column(String(60), nullable=True)

    failure_reason = Column(String(255), nullable=True)
    failure_code = Column(String(60), nullable=True)

    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
