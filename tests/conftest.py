"""Pytest fixtures for the order/payment core."""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "test-key-secret")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "test-webhook-secret")

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shared.config.database import Base
from shared.exceptions import GatewayUnavailableError
from shared.security import Principal, ROLE_ADMIN
from services.customer_service.models import Address
from services.order_service.models import Order
from services.order_service.schemas import OrderItemCreate
from services.orchestrator.lifecycle import OrderLifecycleController
from services.payment_service.gateway import GatewayOrder
from services.payment_service.models import Payment
from services.payment_service.service import GatewayCallback
from services.payment_service.signature import sign_checkout
from services.product_service.models import Product

KEY_SECRET = os.environ["RAZORPAY_KEY_SECRET"]
WEBHOOK_SECRET = os.environ["RAZORPAY_WEBHOOK_SECRET"]
FIXED_NOW = datetime(2026, 3, 15, 10, 30, tzinfo=timezone.utc)


class FakeGateway:
    """Stands in for the payment gateway; records every call."""

    key_id = "rzp_test_key"

    def __init__(self):
        self.created = []
        self.fetched = []
        self.payment_entity = {"method": "card", "card": {"last4": "4242", "network": "Visa"}}
        self.fail_create = False
        self.fail_fetch = False

    async def create_order(self, amount, currency, receipt, notes=None):
        if self.fail_create:
            raise GatewayUnavailableError("Payment gateway timeout")
        self.created.append({"amount": amount, "currency": currency, "receipt": receipt, "notes": notes})
        return GatewayOrder(id=f"order_test_{len(self.created)}", amount=amount, currency=currency)

    async def fetch_payment(self, payment_id):
        self.fetched.append(payment_id)
        if self.fail_fetch:
            raise GatewayUnavailableError("Payment gateway unavailable")
        return dict(self.payment_entity, id=payment_id)


class RecordingNotifier:
    def __init__(self):
        self.events = []
        self.fail = False

    async def publish(self, event_type, payload):
        if self.fail:
            raise RuntimeError("notification backend down")
        self.events.append((event_type, payload))


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def controller(session_factory, gateway, notifier):
    return OrderLifecycleController(
        session_factory=session_factory,
        gateway=gateway,
        notifier=notifier,
        clock=lambda: FIXED_NOW,
        currency="INR",
        key_secret=KEY_SECRET,
        webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture
def customer():
    return Principal(id=1)


@pytest.fixture
def other_customer():
    return Principal(id=2)


@pytest.fixture
def admin():
    return Principal(id=99, role=ROLE_ADMIN)


async def add_row(session_factory, row):
    async with session_factory() as session:
        session.add(row)
        await session.commit()
        await session.refresh(row)
        return row


@pytest.fixture
async def address(session_factory, customer):
    return await add_row(
        session_factory,
        Address(
            user_id=customer.id,
            name="Asha Rao",
            phone="9876543210",
            line1="12 MG Road",
            city="Bengaluru",
            state="Karnataka",
            postal_code="560001",
            country="India",
        ),
    )


@pytest.fixture
async def products(session_factory):
    """Two catalog entries: a board at list price and a sensor on sale."""
    board = await add_row(
        session_factory,
        Product(title="Arduino Mega", sku="ARD-MEGA", price=Decimal("1999.00"), stock_quantity=10),
    )
    sensor = await add_row(
        session_factory,
        Product(
            title="Ultrasonic Sensor",
            sku="HC-SR04",
            price=Decimal("250.00"),
            sale_price=Decimal("199.50"),
            stock_quantity=5,
        ),
    )
    return board, sensor


async def get_stock(session_factory, product_id):
    async with session_factory() as session:
        return await session.scalar(select(Product.stock_quantity).where(Product.id == product_id))


async def get_order_row(session_factory, order_id):
    async with session_factory() as session:
        return await session.scalar(select(Order).where(Order.id == order_id))


async def get_payment_row(session_factory, order_id):
    async with session_factory() as session:
        return await session.scalar(select(Payment).where(Payment.order_id == order_id))


def checkout_callback(gateway_order_id, gateway_payment_id="pay_test_1", secret=KEY_SECRET):
    return GatewayCallback(
        gateway_order_id=gateway_order_id,
        gateway_payment_id=gateway_payment_id,
        signature=sign_checkout(gateway_order_id, gateway_payment_id, secret),
    )


async def place_order(controller, principal, address, product, quantity=1):
    return await controller.create_order(
        principal, address.id, [OrderItemCreate(product_id=product.id, quantity=quantity)]
    )


async def place_paid_order(controller, principal, address, product, quantity=1, payment_ref="pay_test_1"):
    """Create an order, open a payment intent and confirm it with a signed callback."""
    order = await place_order(controller, principal, address, product, quantity)
    intent = await controller.create_payment_intent(order.id, principal)
    await controller.reconcile_payment(checkout_callback(intent.gateway_order_id, payment_ref), principal)
    return order, intent
