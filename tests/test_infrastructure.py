import json

import httpx
import pytest
from fastapi import Request
from sqlalchemy import select

from conftest import add_row, get_stock
from services.orchestrator.lifecycle import append_note, merge_items
from services.orchestrator.unit_of_work import UnitOfWork
from services.order_service.schemas import OrderItemCreate
from services.product_service.models import Product
from services.product_service.repository import ProductRepository
from shared.exceptions import EmptyCartError
from shared.notifications import HttpOrderNotifier, LoggingOrderNotifier, build_notifier
from shared.security import create_access_token, user_id_or_ip


class TestUnitOfWork:
    async def test_commit_persists(self, session_factory, products):
        board, _ = products
        async with UnitOfWork(session_factory) as uow:
            assert await ProductRepository.adjust_stock(uow.session, board.id, -2)
            await uow.commit()
        assert await get_stock(session_factory, board.id) == 8

    async def test_exit_without_commit_rolls_back(self, session_factory, products):
        board, _ = products
        async with UnitOfWork(session_factory) as uow:
            await ProductRepository.adjust_stock(uow.session, board.id, -2)
        assert await get_stock(session_factory, board.id) == 10

    async def test_exception_rolls_back(self, session_factory, products):
        board, _ = products
        with pytest.raises(RuntimeError):
            async with UnitOfWork(session_factory) as uow:
                await ProductRepository.adjust_stock(uow.session, board.id, -2)
                raise RuntimeError("boom")
        assert await get_stock(session_factory, board.id) == 10


class TestStockAdjustment:
    async def test_cannot_go_negative(self, session_factory):
        product = await add_row(session_factory, Product(title="Jumper Wires", price=10, stock_quantity=1))
        async with UnitOfWork(session_factory) as uow:
            assert not await ProductRepository.adjust_stock(uow.session, product.id, -2)
            assert await ProductRepository.adjust_stock(uow.session, product.id, -1)
            await uow.commit()
        assert await get_stock(session_factory, product.id) == 0

    async def test_listing_hides_inactive(self, session_factory, products):
        await add_row(session_factory, Product(title="Retired", price=5, stock_quantity=0, is_active=False))
        async with session_factory() as session:
            titles = [p.title for p in await ProductRepository.get_all_products(session)]
            everything = (await session.execute(select(Product))).scalars().all()
        assert "Retired" not in titles
        assert len(everything) == 3


class TestHelpers:
    def test_merge_items(self):
        merged = merge_items(
            [
                OrderItemCreate(product_id=2, quantity=1),
                OrderItemCreate(product_id=1, quantity=2),
                OrderItemCreate(product_id=2, quantity=3),
            ]
        )
        assert merged == {1: 2, 2: 4}

    def test_merge_items_empty(self):
        with pytest.raises(EmptyCartError):
            merge_items([])

    def test_append_note(self):
        assert append_note(None, "first") == "first"
        assert append_note("first", "second") == "first\n\nsecond"


class TestNotifiers:
    async def test_http_notifier_posts_event(self):
        seen = {}

        def handler(request):
            seen["key"] = request.headers["X-Internal-API-Key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(202)

        notifier = HttpOrderNotifier(
            "http://notify.test/events", api_key="internal", transport=httpx.MockTransport(handler)
        )
        await notifier.publish("order.confirmed", {"order_id": 7})

        assert seen["key"] == "internal"
        assert seen["body"] == {"type": "order.confirmed", "payload": {"order_id": 7}}

    async def test_http_notifier_swallows_failures(self):
        def handler(request):
            return httpx.Response(500)

        notifier = HttpOrderNotifier("http://notify.test/events", transport=httpx.MockTransport(handler))
        await notifier.publish("order.confirmed", {"order_id": 7})

    def test_build_notifier(self, monkeypatch):
        monkeypatch.setattr("shared.notifications.notifier.NOTIFICATION_URL", "")
        assert isinstance(build_notifier(), LoggingOrderNotifier)

        monkeypatch.setattr("shared.notifications.notifier.NOTIFICATION_URL", "http://notify.test/events")
        notifier = build_notifier()
        assert isinstance(notifier, HttpOrderNotifier)
        assert notifier.url == "http://notify.test/events"


class TestRateLimitKey:
    @staticmethod
    def request_with(headers):
        scope = {
            "type": "http",
            "method": "POST",
            "path": "/payments/verify",
            "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
            "client": ("10.0.0.7", 5123),
        }
        return Request(scope)

    def test_authenticated_caller_is_keyed_by_subject(self):
        token = create_access_token({"sub": "42"})
        assert user_id_or_ip(self.request_with({"Authorization": f"Bearer {token}"})) == "user:42"

    def test_invalid_token_falls_back_to_ip(self):
        assert user_id_or_ip(self.request_with({"Authorization": "Bearer nope"})) == "ip:10.0.0.7"

    def test_anonymous_caller_is_keyed_by_ip(self):
        assert user_id_or_ip(self.request_with({})) == "ip:10.0.0.7"
