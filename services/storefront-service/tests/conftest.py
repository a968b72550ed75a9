from __future__ import annotations

import json
import re
import sqlite3
from datetime import datetime, timezone

import httpx
import pytest

from storefront_service.cache import FallbackCache
from storefront_service.catalog import CatalogStore
from storefront_service.database import apply_schema
from storefront_service.notices import ConnectionState, NoticeBoard
from storefront_service.remote_client import RemoteClient
from storefront_service.schemas import FoodItem, Order, OrderDraft, Shop, compute_total
from storefront_service.store import OrderStore


class FakeWildEatsApi:
    """In-memory stand-in for the WildEats REST API, served through MockTransport."""

    def __init__(self):
        self.online = True
        self.orders: dict[int, Order] = {}
        self.shops = [Shop(id=1, name="Campus Grill", contact_info="grill@campus.edu")]
        self.food = {
            1: FoodItem(id=1, name="Burger", price=5.0, quantity=10, shop_id=1),
            2: FoodItem(id=2, name="Fries", price=2.5, quantity=4, shop_id=1),
        }
        self.next_id = 100
        self.requests: list[tuple[str, str]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        if not self.online:
            raise httpx.ConnectError("connection refused", request=request)
        return self._route(request)

    def _route(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path

        if path == "/api/orders" and method == "GET":
            return _json([order.to_wire() for order in self.orders.values()])
        if path == "/api/orders" and method == "POST":
            return _json(self._create(request), status_code=201)
        if path == "/api/orders/my-orders":
            customer_id = int(request.url.params["userId"])
            return _json(
                [o.to_wire() for o in self.orders.values() if o.customer_id == customer_id]
            )
        if match := re.fullmatch(r"/api/orders/shop/(\d+)(?:/status/(\w+))?", path):
            shop_id, wanted = int(match.group(1)), match.group(2)
            return _json(
                [
                    o.to_wire()
                    for o in self.orders.values()
                    if o.shop_id == shop_id and (wanted is None or o.status.value == wanted)
                ]
            )
        if match := re.fullmatch(r"/api/orders/(\d+)/status", path):
            order = self.orders.get(int(match.group(1)))
            if order is None:
                return httpx.Response(404)
            status = json.loads(request.content)["status"]
            order = Order.model_validate({**order.to_wire(), "status": status})
            self.orders[order.id] = order
            return _json(order.to_wire())
        if match := re.fullmatch(r"/api/orders/(\d+)", path):
            order_id = int(match.group(1))
            order = self.orders.get(order_id)
            if order is None:
                return httpx.Response(404)
            if method == "GET":
                return _json(order.to_wire())
            if method == "PUT":
                body = json.loads(request.content)
                updated = Order.model_validate(
                    {
                        **order.to_wire(),
                        **body,
                        "id": order_id,
                        "totalPrice": body.get("totalPrice") or order.total_price,
                    }
                )
                self.orders[order_id] = updated
                return _json(updated.to_wire())
            if method == "DELETE":
                del self.orders[order_id]
                return httpx.Response(204)
        if path == "/api/shop/dashboard":
            return _json([shop.to_wire() for shop in self.shops])
        if path == "/api/food":
            return _json([item.to_wire() for item in self.food.values()])
        if match := re.fullmatch(r"/api/food/shop/(\d+)", path):
            shop_id = int(match.group(1))
            return _json([i.to_wire() for i in self.food.values() if i.shop_id == shop_id])
        if match := re.fullmatch(r"/api/food/(\d+)", path):
            item = self.food.get(int(match.group(1)))
            if item is None:
                return httpx.Response(404)
            return _json(item.to_wire())
        return httpx.Response(404)

    def _create(self, request: httpx.Request) -> dict:
        draft = OrderDraft.model_validate_json(request.content)
        if not draft.items:
            raise _Rejected("An order needs at least one item")
        self.next_id += 1
        total = draft.total_price if draft.total_price is not None else compute_total(draft.items)
        order = Order(
            id=self.next_id,
            customer_id=draft.customer_id,
            customer_name=draft.customer_name,
            shop_id=draft.shop_id,
            items=draft.items,
            total_price=total,
            notes=draft.notes,
            created_at=datetime.now(timezone.utc),
        )
        self.orders[order.id] = order
        return order.to_wire()


class _Rejected(Exception):
    pass


def _json(payload, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


def _transport(api: FakeWildEatsApi) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        try:
            return api.handler(request)
        except _Rejected as exc:
            return httpx.Response(400, json={"message": str(exc)})

    return httpx.MockTransport(handler)


@pytest.fixture()
def connection_factory(tmp_path):
    db_path = tmp_path / "fallback.db"

    def factory():
        conn = sqlite3.connect(db_path)
        conn.row_factory = sqlite3.Row
        return conn

    conn = factory()
    try:
        apply_schema(conn)
    finally:
        conn.close()
    return factory


@pytest.fixture()
def cache(connection_factory):
    return FallbackCache(connection_factory=connection_factory)


@pytest.fixture()
def api():
    return FakeWildEatsApi()


@pytest.fixture()
def remote(api):
    return RemoteClient("http://wildeats.test", transport=_transport(api))


@pytest.fixture()
def notices():
    return NoticeBoard()


@pytest.fixture()
def connection(notices):
    return ConnectionState(notices)


@pytest.fixture()
def catalog(remote, cache, notices, connection):
    return CatalogStore(remote, cache, notices, connection=connection)


@pytest.fixture()
def store(remote, cache, notices, catalog, connection):
    return OrderStore(remote, cache, notices, catalog=catalog, connection=connection)
