from __future__ import annotations

import itertools
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from .cache import FallbackCache
from .catalog import CatalogStore
from .errors import NotFoundError, ServiceUnavailableError
from .notices import OFFLINE_NOTICE, ConnectionState, NoticeBoard
from .remote_client import RemoteClient
from .schemas import (
    Order,
    OrderDraft,
    OrderItem,
    OrderStatus,
    OrderUpdate,
    Role,
    compute_total,
)
from .workflow import check_transition

logger = logging.getLogger("storefront-service.orders")

LOOKUP_MODES = ("lenient", "strict")
PLACEHOLDER_CUSTOMER = "Guest Customer"


def sample_orders() -> List[Order]:
    """Demo orders served when the API is down and nothing is cached yet."""
    return [
        Order(
            id=1,
            customer_name="John Doe",
            items=[
                OrderItem(name="Hamburger", quantity=1, price=8.99),
                OrderItem(name="French Fries", quantity=1, price=3.99),
                OrderItem(name="Soft Drink", quantity=1, price=3.00),
            ],
            total_price=15.98,
            status=OrderStatus.COMPLETED,
            created_at=datetime(2025, 5, 5, 8, 30, tzinfo=timezone.utc),
            origin="local",
        ),
        Order(
            id=2,
            customer_name="Jane Smith",
            items=[
                OrderItem(name="Chicken Sandwich", quantity=1, price=7.49),
                OrderItem(name="Onion Rings", quantity=1, price=3.50),
                OrderItem(name="Iced Tea", quantity=1, price=1.50),
            ],
            total_price=12.49,
            status=OrderStatus.PREPARING,
            created_at=datetime(2025, 5, 5, 9, 15, tzinfo=timezone.utc),
            origin="local",
        ),
        Order(
            id=3,
            customer_name="Michael Johnson",
            items=[
                OrderItem(name="Pizza Slice", quantity=2, price=5.99),
                OrderItem(name="Caesar Salad", quantity=1, price=6.99),
                OrderItem(name="Coffee", quantity=2, price=3.00),
            ],
            total_price=24.97,
            status=OrderStatus.READY,
            created_at=datetime(2025, 5, 5, 10, 0, tzinfo=timezone.utc),
            origin="local",
        ),
    ]


class OrderStore:
    """Working set of orders with an offline fallback.

    Every operation tries the remote API first. When the API is unreachable
    the store serves and mutates the fallback cache instead, flags itself
    ``degraded`` and posts a notice; structured API errors and illegal status
    transitions propagate to the caller.

    Overlapping requests on one order id resolve as latest-issued wins: a
    response is applied to the working set only if no newer write for the
    same id was started meanwhile. Reads never overrule a write; a read that
    returns after a newer write on an order leaves that order alone.
    """

    def __init__(
        self,
        remote: RemoteClient,
        cache: FallbackCache,
        notices: NoticeBoard,
        catalog: CatalogStore | None = None,
        lookup_mode: str = "lenient",
        connection: ConnectionState | None = None,
    ):
        if lookup_mode not in LOOKUP_MODES:
            raise ValueError(f"lookup_mode must be one of {LOOKUP_MODES}, got {lookup_mode!r}")
        self._remote = remote
        self._cache = cache
        self._notices = notices
        self._catalog = catalog
        self._lookup_mode = lookup_mode
        self._orders: Dict[int, Order] = {}
        self._connection = connection or ConnectionState(notices)
        self._sequence = itertools.count(1)
        self._latest = 0
        self._issued: Dict[int, int] = {}

    @property
    def degraded(self) -> bool:
        return self._connection.degraded

    @property
    def orders(self) -> List[Order]:
        return list(self._orders.values())

    # --- reads --------------------------------------------------------------

    async def fetch_orders(self) -> List[Order]:
        start = self._latest
        try:
            orders = await self._remote.list_orders()
        except ServiceUnavailableError:
            self._mark_degraded(OFFLINE_NOTICE)
            orders = self._offline_orders()
        else:
            self._mark_online()
            orders = self._reconcile(orders, start)
            self._cache.replace_all("orders", orders)
        self._replace_working_set(orders)
        return orders

    async def fetch_my_orders(self, customer_id: int) -> List[Order]:
        return await self._fetch_scoped(
            lambda: self._remote.list_my_orders(customer_id),
            lambda order: order.customer_id == customer_id,
        )

    async def fetch_shop_orders(
        self, shop_id: int, status: OrderStatus | None = None
    ) -> List[Order]:
        return await self._fetch_scoped(
            lambda: self._remote.list_shop_orders(shop_id, status),
            lambda order: order.shop_id == shop_id
            and (status is None or order.status == OrderStatus(status)),
        )

    async def fetch_order_by_id(self, order_id: int) -> Order:
        start = self._latest
        try:
            order = await self._remote.get_order(order_id)
        except ServiceUnavailableError:
            self._mark_degraded(OFFLINE_NOTICE)
            order = self._cache.get("orders", order_id)
        except NotFoundError:
            self._mark_online()
            order = self._cache.get("orders", order_id)
        else:
            self._mark_online()
            order = self._observe(order, start)
        if order is None:
            return self._missing_order(order_id)
        return order

    # --- writes -------------------------------------------------------------

    async def create_order(self, draft: OrderDraft) -> Order:
        try:
            order = await self._remote.create_order(draft)
        except ServiceUnavailableError:
            self._mark_degraded(f"{OFFLINE_NOTICE} Order was created offline.")
            order = self._create_locally(draft)
        else:
            self._mark_online()
            self._notices.success("Order created successfully!")
        self._begin(order.id)
        self._orders[order.id] = order
        self._cache.put("orders", order)
        logger.info("Order %s created (%s)", order.id, order.origin)
        return order

    async def update_order(self, order_id: int, update: OrderUpdate) -> Order:
        seq = self._begin(order_id)
        try:
            order = await self._remote.update_order(order_id, update)
        except ServiceUnavailableError:
            self._mark_degraded(f"{OFFLINE_NOTICE} Order was updated offline.")
            order = self._edit_locally(order_id, update)
        else:
            self._mark_online()
            self._notices.success("Order updated successfully!")
        self._settle(order_id, order, seq)
        return order

    async def update_order_status(
        self, order_id: int, new_status: OrderStatus, actor: Role
    ) -> Optional[Order]:
        new_status = OrderStatus(new_status)
        current = await self._resolve_current(order_id)
        if current is None:
            logger.info("Status update skipped, order %s not found", order_id)
            return None
        check_transition(current.status, new_status, actor)

        seq = self._begin(order_id)
        try:
            order = await self._remote.update_order_status(order_id, new_status)
        except ServiceUnavailableError:
            self._mark_degraded(OFFLINE_NOTICE)
            base = self._cache.get("orders", order_id) or current
            order = base.model_copy(update={"status": new_status})
            if new_status is OrderStatus.CANCELLED and order.origin == "local":
                self._release_stock(order.items)
            message = f"Order status updated to {new_status.value} (offline)"
        except NotFoundError:
            self._mark_online()
            logger.info("Status update skipped, order %s gone remotely", order_id)
            return None
        else:
            self._mark_online()
            message = f"Order status updated to {new_status.value}"
        self._settle(order_id, order, seq)
        self._notices.success(message)
        return order

    async def cancel_order(self, order_id: int, actor: Role) -> Optional[Order]:
        return await self.update_order_status(order_id, OrderStatus.CANCELLED, actor)

    async def delete_order(self, order_id: int) -> bool:
        self._begin(order_id)
        try:
            await self._remote.delete_order(order_id)
        except ServiceUnavailableError:
            self._mark_degraded(f"{OFFLINE_NOTICE} Order was deleted locally.")
        except NotFoundError:
            self._mark_online()
            logger.info("Order %s was already gone remotely", order_id)
        else:
            self._mark_online()
        self._orders.pop(order_id, None)
        self._cache.remove("orders", order_id)
        return True

    # --- helpers ------------------------------------------------------------

    def _mark_online(self) -> None:
        self._connection.mark_online()

    def _mark_degraded(self, message: str) -> None:
        self._connection.mark_degraded(message)

    def _begin(self, order_id: int) -> int:
        seq = next(self._sequence)
        self._issued[order_id] = seq
        self._latest = seq
        return seq

    def _superseded(self, order_id: int, start: int) -> bool:
        """True if a write on ``order_id`` was issued after a read began at ``start``."""
        return self._issued.get(order_id, 0) > start

    def _current(self, order_id: int) -> Optional[Order]:
        return self._orders.get(order_id) or self._cache.get("orders", order_id)

    def _observe(self, order: Order, start: int) -> Optional[Order]:
        if self._superseded(order.id, start):
            logger.debug("Ignoring read of order %s overtaken by a newer write", order.id)
            return self._current(order.id)
        self._orders[order.id] = order
        self._cache.put("orders", order)
        return order

    def _reconcile(
        self,
        orders: List[Order],
        start: int,
        matches: Callable[[Order], bool] = lambda order: True,
    ) -> List[Order]:
        """Swap listed orders overtaken by newer writes for what those writes left."""
        listed = [order for order in orders if not self._superseded(order.id, start)]
        seen = {order.id for order in listed}
        for order_id, seq in sorted(self._issued.items()):
            if seq <= start or order_id in seen:
                continue
            current = self._current(order_id)
            if current is not None and matches(current):
                listed.append(current)
        return listed

    def _settle(self, order_id: int, order: Order, seq: int) -> None:
        if self._issued.get(order_id) != seq:
            logger.debug("Discarding stale response for order %s", order_id)
            return
        self._orders[order.id] = order
        self._cache.put("orders", order)

    def _replace_working_set(self, orders: List[Order]) -> None:
        self._orders = {order.id: order for order in orders}

    def _offline_orders(self) -> List[Order]:
        orders = self._cache.list("orders")
        if not orders:
            orders = sample_orders()
            self._cache.replace_all("orders", orders)
        return orders

    async def _fetch_scoped(self, load, matches: Callable[[Order], bool]) -> List[Order]:
        start = self._latest
        try:
            orders = await load()
        except ServiceUnavailableError:
            self._mark_degraded(OFFLINE_NOTICE)
            orders = [order for order in self._offline_orders() if matches(order)]
        else:
            self._mark_online()
            orders = self._reconcile(orders, start, matches)
            for order in orders:
                self._cache.put("orders", order)
        self._replace_working_set(orders)
        return orders

    async def _resolve_current(self, order_id: int) -> Optional[Order]:
        order = self._current(order_id)
        if order is not None:
            return order
        start = self._latest
        try:
            order = await self._remote.get_order(order_id)
        except ServiceUnavailableError:
            self._mark_degraded(OFFLINE_NOTICE)
            return None
        except NotFoundError:
            self._mark_online()
            return None
        self._mark_online()
        return self._observe(order, start)

    def _missing_order(self, order_id: int) -> Order:
        if self._lookup_mode == "strict":
            raise NotFoundError(f"Order {order_id} not found")
        self._notices.info("Order not found. Showing a placeholder order.")
        return Order(
            id=order_id,
            customer_name=PLACEHOLDER_CUSTOMER,
            total_price=0.0,
            status=OrderStatus.PREPARING,
            origin="local",
        )

    def _create_locally(self, draft: OrderDraft) -> Order:
        order = Order(
            id=self._cache.next_id("orders"),
            customer_id=draft.customer_id,
            customer_name=draft.customer_name,
            shop_id=draft.shop_id,
            items=draft.items,
            total_price=compute_total(draft.items),
            status=OrderStatus.PREPARING,
            notes=draft.notes,
            origin="local",
        )
        self._reserve_stock(order.items)
        return order

    def _edit_locally(self, order_id: int, update: OrderUpdate) -> Order:
        current = self._current(order_id)
        if current is None:
            raise NotFoundError(f"Order {order_id} not found")
        return Order(
            id=current.id,
            customer_id=update.customer_id,
            customer_name=update.customer_name,
            shop_id=update.shop_id,
            items=update.items,
            total_price=compute_total(update.items),
            status=current.status,
            notes=update.notes,
            created_at=current.created_at,
            origin=current.origin,
        )

    def _reserve_stock(self, items: List[OrderItem]) -> None:
        if self._catalog is not None:
            self._catalog.reserve_stock(items)

    def _release_stock(self, items: List[OrderItem]) -> None:
        if self._catalog is not None:
            self._catalog.release_stock(items)
