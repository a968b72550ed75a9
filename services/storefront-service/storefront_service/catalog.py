from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from .cache import FallbackCache
from .errors import NotFoundError, ServiceUnavailableError
from .notices import ConnectionState, NoticeBoard
from .remote_client import RemoteClient
from .schemas import FoodItem, OrderItem, Shop

logger = logging.getLogger("storefront-service.catalog")


class CatalogStore:
    """Shops and food items, served from the cache while the API is down."""

    def __init__(
        self,
        remote: RemoteClient,
        cache: FallbackCache,
        notices: NoticeBoard,
        connection: ConnectionState | None = None,
    ):
        self._remote = remote
        self._cache = cache
        self._connection = connection or ConnectionState(notices)

    @property
    def degraded(self) -> bool:
        return self._connection.degraded

    async def fetch_shops(self) -> List[Shop]:
        try:
            shops = await self._remote.list_shops()
        except ServiceUnavailableError:
            self._connection.mark_degraded()
            return self._cache.list("shops")
        self._connection.mark_online()
        self._cache.replace_all("shops", shops)
        return shops

    async def fetch_food_items(self, shop_id: Optional[int] = None) -> List[FoodItem]:
        try:
            items = await self._remote.list_food_items(shop_id)
        except ServiceUnavailableError:
            self._connection.mark_degraded()
            cached = self._cache.list("foodItems")
            if shop_id is None:
                return cached
            return [item for item in cached if item.shop_id == shop_id]
        self._connection.mark_online()
        for item in items:
            self._cache.put("foodItems", item)
        return items

    async def fetch_food_item(self, food_id: int) -> FoodItem:
        try:
            item = await self._remote.get_food_item(food_id)
        except ServiceUnavailableError:
            self._connection.mark_degraded()
            cached = self._cache.get("foodItems", food_id)
            if cached is None:
                raise NotFoundError(f"Food item {food_id} not found") from None
            return cached
        self._connection.mark_online()
        self._cache.put("foodItems", item)
        return item

    def reserve_stock(self, items: Iterable[OrderItem]) -> None:
        """Take ordered quantities out of cached stock, never below zero."""
        self._adjust_stock(items, sign=-1)

    def release_stock(self, items: Iterable[OrderItem]) -> None:
        self._adjust_stock(items, sign=1)

    def _adjust_stock(self, items: Iterable[OrderItem], sign: int) -> None:
        for line in items:
            if line.food_id is None:
                continue
            food = self._cache.get("foodItems", line.food_id)
            if food is None:
                logger.debug("No cached food item %s; stock left untouched", line.food_id)
                continue
            quantity = max(0, food.quantity + sign * line.quantity)
            self._cache.put("foodItems", food.model_copy(update={"quantity": quantity}))
