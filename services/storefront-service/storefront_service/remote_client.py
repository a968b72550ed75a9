from __future__ import annotations

import logging
from typing import Any, List, Optional, Type, TypeVar

import httpx
from pydantic import ValidationError as PayloadError

from .errors import NotFoundError, ServiceUnavailableError, ValidationError
from .schemas import FoodItem, Order, OrderDraft, OrderStatus, OrderUpdate, Shop, WireModel

logger = logging.getLogger("storefront-service.remote")

ORDERS_PATH = "/api/orders"
FOOD_PATH = "/api/food"
SHOP_PATH = "/api/shop"

M = TypeVar("M", bound=WireModel)


class RemoteClient:
    """Async client for the WildEats REST API.

    Transport failures and bare 5xx answers become ServiceUnavailableError;
    answers carrying a JSON ``message`` become ValidationError.
    """

    def __init__(
        self,
        base_url: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 5.0,
    ):
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url, timeout=timeout, transport=transport
        )

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict | None = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ServiceUnavailableError(f"WildEats API not reachable: {exc}") from exc

        if response.is_success:
            if response.status_code == 204 or not response.content:
                return None
            try:
                return response.json()
            except ValueError as exc:
                raise ValidationError(
                    f"Malformed response from {path}", response.status_code
                ) from exc

        message = _structured_message(response)
        if message:
            raise ValidationError(message, response.status_code)
        if response.status_code == 404:
            raise NotFoundError(f"{path} not found")
        if response.status_code >= 500:
            raise ServiceUnavailableError(
                f"WildEats API failed ({response.status_code})"
            )
        raise ValidationError(
            f"Request rejected ({response.status_code}): {response.reason_phrase}",
            response.status_code,
        )

    # --- orders -------------------------------------------------------------

    async def list_orders(self) -> List[Order]:
        return _parse_list(Order, await self.request("GET", ORDERS_PATH))

    async def list_my_orders(self, customer_id: int) -> List[Order]:
        payload = await self.request(
            "GET", f"{ORDERS_PATH}/my-orders", params={"userId": customer_id}
        )
        return _parse_list(Order, payload)

    async def list_shop_orders(
        self, shop_id: int, status: OrderStatus | None = None
    ) -> List[Order]:
        path = f"{ORDERS_PATH}/shop/{shop_id}"
        if status is not None:
            path = f"{path}/status/{OrderStatus(status).value}"
        return _parse_list(Order, await self.request("GET", path))

    async def get_order(self, order_id: int) -> Order:
        return _parse(Order, await self.request("GET", f"{ORDERS_PATH}/{order_id}"))

    async def create_order(self, draft: OrderDraft) -> Order:
        payload = await self.request("POST", ORDERS_PATH, json=draft.to_wire())
        return _parse(Order, payload)

    async def update_order(self, order_id: int, update: OrderUpdate) -> Order:
        payload = await self.request(
            "PUT", f"{ORDERS_PATH}/{order_id}", json=update.to_wire()
        )
        return _parse(Order, payload)

    async def update_order_status(self, order_id: int, status: OrderStatus) -> Order:
        payload = await self.request(
            "PATCH",
            f"{ORDERS_PATH}/{order_id}/status",
            json={"status": OrderStatus(status).value},
        )
        return _parse(Order, payload)

    async def delete_order(self, order_id: int) -> None:
        await self.request("DELETE", f"{ORDERS_PATH}/{order_id}")

    # --- catalog ------------------------------------------------------------

    async def list_shops(self) -> List[Shop]:
        return _parse_list(Shop, await self.request("GET", f"{SHOP_PATH}/dashboard"))

    async def list_food_items(self, shop_id: Optional[int] = None) -> List[FoodItem]:
        path = FOOD_PATH if shop_id is None else f"{FOOD_PATH}/shop/{shop_id}"
        return _parse_list(FoodItem, await self.request("GET", path))

    async def get_food_item(self, food_id: int) -> FoodItem:
        return _parse(FoodItem, await self.request("GET", f"{FOOD_PATH}/{food_id}"))


def _structured_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("message"), str) and body["message"]:
        return body["message"]
    return None


def _parse(model: Type[M], payload: Any) -> M:
    try:
        return model.model_validate(payload)
    except PayloadError as exc:
        raise ValidationError(f"Malformed {model.__name__} payload: {exc}") from exc


def _parse_list(model: Type[M], payload: Any) -> List[M]:
    if not isinstance(payload, list):
        raise ValidationError(f"Expected a list of {model.__name__} entries")
    return [_parse(model, entry) for entry in payload]
