from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .cache import FallbackCache
from .catalog import CatalogStore
from .database import init_db
from .errors import ConflictError, NotFoundError, ValidationError
from .notices import ConnectionState, NoticeBoard
from .remote_client import RemoteClient
from .roles import resolve_user
from .store import OrderStore
from . import schemas


def build_remote_client() -> RemoteClient:
    base_url = os.environ.get("WILDEATS_API_URL", "http://localhost:8080")
    timeout = float(os.environ.get("REMOTE_TIMEOUT", "5.0"))
    return RemoteClient(base_url, timeout=timeout)


def build_cache() -> FallbackCache:
    init_db()
    return FallbackCache()


def get_order_store(request: Request) -> OrderStore:
    return request.app.state.order_store


def get_catalog(request: Request) -> CatalogStore:
    return request.app.state.catalog


def get_notices(request: Request) -> NoticeBoard:
    return request.app.state.notices


def current_user(
    request: Request,
    x_user_email: str = Header(default=""),
    x_user_id: Optional[int] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> schemas.User:
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    user = resolve_user({"id": x_user_id, "name": x_user_name, "email": x_user_email})
    request.app.state.cache.put("users", user)
    return user


def create_app(
    remote: RemoteClient | None = None,
    cache: FallbackCache | None = None,
    lookup_mode: str | None = None,
) -> FastAPI:
    remote = remote or build_remote_client()
    cache = cache or build_cache()
    notices = NoticeBoard()
    connection = ConnectionState(notices)
    catalog = CatalogStore(remote, cache, notices, connection=connection)
    order_store = OrderStore(
        remote,
        cache,
        notices,
        catalog=catalog,
        lookup_mode=lookup_mode or os.environ.get("ORDER_LOOKUP_MODE", "lenient").lower(),
        connection=connection,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await remote.aclose()

    app = FastAPI(
        title="Storefront Service",
        version="0.1.0",
        description="Order workflow and offline fallback for the WildEats storefront.",
        lifespan=lifespan,
    )
    app.state.cache = cache
    app.state.notices = notices
    app.state.connection = connection
    app.state.catalog = catalog
    app.state.order_store = order_store

    allowed_origins = [
        origin.strip() for origin in os.environ.get("ALLOWED_ORIGINS", "*").split(",")
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.get("/healthz", response_model=schemas.HealthResponse)
    async def healthz(request: Request) -> schemas.HealthResponse:
        return schemas.HealthResponse(status="ok", degraded=request.app.state.connection.degraded)

    @app.get("/notices", response_model=List[schemas.Notice])
    async def drain_notices(board: NoticeBoard = Depends(get_notices)) -> List[schemas.Notice]:
        return board.drain()

    @app.get("/orders", response_model=List[schemas.Order])
    async def list_orders(store: OrderStore = Depends(get_order_store)) -> List[schemas.Order]:
        return await store.fetch_orders()

    @app.get("/orders/mine", response_model=List[schemas.Order])
    async def list_my_orders(
        user: schemas.User = Depends(current_user),
        store: OrderStore = Depends(get_order_store),
    ) -> List[schemas.Order]:
        return await store.fetch_my_orders(user.id)

    @app.get("/shops/{shop_id}/orders", response_model=List[schemas.Order])
    async def list_shop_orders(
        shop_id: int,
        order_status: Optional[schemas.OrderStatus] = None,
        user: schemas.User = Depends(current_user),
        store: OrderStore = Depends(get_order_store),
    ) -> List[schemas.Order]:
        if user.role is not schemas.Role.SELLER:
            raise HTTPException(status_code=403, detail="Only sellers can view shop orders")
        return await store.fetch_shop_orders(shop_id, order_status)

    @app.get("/orders/{order_id}", response_model=schemas.Order)
    async def get_order(
        order_id: int, store: OrderStore = Depends(get_order_store)
    ) -> schemas.Order:
        try:
            return await store.fetch_order_by_id(order_id)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.message)

    @app.post("/orders", response_model=schemas.Order, status_code=status.HTTP_201_CREATED)
    async def create_order(
        payload: schemas.OrderDraft, store: OrderStore = Depends(get_order_store)
    ) -> schemas.Order:
        try:
            return await store.create_order(payload)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.message)

    @app.put("/orders/{order_id}", response_model=schemas.Order)
    async def update_order(
        order_id: int,
        payload: schemas.OrderUpdate,
        store: OrderStore = Depends(get_order_store),
    ) -> schemas.Order:
        try:
            return await store.update_order(order_id, payload)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.message)

    @app.patch("/orders/{order_id}/status", response_model=Optional[schemas.Order])
    async def update_order_status(
        order_id: int,
        payload: schemas.StatusUpdateRequest,
        user: schemas.User = Depends(current_user),
        store: OrderStore = Depends(get_order_store),
    ) -> Optional[schemas.Order]:
        try:
            return await store.update_order_status(order_id, payload.status, user.role)
        except ConflictError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.message)

    @app.delete("/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_order(
        order_id: int, store: OrderStore = Depends(get_order_store)
    ) -> Response:
        try:
            await store.delete_order(order_id)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.message)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/shops", response_model=List[schemas.Shop])
    async def list_shops(catalog: CatalogStore = Depends(get_catalog)) -> List[schemas.Shop]:
        try:
            return await catalog.fetch_shops()
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.message)

    @app.get("/food", response_model=List[schemas.FoodItem])
    async def list_food(
        shop_id: Optional[int] = None, catalog: CatalogStore = Depends(get_catalog)
    ) -> List[schemas.FoodItem]:
        try:
            return await catalog.fetch_food_items(shop_id)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.message)

    return app
