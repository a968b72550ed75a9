from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    SELLER = "seller"
    CUSTOMER = "customer"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PREPARING = "PREPARING"
    READY = "READY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    """Entities travel as camelCase JSON; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class OrderItem(WireModel):
    food_id: Optional[int] = None
    name: str
    quantity: int = Field(..., gt=0)
    price: float = Field(..., ge=0)
    subtotal: Optional[float] = None

    @model_validator(mode="after")
    def _derive_subtotal(self) -> "OrderItem":
        # A line subtotal is always price * quantity, whatever the sender claimed.
        self.subtotal = round(self.price * self.quantity, 2)
        return self


def compute_total(items: List[OrderItem]) -> float:
    return round(sum(item.subtotal for item in items), 2)


class Order(WireModel):
    id: int
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    shop_id: Optional[int] = None
    items: List[OrderItem] = Field(default_factory=list)
    total_price: float = Field(default=0.0, ge=0)
    status: OrderStatus = OrderStatus.PENDING
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    origin: Literal["remote", "local"] = "remote"


class OrderDraft(WireModel):
    """Checkout payload; validation of its content is left to the UI."""

    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    shop_id: Optional[int] = None
    items: List[OrderItem] = Field(default_factory=list)
    total_price: Optional[float] = None
    notes: Optional[str] = None


class OrderUpdate(WireModel):
    """Full-record replacement; status only changes through the workflow."""

    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    shop_id: Optional[int] = None
    items: List[OrderItem] = Field(default_factory=list)
    total_price: Optional[float] = None
    notes: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: OrderStatus


class FoodItem(WireModel):
    id: int
    name: str
    description: Optional[str] = None
    price: float = Field(..., gt=0)
    quantity: int = Field(default=0, ge=0)
    available: bool = True
    shop_id: Optional[int] = None


class Shop(WireModel):
    id: int
    name: str
    contact_info: Optional[str] = None


class User(WireModel):
    id: int
    name: Optional[str] = None
    email: str = ""
    role: Role = Role.CUSTOMER


class Notice(BaseModel):
    level: Literal["info", "success", "warning", "error"]
    message: str


class HealthResponse(BaseModel):
    status: Literal["ok"]
    degraded: bool
