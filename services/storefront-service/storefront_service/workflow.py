from __future__ import annotations

from typing import Dict, FrozenSet, Tuple

from .errors import ConflictError
from .schemas import OrderStatus, Role

_SELLER = frozenset({Role.SELLER})
_ANYONE = frozenset({Role.SELLER, Role.CUSTOMER})

# Edge -> roles allowed to take it. Anything missing is illegal.
TRANSITIONS: Dict[Tuple[OrderStatus, OrderStatus], FrozenSet[Role]] = {
    (OrderStatus.PENDING, OrderStatus.PREPARING): _SELLER,
    (OrderStatus.PENDING, OrderStatus.CANCELLED): _SELLER,
    (OrderStatus.PREPARING, OrderStatus.READY): _SELLER,
    (OrderStatus.PREPARING, OrderStatus.CANCELLED): _SELLER,
    (OrderStatus.READY, OrderStatus.COMPLETED): _ANYONE,
    (OrderStatus.READY, OrderStatus.CANCELLED): _SELLER,
}

TERMINAL_STATES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})


def is_terminal(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL_STATES


def allowed_targets(current: OrderStatus, actor: Role) -> list[OrderStatus]:
    current = OrderStatus(current)
    return [
        target
        for (source, target), roles in TRANSITIONS.items()
        if source is current and Role(actor) in roles
    ]


def can_transition(current: OrderStatus, target: OrderStatus, actor: Role) -> bool:
    roles = TRANSITIONS.get((OrderStatus(current), OrderStatus(target)))
    return roles is not None and Role(actor) in roles


def check_transition(current: OrderStatus, target: OrderStatus, actor: Role) -> None:
    current, target, actor = OrderStatus(current), OrderStatus(target), Role(actor)
    if current in TERMINAL_STATES:
        raise ConflictError(
            f"Order is already {current.value}; it cannot move to {target.value}."
        )
    roles = TRANSITIONS.get((current, target))
    if roles is None:
        raise ConflictError(f"Cannot move an order from {current.value} to {target.value}.")
    if actor not in roles:
        raise ConflictError(
            f"A {actor.value} may not move an order from {current.value} to {target.value}."
        )
