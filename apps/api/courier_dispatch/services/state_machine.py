from courier_dispatch.errors import StateConflictError
from courier_dispatch.models.order import OrderStatus

ORDER_STATE_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.REQUESTED: {OrderStatus.ASSIGNED, OrderStatus.CANCELED, OrderStatus.DISPUTE},
    OrderStatus.ASSIGNED: {OrderStatus.PICKED_UP, OrderStatus.CANCELED, OrderStatus.DISPUTE},
    OrderStatus.PICKED_UP: {
        OrderStatus.EN_ROUTE,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELED,
        OrderStatus.DISPUTE,
    },
    OrderStatus.EN_ROUTE: {OrderStatus.DELIVERED, OrderStatus.CANCELED, OrderStatus.DISPUTE},
    OrderStatus.DELIVERED: {OrderStatus.COMPLETED, OrderStatus.CANCELED, OrderStatus.DISPUTE},
    OrderStatus.DISPUTE: {OrderStatus.CANCELED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELED: set(),
}

# Column stamped when an order enters each status.
STATUS_TIMESTAMP_FIELDS: dict[OrderStatus, str] = {
    OrderStatus.ASSIGNED: "assigned_at",
    OrderStatus.PICKED_UP: "picked_at",
    OrderStatus.EN_ROUTE: "en_route_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.CANCELED: "canceled_at",
}


def can_transition(current: OrderStatus, next_status: OrderStatus) -> bool:
    return next_status in ORDER_STATE_TRANSITIONS.get(current, set())


def ensure_valid_transition(current: OrderStatus, next_status: OrderStatus) -> None:
    if not can_transition(current, next_status):
        raise StateConflictError(
            f"Invalid state transition: {current.value} -> {next_status.value}"
        )
