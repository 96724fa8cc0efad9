"""
Order lifecycle state machine. One transition table per fulfillment channel;
every next-status lookup, admin button label and customer progress step is
derived from it.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from juicebar.models import Actor, Order


class OrderStatus(str, Enum):
    PLACED = "placed"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Channel(str, Enum):
    DELIVERY = "delivery"
    TAKEAWAY = "takeaway"
    DINE_IN = "dine_in"


class InvalidTransition(Exception):
    """No legal successor exists, or a terminal order was asked to cancel."""
    def __init__(self, status: OrderStatus, attempted: str):
        self.status = OrderStatus(status)
        self.attempted = attempted
        super().__init__(f"cannot {attempted} an order in status '{self.status.value}'")


class Unauthorized(Exception):
    """Actor lacks the rights to transition orders (admin only)."""
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"user '{user_id}' may not change order status")


class InvalidState(Exception):
    """(channel, status) pair is not in the transition table; upstream data is corrupt."""
    def __init__(self, channel: Channel, status: OrderStatus):
        self.channel = Channel(channel)
        self.status = OrderStatus(status)
        super().__init__(f"status '{self.status.value}' is not part of the {self.channel.value} lifecycle")


# Channel -> ordered progression. Each status is reachable only from its predecessor.
CHANNEL_SEQUENCES: dict[Channel, tuple[OrderStatus, ...]] = {
    Channel.DELIVERY: (
        OrderStatus.PLACED,
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
    ),
    Channel.TAKEAWAY: (
        OrderStatus.PLACED,
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.COMPLETED,
    ),
    Channel.DINE_IN: (
        OrderStatus.PLACED,
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.COMPLETED,
    ),
}

# Current state -> allowed next status, per channel
VALID_TRANSITIONS: dict[Channel, dict[OrderStatus, OrderStatus | None]] = {
    channel: {
        status: (seq[i + 1] if i + 1 < len(seq) else None)
        for i, status in enumerate(seq)
    }
    for channel, seq in CHANNEL_SEQUENCES.items()
}

TERMINAL_STATUSES = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
})

# Admin button label, keyed by the status being left
_ACTION_LABELS: dict[OrderStatus, str] = {
    OrderStatus.PLACED: "Confirm Order",
    OrderStatus.CONFIRMED: "Start Preparing",
    OrderStatus.PREPARING: "Mark as Ready",
    OrderStatus.OUT_FOR_DELIVERY: "Mark as Delivered",
}

_STEP_LABELS: dict[OrderStatus, str] = {
    OrderStatus.PLACED: "Order Placed",
    OrderStatus.CONFIRMED: "Order Confirmed",
    OrderStatus.PREPARING: "Preparing",
    OrderStatus.OUT_FOR_DELIVERY: "Out for Delivery",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.COMPLETED: "Completed",
}

_READY_STEP_LABELS: dict[Channel, str] = {
    Channel.DELIVERY: "Ready for Delivery",
    Channel.TAKEAWAY: "Ready for Pickup",
    Channel.DINE_IN: "Served",
}


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_active(order: Order) -> bool:
    return not is_terminal(order.status)


def next_status(channel: Channel, current_status: OrderStatus) -> OrderStatus | None:
    """Successor of current_status in the channel's sequence, or None if there is none."""
    return VALID_TRANSITIONS.get(channel, {}).get(current_status)


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise Unauthorized(actor.user_id)


def _in_table(channel: Channel, status: OrderStatus) -> bool:
    return status in VALID_TRANSITIONS.get(channel, {})


def _with_status(order: Order, status: OrderStatus, now: datetime | None) -> Order:
    return order.model_copy(
        update={"status": status, "updated_at": now or datetime.now(timezone.utc)}
    )


def advance(order: Order, actor: Actor, now: datetime | None = None) -> Order:
    """
    Move order one step along its channel's sequence.
    Returns a new Order; the input is never modified and nothing is persisted.
    """
    _require_admin(actor)
    if order.status != OrderStatus.CANCELLED and not _in_table(order.channel, order.status):
        raise InvalidState(order.channel, order.status)
    successor = next_status(order.channel, order.status)
    if successor is None:
        raise InvalidTransition(order.status, "advance")
    return _with_status(order, successor, now)


def cancel(order: Order, actor: Actor, now: datetime | None = None) -> Order:
    """Move a non-terminal order to cancelled. Returns a new Order."""
    _require_admin(actor)
    if is_terminal(order.status):
        raise InvalidTransition(order.status, "cancel")
    if not _in_table(order.channel, order.status):
        raise InvalidState(order.channel, order.status)
    return _with_status(order, OrderStatus.CANCELLED, now)


def action_label(channel: Channel, status: OrderStatus) -> str | None:
    """Label for the admin 'next step' button, None when the order cannot advance."""
    successor = next_status(channel, status)
    if successor is None:
        return None
    if status == OrderStatus.READY:
        return "Out for Delivery" if successor == OrderStatus.OUT_FOR_DELIVERY else "Mark as Completed"
    return _ACTION_LABELS[status]


def progress_steps(channel: Channel, status: OrderStatus) -> list[dict]:
    """
    Customer tracking steps for the channel. A cancelled order keeps its steps
    but none is marked done or current, since the point it was cancelled at
    is not recorded on the order.
    """
    seq = CHANNEL_SEQUENCES[channel]
    position = seq.index(status) if status in seq else -1
    steps = []
    for i, step in enumerate(seq):
        label = _READY_STEP_LABELS[channel] if step == OrderStatus.READY else _STEP_LABELS[step]
        steps.append({
            "status": step.value,
            "label": label,
            "done": i <= position,
            "current": i == position,
        })
    return steps
