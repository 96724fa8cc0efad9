"""
Prometheus metrics: orders placed (checkout), status transitions applied and rejected, write conflicts.
"""
from prometheus_client import Counter, generate_latest

# Checkout: orders accepted, by fulfillment channel
orders_placed_total = Counter(
    "orders_placed_total",
    "Total orders created at checkout",
    ["channel"],
)

# Admin: lifecycle outcomes
order_transitions_total = Counter(
    "order_transitions_total",
    "Total order status transitions persisted",
    ["from_status", "to_status"],
)
order_transitions_rejected_total = Counter(
    "order_transitions_rejected_total",
    "Total status transitions refused by the order lifecycle",
    ["reason"],
)
order_write_conflicts_total = Counter(
    "order_write_conflicts_total",
    "Total conditional status writes that lost to a concurrent update",
)
status_events_failed_total = Counter(
    "status_events_failed_total",
    "Total order status change messages that could not be published",
)


def get_metrics_content_type():
    return "text/plain; charset=utf-8; version=0.0.4"


def get_metrics_bytes():
    return generate_latest()
