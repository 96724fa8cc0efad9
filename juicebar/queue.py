"""
Push order status change messages for tracking pages and notifiers.
Backend: Redis (LPUSH) or AWS SQS when SQS_STATUS_QUEUE_URL is set.
"""
import json
import logging

from juicebar.config import settings
from juicebar.metrics import status_events_failed_total
from juicebar.models import Order
from juicebar.order_state import OrderStatus
from juicebar.redis_client import get_redis
from juicebar.sqs_client import send_message

logger = logging.getLogger(__name__)

STATUS_EVENTS_KEY = "queue:order_status_events"


def _make_body(order: Order, previous_status: OrderStatus) -> dict:
    return {
        "event_type": "ORDER_STATUS_CHANGED",
        "order_id": order.id,
        "user_id": order.user_id,
        "channel": order.channel.value,
        "previous_status": OrderStatus(previous_status).value,
        "status": order.status.value,
        "updated_at": order.updated_at.isoformat(),
    }


async def push_status_change(order: Order, previous_status: OrderStatus) -> None:
    body = _make_body(order, previous_status)
    if settings.sqs_status_queue_url:
        await send_message(body)
    else:
        r = await get_redis()
        await r.lpush(STATUS_EVENTS_KEY, json.dumps(body))


async def publish_status_change(order: Order, previous_status: OrderStatus) -> None:
    """
    Best-effort publish after the status write has committed. A failure is
    logged and counted; the transition itself stands.
    """
    if not settings.status_events_enabled:
        return
    try:
        await push_status_change(order, previous_status)
    except Exception:
        status_events_failed_total.inc()
        logger.exception("Failed to publish status change for order_id=%s", order.id)
