import logging
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from juicebar.db import ConflictError, OrderNotFoundError, OrderStore, get_store
from juicebar.metrics import (
    order_transitions_rejected_total,
    order_transitions_total,
    order_write_conflicts_total,
)
from juicebar.models import Actor, Order
from juicebar.order_state import (
    Channel,
    InvalidState,
    InvalidTransition,
    OrderStatus,
    advance,
    cancel,
)
from juicebar.queue import publish_status_change
from juicebar.routes.common import get_actor, order_view, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/orders")
async def list_orders(
    status: OrderStatus | None = Query(default=None),
    channel: Channel | None = Query(default=None),
    q: str | None = Query(default=None, max_length=64, description="Order id substring"),
    active: bool | None = Query(default=None, description="true: in progress, false: finished"),
    limit: int = Query(default=100, ge=1, le=500),
    actor: Actor = Depends(get_actor),
    store: OrderStore = Depends(get_store),
) -> JSONResponse:
    """Order board, newest first, each entry with its next step for the action button."""
    require_admin(actor)
    orders = await store.list_orders(
        status=status,
        channel=channel.value if channel else None,
        search=q,
        active=active,
        limit=limit,
    )
    return JSONResponse(status_code=200, content={"orders": [order_view(o) for o in orders]})


async def _apply_transition(
    order_id: str,
    actor: Actor,
    store: OrderStore,
    transition: Callable[[Order, Actor], Order],
) -> JSONResponse:
    """
    Load -> transition -> conditional save on the status that was read.
    A lost race is returned as 409 with the stored status; the client re-fetches
    and decides again rather than having the step applied twice.
    """
    if not actor.is_admin:
        # Before the lookup: a non-admin gets 403 whether or not the id exists
        order_transitions_rejected_total.labels(reason="unauthorized").inc()
        logger.warning("Rejected %s on order_id=%s by non-admin user_id=%s", transition.__name__, order_id, actor.user_id)
        require_admin(actor)
    try:
        order = await store.load_order(order_id)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found.")

    try:
        updated = transition(order, actor)
    except InvalidTransition as e:
        order_transitions_rejected_total.labels(reason="invalid_transition").inc()
        logger.warning("Rejected %s on order_id=%s: %s", transition.__name__, order_id, e)
        return JSONResponse(
            status_code=409,
            content={"error": "invalid_transition", "detail": str(e), "current_status": e.status.value},
        )
    except InvalidState as e:
        order_transitions_rejected_total.labels(reason="invalid_state").inc()
        logger.error("Order order_id=%s has corrupt lifecycle state: %s", order_id, e)
        return JSONResponse(
            status_code=422,
            content={"error": "invalid_state", "detail": str(e)},
        )

    try:
        await store.save_order(updated, expected_prior_status=order.status)
    except ConflictError as e:
        order_write_conflicts_total.inc()
        return JSONResponse(
            status_code=409,
            content={
                "error": "conflict",
                "detail": "The order was modified by another request.",
                "current_status": e.current_status.value if e.current_status else None,
            },
        )

    order_transitions_total.labels(from_status=order.status.value, to_status=updated.status.value).inc()
    logger.info(
        "Order order_id=%s %s -> %s by user_id=%s",
        order_id, order.status.value, updated.status.value, actor.user_id,
    )
    await publish_status_change(updated, previous_status=order.status)
    return JSONResponse(status_code=200, content={"status": "ok", "order": order_view(updated)})


@router.post("/orders/{order_id}/advance")
async def advance_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    store: OrderStore = Depends(get_store),
) -> JSONResponse:
    """Move the order to the next stage of its channel (staff action)."""
    return await _apply_transition(order_id, actor, store, advance)


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    store: OrderStore = Depends(get_store),
) -> JSONResponse:
    """Cancel any order that has not reached a terminal status."""
    return await _apply_transition(order_id, actor, store, cancel)


@router.get("/stats")
async def dashboard_stats(
    actor: Actor = Depends(get_actor),
    store: OrderStore = Depends(get_store),
) -> JSONResponse:
    require_admin(actor)
    stats = await store.dashboard_stats()
    stats["total_earnings"] = str(stats["total_earnings"])
    return JSONResponse(status_code=200, content=stats)
