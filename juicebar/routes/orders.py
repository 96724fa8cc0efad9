import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from juicebar.config import settings
from juicebar.db import MenuStore, OrderNotFoundError, OrderStore, get_menu_store, get_store
from juicebar.metrics import orders_placed_total
from juicebar.models import Actor, CheckoutRequest, UnavailableItem, place_order
from juicebar.order_state import OrderStatus, progress_steps
from juicebar.redis_client import check_idempotency, release_idempotency
from juicebar.routes.common import get_actor, order_view

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("")
async def checkout(
    body: CheckoutRequest,
    actor: Actor = Depends(get_actor),
    store: OrderStore = Depends(get_store),
    menu: MenuStore = Depends(get_menu_store),
    idempotency_key: str | None = Header(default=None),
) -> JSONResponse:
    """
    Place an order in status 'placed'. Names and prices come from the menu and are
    snapshotted on the order; the cart only says what and how many.
    With an Idempotency-Key header, a repeated checkout -> 200 (already
    processed); new order -> 201. Unknown or sold-out lines -> 422.
    """
    redis_key = f"idempotency:checkout:{actor.user_id}:{idempotency_key}" if idempotency_key else None
    if redis_key and await check_idempotency(redis_key):
        return JSONResponse(
            status_code=200,
            content={"status": "already_processed", "idempotency_key": idempotency_key},
        )

    try:
        products = await menu.get_menu_items([line.product_id for line in body.items])
        order = place_order(actor.user_id, body, products, settings.delivery_fee)
        await store.insert_order(order)
    except UnavailableItem as e:
        if redis_key:
            await release_idempotency(redis_key)
        return JSONResponse(
            status_code=422,
            content={"error": "unavailable_item", "detail": str(e), "product_id": e.product_id, "size": e.size.value},
        )
    except ValidationError as e:
        if redis_key:
            await release_idempotency(redis_key)
        return JSONResponse(
            status_code=422,
            content={"detail": e.errors(include_url=False, include_context=False, include_input=False)},
        )
    except Exception:
        if redis_key:
            await release_idempotency(redis_key)
        raise

    orders_placed_total.labels(channel=order.channel.value).inc()
    logger.info(
        "Placed order_id=%s user_id=%s channel=%s total=%s",
        order.id, order.user_id, order.channel.value, order.total_amount,
    )
    return JSONResponse(
        status_code=201,
        content={"status": "placed", "order": order_view(order)},
    )


@router.get("")
async def my_orders(
    actor: Actor = Depends(get_actor),
    store: OrderStore = Depends(get_store),
) -> JSONResponse:
    """The caller's own orders, newest first."""
    orders = await store.list_orders(user_id=actor.user_id)
    return JSONResponse(status_code=200, content={"orders": [order_view(o) for o in orders]})


async def _load_visible(order_id: str, actor: Actor, store: OrderStore):
    # Other users' orders are reported as missing, not forbidden
    try:
        order = await store.load_order(order_id)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found.")
    if order.user_id != actor.user_id and not actor.is_admin:
        raise HTTPException(status_code=404, detail="Order not found.")
    return order


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    store: OrderStore = Depends(get_store),
) -> JSONResponse:
    order = await _load_visible(order_id, actor, store)
    return JSONResponse(status_code=200, content=order_view(order))


@router.get("/{order_id}/progress")
async def get_progress(
    order_id: str,
    actor: Actor = Depends(get_actor),
    store: OrderStore = Depends(get_store),
) -> JSONResponse:
    """Tracking page: the channel's steps with done/current flags."""
    order = await _load_visible(order_id, actor, store)
    return JSONResponse(
        status_code=200,
        content={
            "order_id": order.id,
            "status": order.status.value,
            "cancelled": order.status == OrderStatus.CANCELLED,
            "steps": progress_steps(order.channel, order.status),
        },
    )
