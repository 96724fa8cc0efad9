"""
Shared route helpers: caller identity from request headers and the JSON view of an order.
"""
from fastapi import Header, HTTPException

from juicebar.models import Actor, Order
from juicebar.order_state import action_label, is_active, next_status


async def get_actor(
    x_user_id: str | None = Header(default=None),
    x_user_role: str = Header(default="user"),
) -> Actor:
    """
    Identity is established upstream (auth proxy / session layer) and forwarded
    as X-User-Id and X-User-Role. Missing id -> 401.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=401,
            detail="Missing X-User-Id header.",
        )
    if x_user_role not in ("user", "admin"):
        raise HTTPException(status_code=400, detail=f"Unknown role '{x_user_role}'.")
    return Actor(user_id=x_user_id, role=x_user_role)


def order_view(order: Order) -> dict:
    nxt = next_status(order.channel, order.status)
    data = order.model_dump(mode="json")
    data["is_active"] = is_active(order)
    data["next_status"] = nxt.value if nxt else None
    data["action_label"] = action_label(order.channel, order.status)
    return data


def require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required.")
