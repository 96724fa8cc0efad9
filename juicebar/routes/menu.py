import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from juicebar.db import MenuItemNotFoundError, MenuStore, get_menu_store
from juicebar.models import Actor, MenuItemIn
from juicebar.routes.common import get_actor, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/menu", tags=["menu"])
admin_router = APIRouter(prefix="/admin/menu", tags=["admin"])


@router.get("")
async def browse_menu(
    category_id: str | None = Query(default=None),
    menu: MenuStore = Depends(get_menu_store),
) -> JSONResponse:
    """Products currently on sale, featured first."""
    items = await menu.list_menu_items(category_id=category_id, available_only=True)
    return JSONResponse(status_code=200, content={"items": [i.model_dump(mode="json") for i in items]})


@router.get("/{item_id}")
async def get_menu_item(
    item_id: str,
    menu: MenuStore = Depends(get_menu_store),
) -> JSONResponse:
    try:
        item = await menu.load_menu_item(item_id)
    except MenuItemNotFoundError:
        raise HTTPException(status_code=404, detail="Menu item not found.")
    return JSONResponse(status_code=200, content=item.model_dump(mode="json"))


@admin_router.get("")
async def list_all_menu_items(
    actor: Actor = Depends(get_actor),
    menu: MenuStore = Depends(get_menu_store),
) -> JSONResponse:
    """Every product, including ones switched off."""
    require_admin(actor)
    items = await menu.list_menu_items()
    return JSONResponse(status_code=200, content={"items": [i.model_dump(mode="json") for i in items]})


@admin_router.post("")
async def create_menu_item(
    body: MenuItemIn,
    actor: Actor = Depends(get_actor),
    menu: MenuStore = Depends(get_menu_store),
) -> JSONResponse:
    require_admin(actor)
    item = await menu.create_menu_item(f"juice-{uuid.uuid4().hex[:12]}", body)
    logger.info("Menu item_id=%s created by user_id=%s", item.id, actor.user_id)
    return JSONResponse(status_code=201, content=item.model_dump(mode="json"))


@admin_router.put("/{item_id}")
async def replace_menu_item(
    item_id: str,
    body: MenuItemIn,
    actor: Actor = Depends(get_actor),
    menu: MenuStore = Depends(get_menu_store),
) -> JSONResponse:
    """Full replacement, prices and availability included. Placed orders keep their old prices."""
    require_admin(actor)
    try:
        item = await menu.update_menu_item(item_id, body)
    except MenuItemNotFoundError:
        raise HTTPException(status_code=404, detail="Menu item not found.")
    logger.info("Menu item_id=%s updated by user_id=%s", item_id, actor.user_id)
    return JSONResponse(status_code=200, content=item.model_dump(mode="json"))


@admin_router.delete("/{item_id}", status_code=204)
async def delete_menu_item(
    item_id: str,
    actor: Actor = Depends(get_actor),
    menu: MenuStore = Depends(get_menu_store),
):
    require_admin(actor)
    try:
        await menu.delete_menu_item(item_id)
    except MenuItemNotFoundError:
        raise HTTPException(status_code=404, detail="Menu item not found.")
    logger.info("Menu item_id=%s deleted by user_id=%s", item_id, actor.user_id)
