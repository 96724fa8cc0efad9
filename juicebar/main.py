import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import Response

from juicebar.db import close_pool, get_pool, init_schema
from juicebar.metrics import get_metrics_bytes, get_metrics_content_type
from juicebar.redis_client import close_redis, get_redis
from juicebar.routes import admin, menu, orders

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    pool = await get_pool()
    await init_schema(pool)
    await get_redis()
    logger.info("Schema ready. Serving orders.")
    yield
    await close_redis()
    await close_pool()


app = FastAPI(title="Juice Bar Orders", lifespan=lifespan)
app.include_router(orders.router)
app.include_router(admin.router)
app.include_router(menu.router)
app.include_router(menu.admin_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus scrape endpoint: orders placed, transitions, rejections, conflicts."""
    return Response(
        content=get_metrics_bytes(),
        media_type=get_metrics_content_type(),
    )
