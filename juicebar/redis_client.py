import redis.asyncio as redis
from juicebar.config import settings

_redis: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    global _redis
    if _redis is None:
        _redis = redis.from_url(settings.redis_url, decode_responses=True)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


async def check_idempotency(key: str, ttl_seconds: int | None = None) -> bool:
    """
    Returns True if this checkout key was already seen (duplicate) -> caller should return 200.
    Returns False if key is new -> caller should go on and place the order.
    SET NX: whoever sets the key first owns the checkout.
    """
    r = await get_redis()
    was_set = await r.set(key, "1", nx=True, ex=ttl_seconds or settings.idempotency_ttl_seconds)
    return not was_set


async def release_idempotency(key: str) -> None:
    """Forget a key whose checkout failed, so the client may retry with it."""
    r = await get_redis()
    await r.delete(key)
