# fitrelay/services/redis_store.py - thin async facade over the pooled client
from fitrelay.services.redis_client import fast_redis


async def ping() -> bool:
    return await fast_redis.ping()


async def get(key: str) -> str | None:
    return await fast_redis.get(key)


async def set_with_ttl(key: str, value: str, ttl_s: int | None = None) -> bool:
    return await fast_redis.set_with_ttl(key, value, ttl_s)


async def delete(*keys: str) -> bool:
    return await fast_redis.delete(*keys)

