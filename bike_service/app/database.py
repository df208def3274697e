import logging

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import create_async_engine

from .config import Settings
from .redis_store import RedisBikeStore
from .sql_store import SqlBikeStore
from .store import BikeStore

logger = logging.getLogger(__name__)


def async_database_url(url: str) -> str:
    # Заменяем postgresql:// на postgresql+asyncpg://
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def create_engine(settings: Settings):
    url = async_database_url(settings.database_url)
    connect_args = {}
    if url.startswith("sqlite"):
        # параллельные записи ждут блокировку, а не падают сразу
        connect_args["timeout"] = 15
    return create_async_engine(url, echo=settings.db_echo, connect_args=connect_args)


def create_redis(settings: Settings) -> redis.Redis:
    logger.info(f"redisAddr: {settings.redis_addr}")
    return redis.from_url(
        f"redis://{settings.redis_addr}",
        password=settings.redis_password or None,
        decode_responses=True,
    )


async def open_store(settings: Settings) -> BikeStore:
    """Builds the store handle for the configured backend and checks it is reachable."""
    if settings.store_backend == "redis":
        store = RedisBikeStore(create_redis(settings))
    elif settings.store_backend == "sql":
        store = SqlBikeStore(create_engine(settings))
        await store.create_tables()
    else:
        raise RuntimeError(f"Unknown STORE_BACKEND {settings.store_backend!r}, expected 'sql' or 'redis'")

    await store.ping()
    logger.info(f"Connected to {store.name} store")
    return store
