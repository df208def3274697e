"""Pytest configuration and fixtures."""

import asyncio

import fakeredis
import pytest

from bike_service.app.config import Settings
from bike_service.app.database import create_engine
from bike_service.app.redis_store import RedisBikeStore
from bike_service.app.sql_store import SqlBikeStore


def make_bike(**overrides):
    bike = {
        "manufacturer": "Trek",
        "model": "X1",
        "hourlyCost": 5,
        "type": "mountain",
        "ownerUserId": 1,
        "suitableHeightInMeters": 1.7,
        "maximumWeightInKg": 100,
    }
    bike.update(overrides)
    return bike


@pytest.fixture
def bike_payload():
    return make_bike()


@pytest.fixture
def bike_factory():
    return make_bike


@pytest.fixture
def redis_server():
    """Fresh in-memory Redis server shared by every client of one test."""
    return fakeredis.FakeServer()


@pytest.fixture
def redis_store_factory(redis_server):
    async def factory(settings=None):
        client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
        return RedisBikeStore(client)
    return factory


@pytest.fixture
def sql_store_factory(tmp_path):
    settings = Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'bikes.db'}")

    async def factory(_settings=None):
        store = SqlBikeStore(create_engine(settings))
        await store.create_tables()
        return store
    return factory


@pytest.fixture(params=["redis", "sql"])
def store_factory(request):
    return request.getfixturevalue(f"{request.param}_store_factory")


@pytest.fixture
def with_store(store_factory):
    """Runs ``scenario(store)`` on a fresh event loop and closes the store after."""
    def run(scenario):
        async def main():
            store = await store_factory()
            try:
                return await scenario(store)
            finally:
                await store.close()
        return asyncio.run(main())
    return run
