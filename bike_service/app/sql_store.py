"""
SQLAlchemy store.

Columns are typed, so values come back native and no text coercion is
needed. Conditional writes are a single ``UPDATE ... WHERE`` whose
rowcount tells whether the precondition held.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Mapping

from sqlalchemy import delete, exc, select, text, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from . import models
from .codec import flatten
from .errors import CodecError, NotFoundError, StoreError, StoreUnavailableError
from .store import MAX_RESULTS, BikeStore

logger = logging.getLogger(__name__)


def _is_disconnect(e: Exception) -> bool:
    if isinstance(e, exc.DBAPIError) and e.connection_invalidated:
        return True
    return isinstance(e, (exc.InterfaceError, OSError))


def _columns(record: Mapping[str, Any]) -> Dict[str, Any]:
    values = {}
    for path, value in flatten(record).items():
        column = models.FIELD_COLUMNS.get(path)
        if column is None:
            raise CodecError(path, "no such column")
        values[column.key] = value
    return values


class SqlBikeStore(BikeStore):
    name = "sql"

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.sessionmaker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def create_tables(self) -> None:
        async with self._errors("create_tables"):
            async with self.engine.begin() as conn:
                await conn.run_sync(models.Base.metadata.create_all)

    @asynccontextmanager
    async def _errors(self, action: str):
        try:
            yield
        except exc.SQLAlchemyError as e:
            if _is_disconnect(e):
                logger.critical(f"Database connection lost during {action}: {e}")
                raise StoreUnavailableError(f"Database unavailable: {e}") from e
            logger.error(f"Database error during {action}: {e}")
            raise StoreError(f"Database error during {action}: {e}") from e
        except OSError as e:
            logger.critical(f"Database connection lost during {action}: {e}")
            raise StoreUnavailableError(f"Database unavailable: {e}") from e

    async def ping(self) -> None:
        async with self._errors("ping"):
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))

    async def close(self) -> None:
        await self.engine.dispose()

    async def create(self, record: Mapping[str, Any]) -> int:
        values = _columns(record)
        values.pop("id", None)
        values["available"] = True
        async with self._errors("create"):
            async with self.sessionmaker() as session:
                async with session.begin():
                    bike = models.Bike(**values)
                    session.add(bike)
                    await session.flush()
                    bike_id = bike.id
        logger.info(f"Bike {bike_id} added: {values}")
        return bike_id

    async def read(self, bike_id: int) -> Dict[str, Any]:
        async with self._errors("read"):
            async with self.sessionmaker() as session:
                bike = await session.get(models.Bike, bike_id)
        if bike is None:
            raise NotFoundError(bike_id)
        return models.to_record(bike)

    async def exists(self, bike_id: int) -> bool:
        async with self._errors("exists"):
            async with self.sessionmaker() as session:
                result = await session.execute(
                    select(models.Bike.id).where(models.Bike.id == bike_id)
                )
                return result.scalar_one_or_none() is not None

    async def _execute_write(self, action: str, statement) -> int:
        async with self._errors(action):
            async with self.sessionmaker() as session:
                async with session.begin():
                    result = await session.execute(
                        statement.execution_options(synchronize_session=False)
                    )
                    return result.rowcount

    async def replace(self, bike_id: int, record: Mapping[str, Any]) -> None:
        values = _columns(record)
        values.pop("id", None)
        values.pop("available", None)
        statement = (
            update(models.Bike)
            .where(models.Bike.id == bike_id)
            .values({getattr(models.Bike, key): value for key, value in values.items()})
        )
        if not await self._execute_write("replace", statement):
            raise NotFoundError(bike_id)
        logger.info(f"Bike {bike_id} replaced: {values}")

    async def delete(self, bike_id: int) -> None:
        statement = delete(models.Bike).where(models.Bike.id == bike_id)
        if not await self._execute_write("delete", statement):
            raise NotFoundError(bike_id)
        logger.info(f"Bike {bike_id} deleted")

    async def find_available(self, filters: Mapping[str, Any]) -> List[Dict[str, Any]]:
        query = select(models.Bike).where(models.Bike.available == True)
        for field, value in filters.items():
            column = models.FIELD_COLUMNS.get(field)
            if column is None:
                # поля нет в схеме, значит совпадений нет
                return []
            query = query.where(column == value)
        query = query.order_by(models.Bike.hourly_cost, models.Bike.id).limit(MAX_RESULTS)

        async with self._errors("find_available"):
            async with self.sessionmaker() as session:
                result = await session.execute(query)
                bikes = result.scalars().all()
        return [models.to_record(bike) for bike in bikes]

    async def conditional_set_available(self, bike_id: int, expected: bool, new: bool) -> bool:
        statement = (
            update(models.Bike)
            .where(models.Bike.id == bike_id, models.Bike.available == expected)
            .values(available=new)
        )
        return await self._execute_write("conditional_set_available", statement) == 1
