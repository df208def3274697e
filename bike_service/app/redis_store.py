"""
Redis hash store.

Each bike lives in the hash ``bike:<id>`` as flattened text fields and ids
come from ``INCR nextBikeId``. The sorted set ``bikes:available`` holds the
ids of available bikes scored by ``hourlyCost``, so listing walks bikes
cheapest first instead of scanning every hash.
Every write is a Lua script so Redis runs it, index included, as one command.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Mapping

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .codec import RecordCodec, bike_codec
from .errors import MissingFieldError, NotFoundError, StoreError, StoreUnavailableError
from .store import MAX_RESULTS, BikeStore

logger = logging.getLogger(__name__)

ID_COUNTER_KEY = "nextBikeId"
AVAILABLE_KEY = "bikes:available"
BIKE_KEY_PREFIX = "bike:"

# KEYS[1] bike hash, KEYS[2] available index; ARGV[1] id, ARGV[2] cost, ARGV[3..] field/value pairs
CREATE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    return 0
end
for i = 3, #ARGV, 2 do
    redis.call('HSET', KEYS[1], ARGV[i], ARGV[i + 1])
end
redis.call('ZADD', KEYS[2], ARGV[2], ARGV[1])
return 1
"""

# KEYS[1] bike hash, KEYS[2] available index; ARGV[1] id, ARGV[2] cost, ARGV[3..] pairs.
# id and available survive.
REPLACE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
    return 0
end
for _, field in ipairs(redis.call('HKEYS', KEYS[1])) do
    if field ~= 'id' and field ~= 'available' then
        redis.call('HDEL', KEYS[1], field)
    end
end
for i = 3, #ARGV, 2 do
    redis.call('HSET', KEYS[1], ARGV[i], ARGV[i + 1])
end
if redis.call('HGET', KEYS[1], 'available') == 'true' then
    redis.call('ZADD', KEYS[2], ARGV[2], ARGV[1])
end
return 1
"""

# KEYS[1] bike hash, KEYS[2] available index; ARGV[1] expected, ARGV[2] new, ARGV[3] id
SET_AVAILABLE_SCRIPT = """
if redis.call('HGET', KEYS[1], 'available') ~= ARGV[1] then
    return 0
end
local cost = redis.call('HGET', KEYS[1], 'hourlyCost')
if ARGV[2] == 'true' and not tonumber(cost) then
    return redis.error_reply('bike ' .. ARGV[3] .. ' has no valid hourlyCost')
end
redis.call('HSET', KEYS[1], 'available', ARGV[2])
if ARGV[2] == 'true' then
    redis.call('ZADD', KEYS[2], cost, ARGV[3])
else
    redis.call('ZREM', KEYS[2], ARGV[3])
end
return 1
"""

# KEYS[1] available index; ARGV[1] limit, ARGV[2] bike key prefix, ARGV[3..] filter pairs.
# Walks the index cheapest first and stops past the cost of the limit-th match,
# so ties on that cost are all returned and ordered by the caller.
FIND_SCRIPT = """
local limit = tonumber(ARGV[1])
local page = 100
local start = 0
local found = {}
local cutoff = nil
while true do
    local batch = redis.call('ZRANGE', KEYS[1], start, start + page - 1, 'WITHSCORES')
    if #batch == 0 then
        return found
    end
    for i = 1, #batch, 2 do
        local score = tonumber(batch[i + 1])
        if cutoff ~= nil and score > cutoff then
            return found
        end
        local key = ARGV[2] .. batch[i]
        local matched = true
        for j = 3, #ARGV, 2 do
            if redis.call('HGET', key, ARGV[j]) ~= ARGV[j + 1] then
                matched = false
                break
            end
        end
        if matched then
            found[#found + 1] = redis.call('HGETALL', key)
            if #found == limit then
                cutoff = score
            end
        end
    end
    start = start + page
end
"""


def bike_key(bike_id: int) -> str:
    return f"{BIKE_KEY_PREFIX}{bike_id}"


def _pairs(flat: Mapping[str, str]) -> List[str]:
    args: List[str] = []
    for field, value in flat.items():
        args.extend((field, value))
    return args


def _cost(flat: Mapping[str, str]) -> str:
    if "hourlyCost" not in flat:
        raise MissingFieldError("hourlyCost")
    return flat["hourlyCost"]


class RedisBikeStore(BikeStore):
    name = "redis"

    def __init__(self, client: redis.Redis, codec: RecordCodec = bike_codec):
        # клиент должен быть создан с decode_responses=True
        self.client = client
        self.codec = codec
        self._create = client.register_script(CREATE_SCRIPT)
        self._replace = client.register_script(REPLACE_SCRIPT)
        self._set_available = client.register_script(SET_AVAILABLE_SCRIPT)
        self._find = client.register_script(FIND_SCRIPT)


    @asynccontextmanager
    async def _errors(self, action: str):
        try:
            yield
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.critical(f"Redis connection lost during {action}: {e}")
            raise StoreUnavailableError(f"Redis unavailable: {e}") from e
        except RedisError as e:
            logger.error(f"Redis error during {action}: {e}")
            raise StoreError(f"Redis error during {action}: {e}") from e

    async def ping(self) -> None:
        async with self._errors("ping"):
            await self.client.ping()

    async def close(self) -> None:
        await self.client.aclose()

    async def create(self, record: Mapping[str, Any]) -> int:
        async with self._errors("create"):
            bike_id = await self.client.incr(ID_COUNTER_KEY)
            flat = self.codec.encode({**record, "id": bike_id, "available": True})
            created = await self._create(
                keys=[bike_key(bike_id), AVAILABLE_KEY],
                args=[str(bike_id), _cost(flat), *_pairs(flat)],
            )
        if not created:
            # счётчик кто-то сбросил; чужую запись не перезаписываем
            raise StoreError(f"Bike id {bike_id} is already taken")
        logger.info(f"Bike {bike_id} added: {flat}")
        return bike_id

    async def read(self, bike_id: int) -> Dict[str, Any]:
        async with self._errors("read"):
            flat = await self.client.hgetall(bike_key(bike_id))
        if not flat:
            raise NotFoundError(bike_id)
        return self.codec.decode(flat)

    async def exists(self, bike_id: int) -> bool:
        async with self._errors("exists"):
            return bool(await self.client.exists(bike_key(bike_id)))

    async def replace(self, bike_id: int, record: Mapping[str, Any]) -> None:
        flat = self.codec.encode(record)
        flat.pop("id", None)
        flat.pop("available", None)
        async with self._errors("replace"):
            replaced = await self._replace(
                keys=[bike_key(bike_id), AVAILABLE_KEY],
                args=[str(bike_id), _cost(flat), *_pairs(flat)],
            )
        if not replaced:
            raise NotFoundError(bike_id)
        logger.info(f"Bike {bike_id} replaced: {flat}")

    async def delete(self, bike_id: int) -> None:
        async with self._errors("delete"):
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.delete(bike_key(bike_id))
                pipe.zrem(AVAILABLE_KEY, str(bike_id))
                deleted, _ = await pipe.execute()
        if not deleted:
            raise NotFoundError(bike_id)
        logger.info(f"Bike {bike_id} deleted")

    async def find_available(self, filters: Mapping[str, Any]) -> List[Dict[str, Any]]:
        wanted = {path: self.codec.to_text(path, value) for path, value in filters.items()}
        async with self._errors("find_available"):
            rows = await self._find(
                keys=[AVAILABLE_KEY],
                args=[str(MAX_RESULTS), BIKE_KEY_PREFIX, *_pairs(wanted)],
            )

        bikes = [self.codec.decode(dict(zip(row[::2], row[1::2]))) for row in rows]
        bikes = [bike for bike in bikes if bike["available"] is True]
        bikes.sort(key=lambda bike: (bike["hourlyCost"], bike["id"]))
        return bikes[:MAX_RESULTS]

    async def conditional_set_available(self, bike_id: int, expected: bool, new: bool) -> bool:
        async with self._errors("conditional_set_available"):
            applied = await self._set_available(
                keys=[bike_key(bike_id), AVAILABLE_KEY],
                args=[
                    self.codec.to_text("available", expected),
                    self.codec.to_text("available", new),
                    str(bike_id),
                ],
            )
        return bool(applied)
