"""
This module hosts the base class for all bike stores.
A store must implement all functions to be usable.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping

# findAvailable never returns more than this many bikes
MAX_RESULTS = 10


class BikeStore(ABC):
    """The abstract store interface.

    Records passed in never contain ``id``; ``available`` is only written
    by ``create`` (always True) and ``conditional_set_available``.
    Missing ids raise NotFoundError, connectivity loss raises
    StoreUnavailableError.
    """

    name = "abstract"

    @abstractmethod
    async def ping(self) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @abstractmethod
    async def create(self, record: Mapping[str, Any]) -> int:
        """Persists a new bike with ``available = True`` and returns its id."""

    @abstractmethod
    async def read(self, bike_id: int) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def replace(self, bike_id: int, record: Mapping[str, Any]) -> None:
        """Replaces every field except ``id`` and ``available``."""

    @abstractmethod
    async def delete(self, bike_id: int) -> None:
        pass

    @abstractmethod
    async def find_available(self, filters: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """Up to MAX_RESULTS available bikes matching ``filters``, cheapest first."""

    @abstractmethod
    async def conditional_set_available(self, bike_id: int, expected: bool, new: bool) -> bool:
        """Atomically sets ``available`` to ``new`` if it currently equals ``expected``.

        Returns False when no record matched, which covers both a missing
        bike and a bike in the other state.
        """

    @abstractmethod
    async def exists(self, bike_id: int) -> bool:
        pass
