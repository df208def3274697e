"""
Reservation state machine.

A bike is either available or reserved. ``reserve`` moves it
available -> reserved, ``clear`` moves it back. Each transition is one
conditional write in the store, so of two racing calls on the same bike
at most one succeeds.

When the conditional write matches nothing, a second, separate existence
check decides between NotFoundError and InvalidTransitionError. The two
calls are not atomic: a bike deleted in between is reported as not found.
"""
import enum
import logging

from .errors import InvalidTransitionError, NotFoundError
from .store import BikeStore

logger = logging.getLogger(__name__)


class BikeState(str, enum.Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"

    @property
    def flag(self) -> bool:
        return self is BikeState.AVAILABLE


class Transition(enum.Enum):
    RESERVE = (BikeState.AVAILABLE, BikeState.RESERVED)
    CLEAR = (BikeState.RESERVED, BikeState.AVAILABLE)

    @property
    def source(self) -> BikeState:
        return self.value[0]

    @property
    def target(self) -> BikeState:
        return self.value[1]


class ReservationStateMachine:
    def __init__(self, store: BikeStore):
        self.store = store

    async def apply(self, bike_id: int, transition: Transition) -> None:
        applied = await self.store.conditional_set_available(
            bike_id, transition.source.flag, transition.target.flag
        )
        if applied:
            logger.info(f"Bike {bike_id}: {transition.source.value} -> {transition.target.value}")
            return

        if not await self.store.exists(bike_id):
            raise NotFoundError(bike_id)
        logger.warning(f"Bike {bike_id}: {transition.name.lower()} rejected, bike is not {transition.source.value}")
        raise InvalidTransitionError(bike_id, transition.target.flag)

    async def reserve(self, bike_id: int) -> None:
        await self.apply(bike_id, Transition.RESERVE)

    async def clear(self, bike_id: int) -> None:
        await self.apply(bike_id, Transition.CLEAR)
