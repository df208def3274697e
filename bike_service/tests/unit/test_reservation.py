"""Unit tests for the reservation state machine."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from bike_service.app.errors import InvalidTransitionError, NotFoundError
from bike_service.app.reservation import BikeState, ReservationStateMachine, Transition


def test_transition_table():
    assert Transition.RESERVE.source is BikeState.AVAILABLE
    assert Transition.RESERVE.target is BikeState.RESERVED
    assert Transition.CLEAR.source is BikeState.RESERVED
    assert Transition.CLEAR.target is BikeState.AVAILABLE
    assert BikeState.AVAILABLE.flag is True
    assert BikeState.RESERVED.flag is False


def test_reserve_and_clear_cycle(with_store, bike_payload):
    async def scenario(store):
        machine = ReservationStateMachine(store)
        bike_id = await store.create(bike_payload)

        await machine.reserve(bike_id)
        assert (await store.read(bike_id))["available"] is False

        with pytest.raises(InvalidTransitionError) as exc_info:
            await machine.reserve(bike_id)
        assert "already reserved" in str(exc_info.value)

        await machine.clear(bike_id)
        assert (await store.read(bike_id))["available"] is True

        with pytest.raises(InvalidTransitionError) as exc_info:
            await machine.clear(bike_id)
        assert "already available" in str(exc_info.value)

    with_store(scenario)


def test_missing_bike_is_not_found(with_store):
    async def scenario(store):
        machine = ReservationStateMachine(store)
        with pytest.raises(NotFoundError):
            await machine.reserve(12345)
        with pytest.raises(NotFoundError):
            await machine.clear(12345)

    with_store(scenario)


def test_concurrent_reserves_have_one_winner(with_store, bike_payload):
    async def scenario(store):
        machine = ReservationStateMachine(store)
        bike_id = await store.create(bike_payload)
        results = await asyncio.gather(
            *[machine.reserve(bike_id) for _ in range(10)],
            return_exceptions=True,
        )
        return bike_id, results, await store.read(bike_id)

    bike_id, results, stored = with_store(scenario)
    assert results.count(None) == 1
    assert all(isinstance(r, InvalidTransitionError) for r in results if r is not None)
    assert stored["available"] is False


def test_delete_between_write_and_existence_check_reports_not_found():
    store = AsyncMock()
    store.conditional_set_available.return_value = False
    store.exists.return_value = False
    machine = ReservationStateMachine(store)

    with pytest.raises(NotFoundError):
        asyncio.run(machine.reserve(5))

    store.conditional_set_available.assert_awaited_once_with(5, True, False)
    store.exists.assert_awaited_once_with(5)


def test_successful_transition_skips_existence_check():
    store = AsyncMock()
    store.conditional_set_available.return_value = True
    machine = ReservationStateMachine(store)

    asyncio.run(machine.clear(5))

    store.conditional_set_available.assert_awaited_once_with(5, False, True)
    store.exists.assert_not_awaited()
