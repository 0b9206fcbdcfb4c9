"""Tests for the display synchronizer: optimistic updates, rollback, polling."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from fulfillment.core.exceptions import (
    InvalidTransition,
    MutationInFlight,
    NotFound,
    TransportFailure,
)
from fulfillment.models import FulfillmentStatus, Station
from fulfillment.schemas import OrderCreate
from fulfillment.sync import DisplaySynchronizer, LocalOrdersGateway
from fulfillment.sync.display import RETRY_MESSAGE, MutationState
from fulfillment.sync.polling import PollingTask

QUEUED = FulfillmentStatus.QUEUED
PREPARING = FulfillmentStatus.PREPARING
READY = FulfillmentStatus.READY
CANCELLED = FulfillmentStatus.CANCELLED


class SlowGateway(LocalOrdersGateway):
    """Holds every status change until `release` is set."""

    def __init__(self, service, catalog):
        super().__init__(service, catalog)
        self.release = asyncio.Event()

    async def request_transition(self, order_id, to_status, station=None):
        await self.release.wait()
        return await super().request_transition(order_id, to_status, station)


class GatedFailingGateway(LocalOrdersGateway):
    """Holds each status change until its order's gate opens, then fails it."""

    def __init__(self, service, catalog):
        super().__init__(service, catalog)
        self.gates = {}

    def gate(self, order_id):
        return self.gates.setdefault(order_id, asyncio.Event())

    async def request_transition(self, order_id, to_status, station=None):
        await self.gate(order_id).wait()
        raise TransportFailure("connection reset")


@pytest.fixture
def gateway(service, catalog):
    return LocalOrdersGateway(service, catalog)


@pytest.fixture
def make_display():
    def _make(gateway, station=Station.KITCHEN, **kwargs):
        kwargs.setdefault("poll_interval", 0.05)
        kwargs.setdefault("request_timeout", 1.0)
        return DisplaySynchronizer(gateway, station=station, **kwargs)
    return _make


@pytest.fixture
def place(service, order_payload):
    async def _place(*items):
        return await service.create_order(OrderCreate(**order_payload(*items)))
    return _place


async def wait_until_pending(display, order_id):
    for _ in range(100):
        if display.is_pending(order_id) and display.get_cached(order_id).status != QUEUED:
            return
        await asyncio.sleep(0)
    raise AssertionError("mutation never became visible")


class TestOptimisticCommit:

    @pytest.mark.asyncio
    async def test_successful_change_is_committed(self, gateway, make_display, place, store):
        order = await place("nasi-goreng")
        display = make_display(gateway)
        await display.refresh()
        settled = []
        display.on_settled = settled.append

        mutation = await display.request_transition(order.id, PREPARING)

        assert mutation.state == MutationState.COMMITTED
        assert mutation.result.status == PREPARING
        assert display.get_cached(order.id).status == PREPARING
        assert (await store.get_order(order.id)).status == PREPARING
        assert settled == [mutation]
        assert not display.is_pending(order.id)

    @pytest.mark.asyncio
    async def test_optimistic_state_is_visible_while_in_flight(self, service, catalog, make_display, place):
        order = await place("nasi-goreng")
        gateway = SlowGateway(service, catalog)
        display = make_display(gateway)
        await display.refresh()

        task = asyncio.create_task(display.request_transition(order.id, PREPARING))
        await wait_until_pending(display, order.id)

        assert display.get_cached(order.id).status == PREPARING
        assert (await service.get_order(order.id)).status == QUEUED

        gateway.release.set()
        mutation = await task
        assert mutation.committed

    @pytest.mark.asyncio
    async def test_bar_ready_on_mixed_order_never_reaches_the_network(self, service, gateway, make_display, place):
        order = await place("nasi-goreng", "es-teh")
        await service.request_transition(order.id, PREPARING, Station.KITCHEN)
        display = make_display(gateway, station=Station.BAR)
        await display.refresh()
        before = display.orders
        gateway.request_transition = AsyncMock(wraps=gateway.request_transition)

        mutation = await display.request_transition(order.id, READY)

        assert mutation.committed
        assert mutation.acknowledged
        assert "Drinks are ready" in mutation.message
        gateway.request_transition.assert_not_awaited()
        assert display.orders is before


class TestRollback:

    @pytest.mark.asyncio
    async def test_store_failure_restores_exact_snapshot(self, gateway, make_display, place, store):
        await place("es-teh")
        order = await place("nasi-goreng")
        display = make_display(gateway)
        await display.refresh()
        before = display.orders
        dumped = [o.model_dump() for o in before]
        store.fail_next_updates(1)

        mutation = await display.request_transition(order.id, PREPARING)

        assert mutation.rolled_back
        assert isinstance(mutation.error, TransportFailure)
        assert mutation.retryable
        assert mutation.message == RETRY_MESSAGE
        assert display.orders is before
        assert [o.model_dump() for o in display.orders] == dumped
        assert (await store.get_order(order.id)).status == QUEUED

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, service, catalog, make_display, place):
        order = await place("nasi-goreng")
        gateway = SlowGateway(service, catalog)
        display = make_display(gateway, request_timeout=0.05)
        await display.refresh()
        before = display.orders

        mutation = await display.request_transition(order.id, PREPARING)

        assert mutation.rolled_back
        assert isinstance(mutation.error, TransportFailure)
        assert display.orders is before

    @pytest.mark.asyncio
    async def test_locally_invalid_request_is_not_sent(self, service, gateway, make_display, place):
        order = await place("nasi-goreng")
        await service.request_transition(order.id, CANCELLED)
        display = make_display(gateway)
        await display.refresh()
        before = display.orders
        gateway.request_transition = AsyncMock(wraps=gateway.request_transition)

        mutation = await display.request_transition(order.id, PREPARING)

        assert mutation.rolled_back
        assert isinstance(mutation.error, InvalidTransition)
        assert not mutation.retryable
        assert mutation.message == mutation.error.message
        gateway.request_transition.assert_not_awaited()
        assert display.orders is before

    @pytest.mark.asyncio
    async def test_server_rejection_of_stale_cache_rolls_back(self, service, gateway, make_display, place):
        order = await place("nasi-goreng")
        display = make_display(gateway)
        await display.refresh()
        # Another display cancels it after our last poll
        await service.request_transition(order.id, CANCELLED)

        mutation = await display.request_transition(order.id, PREPARING)

        assert mutation.rolled_back
        assert isinstance(mutation.error, InvalidTransition)
        assert display.get_cached(order.id).status == QUEUED

        await display.refresh()
        assert display.get_cached(order.id).status == CANCELLED

    @pytest.mark.asyncio
    async def test_rollback_leaves_other_orders_alone(self, service, catalog, make_display, place):
        first = await place("nasi-goreng")
        second = await place("sate-ayam")
        gateway = GatedFailingGateway(service, catalog)
        display = make_display(gateway)
        await display.refresh()

        task_second = asyncio.create_task(display.request_transition(second.id, PREPARING))
        await wait_until_pending(display, second.id)
        task_first = asyncio.create_task(display.request_transition(first.id, PREPARING))
        await wait_until_pending(display, first.id)

        gateway.gate(second.id).set()
        assert (await task_second).rolled_back
        assert display.get_cached(second.id).status == QUEUED
        assert display.get_cached(first.id).status == PREPARING

        gateway.gate(first.id).set()
        assert (await task_first).rolled_back
        assert display.get_cached(first.id).status == QUEUED
        assert display.get_cached(second.id).status == QUEUED
        assert (await service.get_order(second.id)).status == QUEUED

    @pytest.mark.asyncio
    async def test_unknown_status_rolls_back(self, gateway, make_display, place):
        order = await place("nasi-goreng")
        display = make_display(gateway)
        await display.refresh()
        before = display.orders
        settled = []
        display.on_settled = settled.append

        mutation = await display.request_transition(order.id, "served")

        assert mutation.rolled_back
        assert isinstance(mutation.error, InvalidTransition)
        assert "unknown status" in mutation.message
        assert settled == [mutation]
        assert not display.is_pending(order.id)
        assert display.orders is before

    @pytest.mark.asyncio
    async def test_order_missing_from_cache(self, gateway, make_display):
        display = make_display(gateway)

        mutation = await display.request_transition("missing", PREPARING)

        assert mutation.rolled_back
        assert isinstance(mutation.error, NotFound)


class TestInFlight:

    @pytest.mark.asyncio
    async def test_second_request_for_same_order_is_refused(self, service, catalog, make_display, place):
        order = await place("nasi-goreng")
        gateway = SlowGateway(service, catalog)
        display = make_display(gateway)
        await display.refresh()

        task = asyncio.create_task(display.request_transition(order.id, PREPARING))
        await wait_until_pending(display, order.id)

        with pytest.raises(MutationInFlight):
            await display.request_transition(order.id, CANCELLED)

        gateway.release.set()
        assert (await task).committed

    @pytest.mark.asyncio
    async def test_polls_are_dropped_while_in_flight(self, service, catalog, make_display, place):
        order = await place("nasi-goreng")
        gateway = SlowGateway(service, catalog)
        display = make_display(gateway)
        await display.refresh()

        task = asyncio.create_task(display.request_transition(order.id, PREPARING))
        await wait_until_pending(display, order.id)

        assert await display.refresh() is False
        assert display.get_cached(order.id).status == PREPARING

        gateway.release.set()
        await task
        assert await display.refresh() is True


class TestConvergence:

    @pytest.mark.asyncio
    async def test_other_displays_catch_up_by_polling(self, gateway, make_display, place):
        order = await place("nasi-goreng", "es-teh")
        kitchen = make_display(gateway, station=Station.KITCHEN)
        bar = make_display(gateway, station=Station.BAR)
        await kitchen.refresh()

        async with bar:
            await asyncio.sleep(0.02)
            assert bar.get_cached(order.id).status == QUEUED

            await kitchen.request_transition(order.id, PREPARING)
            await asyncio.sleep(0.15)

            assert bar.get_cached(order.id).status == PREPARING
            assert [o.id for o in await bar.list_active_orders(Station.BAR)] == [order.id]

        assert not bar.poller.running


class TestPollingTask:

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_polling(self):
        calls = []

        async def callback():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("offline")

        poller = PollingTask(callback, interval=0.01, name="test")

        poller.start()
        await asyncio.sleep(0.05)
        await poller.stop()

        assert poller.failures == 1
        assert poller.ticks >= 2
        assert not poller.running

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            PollingTask(AsyncMock(), interval=0)
