"""Tests for the order status state machine."""

import pytest

from fulfillment.core.exceptions import InvalidTransition
from fulfillment.models import FulfillmentStatus, PaymentStatus, Station
from fulfillment.services.state_machine import (
    ALLOWED_TRANSITIONS,
    DRINKS_READY_MESSAGE,
    OrderStatusMachine,
)

QUEUED = FulfillmentStatus.QUEUED
PREPARING = FulfillmentStatus.PREPARING
READY = FulfillmentStatus.READY
COMPLETED = FulfillmentStatus.COMPLETED
CANCELLED = FulfillmentStatus.CANCELLED


@pytest.fixture
def food(router, make_order):
    return router.route(make_order("nasi-goreng"))


@pytest.fixture
def drinks(router, make_order):
    return router.route(make_order("es-teh", "jus-alpukat"))


@pytest.fixture
def mixed(router, make_order):
    return router.route(make_order("nasi-goreng", "es-teh"))


class TestTransitionTable:

    @pytest.mark.parametrize("current,target", [
        (QUEUED, PREPARING),
        (QUEUED, CANCELLED),
        (PREPARING, CANCELLED),
        (READY, COMPLETED),
        (READY, CANCELLED),
    ])
    def test_allowed_transitions_apply(self, machine, food, current, target):
        decision = machine.decide(current, target, Station.KITCHEN, food)

        assert decision.applies
        assert decision.from_status == current
        assert decision.to_status == target
        assert not decision.schedules_auto_completion

    @pytest.mark.parametrize("current,target", [
        (QUEUED, READY),
        (QUEUED, COMPLETED),
        (QUEUED, QUEUED),
        (PREPARING, QUEUED),
        (PREPARING, COMPLETED),
        (PREPARING, PREPARING),
        (READY, PREPARING),
        (READY, READY),
    ])
    def test_disallowed_transitions_raise(self, machine, food, current, target):
        with pytest.raises(InvalidTransition):
            machine.decide(current, target, Station.KITCHEN, food)

    @pytest.mark.parametrize("terminal", [COMPLETED, CANCELLED])
    @pytest.mark.parametrize("target", list(FulfillmentStatus))
    @pytest.mark.parametrize("station", [Station.KITCHEN, Station.BAR, None])
    def test_terminal_states_are_absorbing(self, machine, mixed, terminal, target, station):
        assert ALLOWED_TRANSITIONS[terminal] == frozenset()
        with pytest.raises(InvalidTransition):
            machine.decide(terminal, target, station, mixed)

    def test_accepts_raw_status_values(self, machine, food):
        decision = machine.decide("queued", "preparing", None, food)
        assert decision.to_status == PREPARING


class TestReadyAuthority:

    def test_kitchen_readies_food_order(self, machine, food):
        decision = machine.decide(PREPARING, READY, Station.KITCHEN, food)

        assert decision.applies
        assert decision.to_status == READY
        assert decision.schedules_auto_completion

    def test_bar_readies_drink_only_order(self, machine, drinks):
        decision = machine.decide(PREPARING, READY, Station.BAR, drinks)

        assert decision.applies
        assert decision.schedules_auto_completion

    def test_bar_on_mixed_order_is_acknowledged(self, machine, mixed):
        decision = machine.decide(PREPARING, READY, Station.BAR, mixed)

        assert not decision.applies
        assert decision.acknowledged
        assert decision.to_status == PREPARING
        assert decision.message == DRINKS_READY_MESSAGE
        assert not decision.schedules_auto_completion

    def test_kitchen_readies_mixed_order(self, machine, mixed):
        decision = machine.decide(PREPARING, READY, Station.KITCHEN, mixed)

        assert decision.applies
        assert decision.to_status == READY

    def test_bar_on_food_only_order_is_acknowledged(self, machine, food):
        decision = machine.decide(PREPARING, READY, Station.BAR, food)

        assert not decision.applies
        assert decision.acknowledged

    def test_kitchen_on_drink_only_order_is_acknowledged(self, machine, drinks):
        decision = machine.decide(PREPARING, READY, Station.KITCHEN, drinks)

        assert not decision.applies
        assert decision.to_status == PREPARING

    def test_ready_without_station_is_rejected(self, machine, food):
        with pytest.raises(InvalidTransition, match="requesting station"):
            machine.decide(PREPARING, READY, None, food)

    def test_empty_order_belongs_to_kitchen(self, machine, router, make_order):
        empty = router.route(make_order())

        assert machine.decide(PREPARING, READY, Station.KITCHEN, empty).applies
        assert not machine.decide(PREPARING, READY, Station.BAR, empty).applies

    @pytest.mark.parametrize("station", [Station.KITCHEN, Station.BAR])
    def test_payment_status_is_irrelevant(self, machine, router, make_order, station):
        order = make_order("es-teh").model_copy(update={"payment_status": PaymentStatus.PAID})
        decision = machine.decide(QUEUED, PREPARING, station, router.route(order))
        assert decision.applies
