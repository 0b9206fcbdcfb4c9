"""Tests for the station router and preparation tickets."""

import pytest

from fulfillment.core.exceptions import EmptyTicket
from fulfillment.models import Station


class TestRoute:

    def test_mixed_order_is_split_preserving_item_order(self, router, make_order):
        order = make_order("es-teh", "nasi-goreng", "kopi-susu", "sate-ayam")

        routed = router.route(order)

        assert [i.item_id for i in routed.kitchen_items] == ["nasi-goreng", "sate-ayam"]
        assert [i.item_id for i in routed.bar_items] == ["es-teh", "kopi-susu"]
        assert routed.is_mixed
        assert routed.stations == {Station.KITCHEN, Station.BAR}
        assert routed.owning_station is None
        assert not routed.is_station_pure(Station.KITCHEN)
        assert not routed.is_station_pure(Station.BAR)

    def test_drink_only_order_is_bar_pure(self, router, make_order):
        routed = router.route(make_order(("es-teh", 1), "jus-alpukat"))

        assert routed.is_station_pure(Station.BAR)
        assert not routed.is_mixed
        assert routed.owning_station == Station.BAR
        assert routed.kitchen_items == ()

    def test_food_only_order_is_kitchen_pure(self, router, make_order):
        routed = router.route(make_order(("nasi-goreng", 2)))

        assert routed.is_station_pure(Station.KITCHEN)
        assert routed.owning_station == Station.KITCHEN

    def test_empty_order_belongs_to_kitchen(self, router, make_order):
        routed = router.route(make_order())

        assert routed.stations == {Station.KITCHEN}
        assert routed.is_station_pure(Station.KITCHEN)
        assert not routed.is_mixed

    def test_unknown_items_fall_back_to_kitchen(self, router, make_order):
        routed = router.route(make_order("ghost-item", "es-teh"))

        assert [i.item_id for i in routed.kitchen_items] == ["ghost-item"]
        assert routed.is_mixed

    def test_station_lookup_is_total(self, router, make_order):
        order = make_order("nasi-goreng", "es-teh", "ghost-item", "another-ghost")

        stations = [router.station_of(item) for item in order.items]

        assert stations == [Station.KITCHEN, Station.BAR, Station.KITCHEN, Station.KITCHEN]


class TestFilterForStation:

    def test_mixed_orders_show_in_both_queues(self, router, make_order):
        food = make_order("nasi-goreng", order_id="food")
        drink = make_order("es-teh", order_id="drink")
        mixed = make_order("mie-ayam", "kopi-susu", order_id="mixed")
        empty = make_order(order_id="empty")
        orders = [food, drink, mixed, empty]

        kitchen = [o.id for o in router.filter_for_station(orders, Station.KITCHEN)]
        bar = [o.id for o in router.filter_for_station(orders, Station.BAR)]

        assert kitchen == ["food", "mixed", "empty"]
        assert bar == ["drink", "mixed"]

    def test_no_station_returns_everything(self, router, make_order):
        orders = [make_order("nasi-goreng"), make_order("es-teh")]
        assert router.filter_for_station(orders, None) == orders


class TestTickets:

    def test_bar_ticket_lists_only_drinks(self, router, make_order):
        order = make_order(("nasi-goreng", 2), ("es-teh", 3), notes="Tidak pedas")

        ticket = router.render_ticket(order, Station.BAR)

        assert ticket.station == Station.BAR
        assert [(line.name, line.quantity) for line in ticket.lines] == [("Es Teh Manis", 3)]
        assert "BAR TICKET" in ticket.text
        assert " 3x Es Teh Manis" in ticket.text
        assert "* Tidak pedas" in ticket.text
        assert "Nasi Goreng" not in ticket.text

    def test_full_ticket_keeps_insertion_order(self, router, make_order):
        order = make_order("kopi-susu", "nasi-goreng")

        ticket = router.render_ticket(order)

        assert [line.name for line in ticket.lines] == ["Kopi Susu", "Nasi Goreng"]
        assert ticket.text.splitlines()[0].strip() == "ORDER TICKET"

    def test_station_without_items_raises(self, router, make_order):
        with pytest.raises(EmptyTicket):
            router.render_ticket(make_order("nasi-goreng"), Station.BAR)
