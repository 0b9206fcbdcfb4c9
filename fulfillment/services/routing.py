"""
Station Router

Splits an order's line items between the kitchen and the bar and answers
the questions the displays and the state machine ask about an order:
which stations it belongs to, whether it is station-pure or mixed, and
which items go on each station's ticket.

Items the classification index does not know are routed to the kitchen,
and an order without items belongs to the kitchen, so no order can
disappear from every station's queue.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from fulfillment.core.exceptions import EmptyTicket, UnknownItem
from fulfillment.models import Station
from fulfillment.schemas import OrderItem, OrderRecord, StationTicket, TicketLine
from fulfillment.services.classification import ClassificationIndex

logger = logging.getLogger(__name__)

TICKET_WIDTH = 32


@dataclass(frozen=True)
class RoutedOrder:
    """An order with its items partitioned by station."""
    order: OrderRecord
    kitchen_items: Tuple[OrderItem, ...] = field(default_factory=tuple)
    bar_items: Tuple[OrderItem, ...] = field(default_factory=tuple)

    @property
    def stations(self) -> frozenset:
        stations = set()
        if self.kitchen_items or not self.bar_items:
            stations.add(Station.KITCHEN)
        if self.bar_items:
            stations.add(Station.BAR)
        return frozenset(stations)

    @property
    def is_mixed(self) -> bool:
        return bool(self.kitchen_items) and bool(self.bar_items)

    def is_station_pure(self, station: Station) -> bool:
        return self.stations == frozenset({station})

    @property
    def owning_station(self) -> Optional[Station]:
        """The single station of a station-pure order, None for mixed orders."""
        if self.is_mixed:
            return None
        return next(iter(self.stations))

    def items_for(self, station: Station) -> Tuple[OrderItem, ...]:
        return self.kitchen_items if station == Station.KITCHEN else self.bar_items


class StationRouter:
    """Pure, side-effect-free partitioning of orders over stations."""

    def __init__(self, index: ClassificationIndex):
        self.index = index

    def station_of(self, item: OrderItem) -> Station:
        """Total version of the index lookup: unknown items go to the kitchen."""
        try:
            return self.index.station_of(item.item_id)
        except UnknownItem:
            logger.debug(f"Item '{item.item_id}' not in catalog, routing to kitchen")
            return Station.KITCHEN

    def route(self, order: OrderRecord) -> RoutedOrder:
        kitchen: List[OrderItem] = []
        bar: List[OrderItem] = []
        for item in order.items:
            if self.station_of(item) == Station.BAR:
                bar.append(item)
            else:
                kitchen.append(item)
        return RoutedOrder(order=order, kitchen_items=tuple(kitchen), bar_items=tuple(bar))

    def filter_for_station(
        self,
        orders: Iterable[OrderRecord],
        station: Optional[Station],
    ) -> List[OrderRecord]:
        """Orders that belong in `station`'s queue. Mixed orders show in both."""
        if station is None:
            return list(orders)
        return [order for order in orders if station in self.route(order).stations]

    def render_ticket(self, order: OrderRecord, station: Optional[Station] = None) -> StationTicket:
        """
        Build the preparation ticket for one station, or for the whole
        order when `station` is None.

        Raises:
            EmptyTicket: If the order has nothing for that station
        """
        if station is None:
            items = tuple(order.items)
        else:
            items = self.route(order).items_for(station)
            if not items:
                raise EmptyTicket(order.id, station)

        lines = [TicketLine(name=item.name, quantity=item.quantity, notes=item.notes) for item in items]
        return StationTicket(
            order_id=order.id,
            station=station,
            customer_name=order.customer_name,
            table_number=order.table_number,
            created_at=order.created_at,
            lines=lines,
            text=_format_ticket(order, station, lines),
        )


def _format_ticket(order: OrderRecord, station: Optional[Station], lines: List[TicketLine]) -> str:
    title = f"{station.value.upper()} TICKET" if station else "ORDER TICKET"
    rule = "-" * TICKET_WIDTH
    out = [
        title.center(TICKET_WIDTH),
        rule,
        f"Order : #{order.id[-6:].upper()}",
        f"Table : {order.table_number}",
        f"Name  : {order.customer_name}",
        f"Time  : {order.created_at.strftime('%d/%m/%Y %H:%M')}",
        rule,
    ]
    for line in lines:
        out.append(f"{line.quantity:>2}x {line.name}")
        if line.notes:
            out.append(f"    * {line.notes}")
    out.append(rule)
    return "\n".join(out)
