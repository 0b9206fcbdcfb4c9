"""
Order Status State Machine

Decides what a status change request does to an order. Pure logic: no I/O,
no clock, no knowledge of payment status.

    queued ──► preparing ──► ready ──(auto, grace delay)──► completed
       │           │           │
       └───────────┴───────────┴──────────────────────────► cancelled

`completed` and `cancelled` are terminal. Any request against them fails.

Only the station that owns an order may mark it ready. The kitchen owns
every order with food on it (including mixed food+drink orders); the bar
owns drink-only orders. A `ready` request from a station that does not own
the order is acknowledged without changing the status: on a mixed order
this is the bar's "drinks are ready" signal while the food is still cooking.
"""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

from fulfillment.core.exceptions import InvalidTransition
from fulfillment.models import FulfillmentStatus, Station
from fulfillment.services.routing import RoutedOrder

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[FulfillmentStatus, FrozenSet[FulfillmentStatus]] = {
    FulfillmentStatus.QUEUED: frozenset({FulfillmentStatus.PREPARING, FulfillmentStatus.CANCELLED}),
    FulfillmentStatus.PREPARING: frozenset({FulfillmentStatus.READY, FulfillmentStatus.CANCELLED}),
    FulfillmentStatus.READY: frozenset({FulfillmentStatus.COMPLETED, FulfillmentStatus.CANCELLED}),
    FulfillmentStatus.COMPLETED: frozenset(),
    FulfillmentStatus.CANCELLED: frozenset(),
}

MESSAGES = {
    FulfillmentStatus.PREPARING: "Order sent to preparation",
    FulfillmentStatus.READY: "Order is ready to serve",
    FulfillmentStatus.COMPLETED: "Order completed",
    FulfillmentStatus.CANCELLED: "Order cancelled",
}

DRINKS_READY_MESSAGE = "Drinks are ready, waiting for the kitchen to finish the food"


@dataclass(frozen=True)
class TransitionDecision:
    """
    Result of evaluating one request.

    Attributes:
        from_status: Status the decision was made against
        to_status: Status the order has after the decision
        applies: True if the stored status must change
        acknowledged: True for a ready signal that leaves the status alone
        schedules_auto_completion: True if `completed` should follow after the grace delay
        message: Human-readable outcome for the display
    """
    from_status: FulfillmentStatus
    to_status: FulfillmentStatus
    applies: bool
    acknowledged: bool = False
    schedules_auto_completion: bool = False
    message: str = ""


class OrderStatusMachine:
    """Transition rules for an order's fulfillment status."""

    def can_transition(self, current: FulfillmentStatus, target: FulfillmentStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[current]

    def decide(
        self,
        current: FulfillmentStatus,
        target: FulfillmentStatus,
        station: Optional[Station],
        routed: RoutedOrder,
    ) -> TransitionDecision:
        """
        Evaluate a request to move an order from `current` to `target`.

        Args:
            current: The order's status as last read
            target: Requested status
            station: Requesting station; required when `target` is ready
            routed: The order partitioned by station

        Returns:
            TransitionDecision

        Raises:
            InvalidTransition: If `target` is not reachable from `current`,
                or a ready request names no station
        """
        current = FulfillmentStatus(current)
        target = FulfillmentStatus(target)

        if current.is_terminal:
            raise InvalidTransition(current, target, f"order is already {current.value}")
        if not self.can_transition(current, target):
            raise InvalidTransition(current, target)

        if target == FulfillmentStatus.READY:
            return self._decide_ready(current, station, routed)

        return TransitionDecision(
            from_status=current,
            to_status=target,
            applies=True,
            message=MESSAGES[target],
        )

    def _decide_ready(
        self,
        current: FulfillmentStatus,
        station: Optional[Station],
        routed: RoutedOrder,
    ) -> TransitionDecision:
        if station is None:
            raise InvalidTransition(current, FulfillmentStatus.READY, "a requesting station is required")
        station = Station(station)

        if self.has_ready_authority(station, routed):
            return TransitionDecision(
                from_status=current,
                to_status=FulfillmentStatus.READY,
                applies=True,
                schedules_auto_completion=True,
                message=MESSAGES[FulfillmentStatus.READY],
            )

        if routed.is_mixed:
            message = DRINKS_READY_MESSAGE
        else:
            message = f"The {station.value} has nothing to prepare for this order"
        logger.debug(
            f"Order {routed.order.id}: ready from {station.value} acknowledged, "
            f"status stays {current.value}"
        )
        return TransitionDecision(
            from_status=current,
            to_status=current,
            applies=False,
            acknowledged=True,
            message=message,
        )

    @staticmethod
    def has_ready_authority(station: Station, routed: RoutedOrder) -> bool:
        """Kitchen owns pure-kitchen and mixed orders; bar owns pure-bar orders."""
        if station == Station.KITCHEN:
            return Station.KITCHEN in routed.stations
        return routed.is_station_pure(Station.BAR)
