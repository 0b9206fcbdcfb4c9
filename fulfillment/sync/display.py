"""
Display Synchronizer

One instance per display (kitchen tablet, bar tablet, cashier screen).
Keeps a local copy of the order collection and changes it optimistically:

    1. snapshot the cached collection
    2. apply the change locally with the engine's own rules
    3. send it to the engine
    4. success: take the engine's order, then re-fetch the collection
    5. failure or timeout: put the order's snapshotted entry back

Each request is tracked as a Mutation value moving pending -> committed or
pending -> rolled_back. A display never has two mutations in flight for the
same order, and polls that land while a mutation is in flight are dropped
so they cannot overwrite the optimistic edit.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union

from fulfillment.core.config import get_settings
from fulfillment.core.exceptions import (
    FulfillmentError,
    InvalidTransition,
    MutationInFlight,
    NotFound,
    TransportFailure,
)
from fulfillment.models import FulfillmentStatus, Station, utcnow
from fulfillment.schemas import OrderRecord
from fulfillment.services.classification import ClassificationIndexProvider
from fulfillment.services.routing import StationRouter
from fulfillment.services.state_machine import OrderStatusMachine
from fulfillment.services.store.base import coerce_status
from fulfillment.sync.gateway import BaseOrdersGateway
from fulfillment.sync.polling import PollingTask

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "Could not update the order status, please try again"


class MutationState(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class Mutation:
    """
    One status change requested from a display.

    Attributes:
        order_id: Order being changed
        target: Requested status (left as given when it is not a known status)
        station: Requesting station, if any
        snapshot: The display's full order collection before the change
        state: pending, committed or rolled_back
        acknowledged: Committed without a status change (drinks ready on a mixed order)
        result: The engine's copy of the order after a commit
        error: Why the mutation was rolled back
        message: Text to show the operator
    """
    order_id: str
    target: Union[FulfillmentStatus, str]
    station: Optional[Station]
    snapshot: Tuple[OrderRecord, ...]
    state: MutationState = MutationState.PENDING
    acknowledged: bool = False
    result: Optional[OrderRecord] = None
    error: Optional[FulfillmentError] = None
    message: str = ""

    @property
    def committed(self) -> bool:
        return self.state == MutationState.COMMITTED

    @property
    def rolled_back(self) -> bool:
        return self.state == MutationState.ROLLED_BACK

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable

    def commit(self, result: OrderRecord, message: str, acknowledged: bool = False) -> "Mutation":
        return replace(
            self,
            state=MutationState.COMMITTED,
            result=result,
            message=message,
            acknowledged=acknowledged,
        )

    def roll_back(self, error: FulfillmentError) -> "Mutation":
        message = RETRY_MESSAGE if error.retryable else error.message
        return replace(self, state=MutationState.ROLLED_BACK, error=error, message=message)


class DisplaySynchronizer:
    """
    Local order cache of one display, kept in step with the engine.

    Args:
        gateway: How this display reaches the engine
        station: The display's own station (None for a cashier screen)
        poll_interval: Seconds between full re-fetches
        request_timeout: Deadline for one status change; expiry counts as failure
        catalog_ttl: Maximum age of the local classification index
        on_settled: Called with every finished mutation (e.g. to show a toast)
    """

    def __init__(
        self,
        gateway: BaseOrdersGateway,
        station: Optional[Station] = None,
        poll_interval: Optional[float] = None,
        request_timeout: Optional[float] = None,
        catalog_ttl: Optional[float] = None,
        beverage_tokens: Optional[List[str]] = None,
        machine: Optional[OrderStatusMachine] = None,
        on_settled: Optional[Callable[[Mutation], None]] = None,
    ):
        settings = get_settings()
        self.gateway = gateway
        self.station = station
        self.request_timeout = request_timeout or settings.request_timeout_seconds
        self.machine = machine or OrderStatusMachine()
        self.on_settled = on_settled
        self.index_provider = ClassificationIndexProvider(
            loader=gateway.fetch_catalog,
            ttl=settings.catalog_cache_ttl_seconds if catalog_ttl is None else catalog_ttl,
            beverage_tokens=beverage_tokens or settings.beverage_tokens_list,
        )
        self.poller = PollingTask(
            self.refresh,
            poll_interval or settings.poll_interval_seconds,
            name=f"orders-{station.value if station else 'all'}",
        )

        self._orders: Tuple[OrderRecord, ...] = ()
        self._in_flight: Dict[str, Mutation] = {}

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        self.poller.start()

    async def stop(self) -> None:
        await self.poller.stop()

    async def __aenter__(self) -> "DisplaySynchronizer":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    # =========================================================================
    # CACHE
    # =========================================================================

    @property
    def orders(self) -> Tuple[OrderRecord, ...]:
        return self._orders

    def get_cached(self, order_id: str) -> Optional[OrderRecord]:
        return next((o for o in self._orders if o.id == order_id), None)

    def is_pending(self, order_id: str) -> bool:
        return order_id in self._in_flight

    async def refresh(self) -> bool:
        """
        Re-fetch the order collection.

        Returns:
            bool: False if the result was dropped because a mutation is in flight
        """
        orders = tuple(await self.gateway.fetch_orders())
        if self._in_flight:
            logger.debug(f"Poll dropped: {len(self._in_flight)} mutation(s) in flight")
            return False
        self._orders = orders
        return True

    async def router(self) -> StationRouter:
        return StationRouter(await self.index_provider.get_index())

    async def list_active_orders(self, station_filter: Optional[Station] = None) -> List[OrderRecord]:
        """Cached non-terminal orders, optionally only those with work for a station."""
        active = [order for order in self._orders if order.is_active]
        if station_filter is None:
            return active
        return (await self.router()).filter_for_station(active, station_filter)

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def request_transition(
        self,
        order_id: str,
        to_status: FulfillmentStatus,
        station: Optional[Station] = None,
    ) -> Mutation:
        """
        Change an order's status optimistically.

        Returns:
            Mutation: committed or rolled back; never pending

        Raises:
            MutationInFlight: If this display is still waiting on a change to the same order
        """
        if order_id in self._in_flight:
            raise MutationInFlight(order_id)

        station = station if station is not None else self.station
        snapshot = self._orders
        cached = self.get_cached(order_id)
        try:
            target = coerce_status(to_status, cached.status if cached is not None else None)
        except InvalidTransition as e:
            logger.info(f"Order {order_id}: {e.message}")
            settled = Mutation(order_id=order_id, target=to_status, station=station, snapshot=snapshot).roll_back(e)
            if self.on_settled is not None:
                self.on_settled(settled)
            return settled

        mutation = Mutation(order_id=order_id, target=target, station=station, snapshot=snapshot)
        self._in_flight[order_id] = mutation
        try:
            settled = await self._run(mutation)
        finally:
            self._in_flight.pop(order_id, None)

        if settled.committed and not settled.acknowledged:
            try:
                await self.refresh()
            except FulfillmentError as e:
                logger.warning(f"Refresh after updating order {order_id} failed: {e.message}")

        if self.on_settled is not None:
            self.on_settled(settled)
        return settled

    async def _run(self, mutation: Mutation) -> Mutation:
        order = self.get_cached(mutation.order_id)
        if order is None:
            return mutation.roll_back(NotFound("Order", mutation.order_id))

        try:
            routed = (await self.router()).route(order)
            decision = self.machine.decide(order.status, mutation.target, mutation.station, routed)
        except FulfillmentError as e:
            logger.info(f"Order {order.id}: {e.message}")
            return mutation.roll_back(e)

        if not decision.applies:
            return mutation.commit(order, decision.message, acknowledged=True)

        optimistic = order.model_copy(update={"status": decision.to_status, "updated_at": utcnow()})
        self._orders = tuple(optimistic if o.id == order.id else o for o in self._orders)

        try:
            response = await asyncio.wait_for(
                self.gateway.request_transition(order.id, decision.to_status, mutation.station),
                timeout=self.request_timeout,
            )
        except asyncio.TimeoutError:
            error = TransportFailure(f"Status update for order {order.id} timed out")
            return self._roll_back(mutation, error)
        except FulfillmentError as e:
            return self._roll_back(mutation, e)

        self._orders = tuple(response.order if o.id == order.id else o for o in self._orders)
        return mutation.commit(response.order, response.message, acknowledged=response.acknowledged)

    def _roll_back(self, mutation: Mutation, error: FulfillmentError) -> Mutation:
        # Only this order's entry goes back; other mutations may have moved theirs since
        previous = next((o for o in mutation.snapshot if o.id == mutation.order_id), None)
        restored = tuple(
            previous if previous is not None and o.id == mutation.order_id else o
            for o in self._orders
        )
        if len(restored) == len(mutation.snapshot) and all(
            a is b for a, b in zip(restored, mutation.snapshot)
        ):
            restored = mutation.snapshot
        self._orders = restored
        logger.warning(
            f"Order {mutation.order_id}: {mutation.target.value} rolled back ({error.message})"
        )
        return mutation.roll_back(error)
