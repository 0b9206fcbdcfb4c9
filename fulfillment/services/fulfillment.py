"""
Fulfillment Service

Server side of a status change. Reads the order, routes its items with the
current classification index, asks the state machine what the request
means, and writes the result to the store as a compare-and-set on the
status it read. Every attempt that gets this far is recorded in the order's
history.

Error propagation:
    - InvalidTransition, NotFound: fatal to the request, nothing written
    - ConflictOnWrite, TransportFailure: nothing written, caller may retry
    - Auto-completion failures never propagate; the order stays `ready`
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from fulfillment.core.config import get_settings
from fulfillment.core.exceptions import ConflictOnWrite, FulfillmentError, InvalidTransition
from fulfillment.models import (
    FulfillmentStatus,
    Station,
    TransitionOutcome,
    TransitionSource,
)
from fulfillment.schemas import OrderCreate, OrderRecord, OrderStatusEventRecord, StationTicket
from fulfillment.services.autocomplete import BaseAutoCompleter, get_auto_completer
from fulfillment.services.catalog import get_catalog_service
from fulfillment.services.classification import ClassificationIndexProvider
from fulfillment.services.routing import RoutedOrder, StationRouter
from fulfillment.services.state_machine import OrderStatusMachine, TransitionDecision
from fulfillment.services.store import BaseOrderStore, get_order_store
from fulfillment.services.store.base import coerce_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    """The order after a request, and what the state machine decided."""
    order: OrderRecord
    decision: TransitionDecision


class FulfillmentService:
    """
    Owns the fulfillment status of orders.

    Attributes:
        store: Durable order records
        index_provider: Source of the item -> station classification
        machine: Transition rules
        auto_completer: Scheduler for ready -> completed (None disables it)
    """

    def __init__(
        self,
        store: BaseOrderStore,
        index_provider: ClassificationIndexProvider,
        machine: Optional[OrderStatusMachine] = None,
        auto_completer: Optional[BaseAutoCompleter] = None,
    ):
        self.store = store
        self.index_provider = index_provider
        self.machine = machine or OrderStatusMachine()
        self.auto_completer = auto_completer

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def router(self) -> StationRouter:
        return StationRouter(await self.index_provider.get_index())

    async def route(self, order: OrderRecord) -> RoutedOrder:
        return (await self.router()).route(order)

    async def get_order(self, order_id: str) -> OrderRecord:
        return await self.store.get_order(order_id)

    async def list_orders(self) -> List[OrderRecord]:
        return await self.store.get_orders()

    async def list_active_orders(self, station: Optional[Station] = None) -> List[OrderRecord]:
        """Non-terminal orders, optionally only those with work for `station`."""
        orders = [order for order in await self.store.get_orders() if order.is_active]
        if station is None:
            return orders
        return (await self.router()).filter_for_station(orders, station)

    async def get_history(self, order_id: str) -> List[OrderStatusEventRecord]:
        await self.store.get_order(order_id)
        return await self.store.get_events(order_id)

    async def render_ticket(self, order_id: str, station: Optional[Station] = None) -> StationTicket:
        order = await self.store.get_order(order_id)
        return (await self.router()).render_ticket(order, station)

    # =========================================================================
    # COMMANDS
    # =========================================================================

    async def create_order(self, data: OrderCreate) -> OrderRecord:
        order = await self.store.create_order(data)
        logger.info(
            f"Order {order.id} created for {order.customer_name} "
            f"(table {order.table_number}, {len(order.items)} items, total {order.total})"
        )
        return order

    async def request_transition(
        self,
        order_id: str,
        to_status: FulfillmentStatus,
        station: Optional[Station] = None,
    ) -> TransitionResult:
        """
        Apply a status change request from a display.

        Args:
            order_id: Order to move
            to_status: Requested status
            station: Requesting station (required for `ready`)

        Returns:
            TransitionResult: The order after the request and the decision

        Raises:
            NotFound, InvalidTransition, ConflictOnWrite, TransportFailure
        """
        order = await self.store.get_order(order_id)
        to_status = coerce_status(to_status, order.status)
        routed = await self.route(order)

        try:
            decision = self.machine.decide(order.status, to_status, station, routed)
        except InvalidTransition as e:
            logger.info(f"Order {order_id}: rejected {e.message}")
            await self._record(order_id, order.status, to_status, TransitionOutcome.REJECTED, station, detail=e.message)
            raise

        if not decision.applies:
            await self._record(order_id, order.status, to_status, TransitionOutcome.ACKNOWLEDGED, station, detail=decision.message)
            return TransitionResult(order=order, decision=decision)

        try:
            updated = await self.store.update_order_status(
                order_id, decision.to_status, expected_status=order.status
            )
        except FulfillmentError as e:
            logger.warning(f"Order {order_id}: write {order.status.value} -> {to_status.value} failed: {e.message}")
            await self._record(order_id, order.status, to_status, TransitionOutcome.FAILED, station, detail=e.message)
            raise

        logger.info(
            f"Order {order_id}: {order.status.value} -> {updated.status.value}"
            + (f" (by {Station(station).value})" if station else "")
        )
        await self._record(order_id, order.status, updated.status, TransitionOutcome.APPLIED, station)

        if decision.schedules_auto_completion and self.auto_completer is not None:
            try:
                self.auto_completer.schedule(order_id, self.complete_ready_order)
            except Exception as e:
                # The ready write stands; completion is left to the station
                logger.error(
                    f"Scheduling auto-completion of order {order_id} failed, order left ready "
                    f"for manual completion: {e}"
                )
                await self._record(
                    order_id,
                    FulfillmentStatus.READY,
                    FulfillmentStatus.COMPLETED,
                    TransitionOutcome.FAILED,
                    source=TransitionSource.AUTO,
                    detail=f"scheduling failed: {e}",
                )

        return TransitionResult(order=updated, decision=decision)

    async def complete_ready_order(self, order_id: str) -> Optional[OrderRecord]:
        """
        Auto-completion step: move a `ready` order to `completed`.

        Never raises and never retries. Returns the completed order, or None
        when nothing was completed.
        """
        ready = FulfillmentStatus.READY
        completed = FulfillmentStatus.COMPLETED
        try:
            order = await self.store.get_order(order_id)
        except Exception as e:
            logger.error(f"Auto-completion of order {order_id} failed reading the order: {e}")
            await self._record(order_id, ready, completed, TransitionOutcome.FAILED, source=TransitionSource.AUTO, detail=str(e))
            return None

        if order.status != ready:
            logger.info(f"Order {order_id}: auto-completion skipped, status is {order.status.value}")
            await self._record(order_id, order.status, completed, TransitionOutcome.SKIPPED, source=TransitionSource.AUTO)
            return None

        try:
            updated = await self.store.update_order_status(order_id, completed, expected_status=ready)
        except ConflictOnWrite as e:
            logger.info(f"Order {order_id}: auto-completion skipped, {e.message}")
            await self._record(order_id, ready, completed, TransitionOutcome.SKIPPED, source=TransitionSource.AUTO, detail=e.message)
            return None
        except Exception as e:
            logger.error(
                f"Auto-completion of order {order_id} failed, order left ready "
                f"for manual completion: {e}"
            )
            await self._record(order_id, ready, completed, TransitionOutcome.FAILED, source=TransitionSource.AUTO, detail=str(e))
            return None

        logger.info(f"Order {order_id}: ready -> completed (auto)")
        await self._record(order_id, ready, completed, TransitionOutcome.APPLIED, source=TransitionSource.AUTO)
        return updated

    async def _record(
        self,
        order_id: str,
        from_status: Optional[FulfillmentStatus],
        to_status: FulfillmentStatus,
        outcome: TransitionOutcome,
        station: Optional[Station] = None,
        source: TransitionSource = TransitionSource.STATION,
        detail: Optional[str] = None,
    ) -> None:
        # History is best effort; the status write is what matters
        try:
            await self.store.record_event(
                order_id,
                from_status,
                to_status,
                outcome,
                station=Station(station) if station else None,
                source=source,
                detail=detail,
            )
        except Exception as e:
            logger.warning(f"Could not record {outcome.value} event for order {order_id}: {e}")


def build_index_provider(catalog=None) -> ClassificationIndexProvider:
    settings = get_settings()
    catalog = catalog or get_catalog_service()
    return ClassificationIndexProvider(
        loader=catalog.get_snapshot,
        ttl=settings.catalog_cache_ttl_seconds,
        beverage_tokens=settings.beverage_tokens_list,
    )


@lru_cache()
def get_fulfillment_service() -> FulfillmentService:
    """Get the process-wide fulfillment service wired per ENV_MODE."""
    return FulfillmentService(
        store=get_order_store(),
        index_provider=build_index_provider(),
        auto_completer=get_auto_completer(),
    )


def reset_fulfillment_service() -> None:
    get_fulfillment_service.cache_clear()
