"""
Order Store Abstract Base Class

Defines the interface contract for the durable record of orders. The store
serializes writes to one record but offers no application-level locking;
`update_order_status` accepts an `expected_status` so that a status change
is a compare-and-set on a single field.

Design Pattern: Strategy Pattern
    - InMemoryOrderStore for development, tests and simulations
    - SqlOrderStore for staging/production
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from fulfillment.core.exceptions import InvalidTransition
from fulfillment.models import (
    FulfillmentStatus,
    Station,
    TransitionOutcome,
    TransitionSource,
)
from fulfillment.schemas import OrderCreate, OrderRecord, OrderStatusEventRecord


def coerce_status(value, current=None) -> FulfillmentStatus:
    """Reject anything outside the status enumeration."""
    try:
        return FulfillmentStatus(value)
    except ValueError:
        raise InvalidTransition(current, value, "unknown status")


class BaseOrderStore(ABC):
    """
    Abstract base class for order stores.

    Example:
        >>> store = get_order_store()
        >>> order = await store.create_order(order_data)
        >>> order = await store.update_order_status(
        ...     order.id, FulfillmentStatus.PREPARING,
        ...     expected_status=FulfillmentStatus.QUEUED,
        ... )
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the store backend name (e.g. "memory", "sql")."""
        pass

    @abstractmethod
    async def create_order(self, data: OrderCreate) -> OrderRecord:
        """
        Persist a new order in `queued` state.

        Args:
            data: Validated order payload from the checkout collaborator

        Returns:
            OrderRecord: The stored order, with id and timestamps
        """
        pass

    @abstractmethod
    async def get_orders(self) -> List[OrderRecord]:
        """Return every order, newest first."""
        pass

    @abstractmethod
    async def get_order(self, order_id: str) -> OrderRecord:
        """
        Return one order.

        Raises:
            NotFound: If the id does not exist
        """
        pass

    @abstractmethod
    async def update_order_status(
        self,
        order_id: str,
        status: FulfillmentStatus,
        expected_status: Optional[FulfillmentStatus] = None,
    ) -> OrderRecord:
        """
        Set the fulfillment status of one order.

        Args:
            order_id: Order to update
            status: New status; must be a FulfillmentStatus value
            expected_status: If given, only write when the stored status
                still equals it

        Returns:
            OrderRecord: The order after the write

        Raises:
            NotFound: If the id does not exist
            ConflictOnWrite: If the stored status differs from `expected_status`
            InvalidTransition: If `status` is not a known status
            TransportFailure: If the backend cannot be reached
        """
        pass

    @abstractmethod
    async def record_event(
        self,
        order_id: str,
        from_status: Optional[FulfillmentStatus],
        to_status: FulfillmentStatus,
        outcome: TransitionOutcome,
        station: Optional[Station] = None,
        source: TransitionSource = TransitionSource.STATION,
        detail: Optional[str] = None,
    ) -> OrderStatusEventRecord:
        """Append one entry to the order's transition history."""
        pass

    @abstractmethod
    async def get_events(self, order_id: str) -> List[OrderStatusEventRecord]:
        """Return the transition history of one order, oldest first."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify the store is reachable.

        Returns:
            bool: True if the store can serve reads
        """
        pass
