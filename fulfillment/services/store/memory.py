"""
In-Memory Order Store Implementation

Keeps orders in a dict guarded by an asyncio lock. Used in development mode
(ENV_MODE=development), by the test-suite, and by the multi-display
simulation to:
    - Run the kitchen/bar/cashier flow without a database
    - Inject write failures and latency to exercise display rollbacks

Behavior:
    - Simulates response times between min_latency and max_latency
    - Fails status writes with TransportFailure at `failure_rate`
    - `fail_next_updates(n)` makes the next n status writes fail
"""

import asyncio
import itertools
import logging
import random
import uuid
from typing import Dict, List, Optional

from fulfillment.core.exceptions import ConflictOnWrite, NotFound, TransportFailure
from fulfillment.models import (
    FulfillmentStatus,
    Station,
    TransitionOutcome,
    TransitionSource,
    utcnow,
)
from fulfillment.schemas import OrderCreate, OrderRecord, OrderStatusEventRecord
from fulfillment.services.store.base import BaseOrderStore, coerce_status

logger = logging.getLogger(__name__)


class InMemoryOrderStore(BaseOrderStore):
    """
    Dict-backed order store.

    Attributes:
        failure_rate: Probability that a status write fails (0.0-1.0)
        min_latency: Minimum simulated response time in seconds
        max_latency: Maximum simulated response time in seconds
    """

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency

        self._orders: Dict[str, OrderRecord] = {}
        self._events: List[OrderStatusEventRecord] = []
        self._event_ids = itertools.count(1)
        self._forced_failures = 0
        self._lock = asyncio.Lock()

        logger.info(
            f"InMemoryOrderStore initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={min_latency}-{max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        return "memory"

    def fail_next_updates(self, count: int = 1) -> None:
        """Make the next `count` status writes raise TransportFailure."""
        self._forced_failures += count

    async def _simulate_latency(self) -> None:
        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _should_fail(self) -> bool:
        if self._forced_failures > 0:
            self._forced_failures -= 1
            return True
        return self.failure_rate > 0 and random.random() < self.failure_rate

    async def create_order(self, data: OrderCreate) -> OrderRecord:
        await self._simulate_latency()
        now = utcnow()
        order = OrderRecord(
            id=str(uuid.uuid4()),
            customer_name=data.customer_name,
            table_number=data.table_number,
            items=list(data.items),
            subtotal=data.subtotal,
            discount=data.discount,
            total=data.total,
            payment_method=data.payment_method,
            payment_status=data.payment_status,
            status=FulfillmentStatus.QUEUED,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._orders[order.id] = order
        return order

    def add(self, order: OrderRecord) -> OrderRecord:
        """Insert a prebuilt record as-is (fixtures and simulations)."""
        self._orders[order.id] = order
        return order

    async def get_orders(self) -> List[OrderRecord]:
        await self._simulate_latency()
        async with self._lock:
            return list(reversed(self._orders.values()))

    async def get_order(self, order_id: str) -> OrderRecord:
        await self._simulate_latency()
        async with self._lock:
            order = self._orders.get(order_id)
        if order is None:
            raise NotFound("Order", order_id)
        return order

    async def update_order_status(
        self,
        order_id: str,
        status: FulfillmentStatus,
        expected_status: Optional[FulfillmentStatus] = None,
    ) -> OrderRecord:
        await self._simulate_latency()
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                raise NotFound("Order", order_id)
            status = coerce_status(status, order.status)

            if self._should_fail():
                logger.debug(f"Memory store: simulated write failure for order {order_id}")
                raise TransportFailure(f"Simulated store failure updating order {order_id}")

            if expected_status is not None and order.status != expected_status:
                raise ConflictOnWrite(order_id, expected_status, order.status)

            updated = order.model_copy(update={"status": status, "updated_at": utcnow()})
            self._orders[order_id] = updated
            return updated

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
        event = OrderStatusEventRecord(
            id=next(self._event_ids),
            order_id=order_id,
            from_status=from_status,
            to_status=to_status,
            station=station,
            source=source,
            outcome=outcome,
            detail=detail,
            created_at=utcnow(),
        )
        async with self._lock:
            self._events.append(event)
        return event

    async def get_events(self, order_id: str) -> List[OrderStatusEventRecord]:
        async with self._lock:
            return [e for e in self._events if e.order_id == order_id]

    async def health_check(self) -> bool:
        return True
