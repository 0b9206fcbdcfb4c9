"""
SQL Order Store Implementation

Persists orders with the SQLAlchemy async engine. A status change is one
conditional UPDATE (`WHERE id = :id AND status = :expected`), so two
displays racing on the same order cannot both win: the loser sees zero
affected rows and gets ConflictOnWrite.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, text, update
from sqlalchemy.exc import OperationalError, InterfaceError
from sqlalchemy.ext.asyncio import async_sessionmaker

from fulfillment.core.exceptions import ConflictOnWrite, NotFound, TransportFailure
from fulfillment.models import (
    FulfillmentStatus,
    Order,
    OrderStatusEvent,
    Station,
    TransitionOutcome,
    TransitionSource,
    utcnow,
)
from fulfillment.schemas import OrderCreate, OrderRecord, OrderStatusEventRecord
from fulfillment.services.store.base import BaseOrderStore, coerce_status

logger = logging.getLogger(__name__)


class SqlOrderStore(BaseOrderStore):
    """Order store backed by the relational database."""

    def __init__(self, session_maker: Optional[async_sessionmaker] = None):
        if session_maker is None:
            from fulfillment.database import async_session_maker
            session_maker = async_session_maker
        self._session_maker = session_maker

    @property
    def provider_name(self) -> str:
        return "sql"

    async def create_order(self, data: OrderCreate) -> OrderRecord:
        new_order = Order(
            customer_name=data.customer_name,
            table_number=data.table_number,
            items=[item.model_dump() for item in data.items],
            subtotal=data.subtotal,
            discount=data.discount,
            total=data.total,
            payment_method=data.payment_method,
            payment_status=data.payment_status,
            status=FulfillmentStatus.QUEUED,
        )
        try:
            async with self._session_maker() as session:
                session.add(new_order)
                await session.commit()
                await session.refresh(new_order)
        except (OperationalError, InterfaceError) as e:
            raise TransportFailure(f"Database unavailable: {e}")

        return OrderRecord.model_validate(new_order)

    async def get_orders(self) -> List[OrderRecord]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(select(Order).order_by(Order.created_at.desc()))
                orders = result.scalars().all()
        except (OperationalError, InterfaceError) as e:
            raise TransportFailure(f"Database unavailable: {e}")

        return [OrderRecord.model_validate(order) for order in orders]

    async def get_order(self, order_id: str) -> OrderRecord:
        try:
            async with self._session_maker() as session:
                result = await session.execute(select(Order).where(Order.id == order_id))
                order = result.scalar_one_or_none()
        except (OperationalError, InterfaceError) as e:
            raise TransportFailure(f"Database unavailable: {e}")

        if not order:
            raise NotFound("Order", order_id)
        return OrderRecord.model_validate(order)

    async def update_order_status(
        self,
        order_id: str,
        status: FulfillmentStatus,
        expected_status: Optional[FulfillmentStatus] = None,
    ) -> OrderRecord:
        status = coerce_status(status)

        stmt = update(Order).where(Order.id == order_id)
        if expected_status is not None:
            stmt = stmt.where(Order.status == expected_status)
        stmt = stmt.values(status=status, updated_at=utcnow())

        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                await session.commit()

                if result.rowcount == 0:
                    current = (
                        await session.execute(select(Order.status).where(Order.id == order_id))
                    ).scalar_one_or_none()
                    if current is None:
                        raise NotFound("Order", order_id)
                    raise ConflictOnWrite(order_id, expected_status, current)

                order = (await session.execute(select(Order).where(Order.id == order_id))).scalar_one()
        except (OperationalError, InterfaceError) as e:
            raise TransportFailure(f"Database unavailable: {e}")

        logger.debug(f"Order {order_id} status written: {status.value}")
        return OrderRecord.model_validate(order)

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
        event = OrderStatusEvent(
            order_id=order_id,
            from_status=from_status,
            to_status=to_status,
            station=station,
            source=source,
            outcome=outcome,
            detail=detail,
        )
        try:
            async with self._session_maker() as session:
                session.add(event)
                await session.commit()
                await session.refresh(event)
        except (OperationalError, InterfaceError) as e:
            raise TransportFailure(f"Database unavailable: {e}")

        return OrderStatusEventRecord.model_validate(event)

    async def get_events(self, order_id: str) -> List[OrderStatusEventRecord]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(OrderStatusEvent)
                .where(OrderStatusEvent.order_id == order_id)
                .order_by(OrderStatusEvent.id)
            )
            events = result.scalars().all()
        return [OrderStatusEventRecord.model_validate(e) for e in events]

    async def health_check(self) -> bool:
        try:
            async with self._session_maker() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Order store health check failed: {e}")
            return False
