"""
SQLAlchemy Database Models

Tables touched by the fulfillment engine:
- orders: placed orders with embedded line items and fulfillment status
- order_status_events: transition history owned by the engine
- categories / menu_items: catalog rows, written by the catalog CRUD
  collaborator and only read here
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Float, DateTime, Text, Enum, Boolean, Integer, JSON, ForeignKey

from fulfillment.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FulfillmentStatus(str, enum.Enum):
    """Order preparation lifecycle."""
    QUEUED = "queued"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (FulfillmentStatus.COMPLETED, FulfillmentStatus.CANCELLED)


class Station(str, enum.Enum):
    """Preparation area an item is routed to."""
    KITCHEN = "kitchen"
    BAR = "bar"


class PaymentStatus(str, enum.Enum):
    """Payment axis, independent from fulfillment."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class CategoryKind(str, enum.Enum):
    """Explicit classification chosen when a category is created."""
    FOOD = "food"
    BEVERAGE = "beverage"


class TransitionSource(str, enum.Enum):
    STATION = "station"
    AUTO = "auto"


class TransitionOutcome(str, enum.Enum):
    APPLIED = "applied"
    ACKNOWLEDGED = "acknowledged"
    REJECTED = "rejected"
    FAILED = "failed"
    SKIPPED = "skipped"


class Category(Base):
    """Menu category. `kind` is optional; without it the name decides the station."""
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    kind = Column(Enum(CategoryKind), nullable=True)

    def __repr__(self):
        return f"<Category {self.id} - {self.name}>"


class MenuItem(Base):
    """Sellable menu item."""
    __tablename__ = "menu_items"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    price = Column(Float, nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True, index=True)
    is_available = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<MenuItem {self.id} - {self.name}>"


class Order(Base):
    """
    Main Order table.

    Line items are embedded as a JSON list of name/price snapshots, in the
    order they were added to the cart.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_new_id)

    # =========================================================================
    # CUSTOMER
    # =========================================================================
    customer_name = Column(String(100), nullable=False)
    table_number = Column(String(20), nullable=False, index=True)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    items = Column(JSON, nullable=False, default=list)

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(Float, nullable=False)
    discount = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False)

    # =========================================================================
    # PAYMENT INFO
    # =========================================================================
    payment_method = Column(String(20), nullable=False, default="cash")
    payment_status = Column(
        Enum(PaymentStatus),
        default=PaymentStatus.PENDING,
        nullable=False,
    )

    # =========================================================================
    # FULFILLMENT STATUS
    # =========================================================================
    status = Column(
        Enum(FulfillmentStatus),
        default=FulfillmentStatus.QUEUED,
        nullable=False,
        index=True
    )

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Order #{self.id} - {self.customer_name} - {self.status.value}>"


class OrderStatusEvent(Base):
    """
    One row per transition attempt that reached the engine.

    Used for:
    - Auditing who moved an order and from which station
    - Surfacing auto-completions that failed and need a manual retry
    """
    __tablename__ = "order_status_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(String(36), nullable=False, index=True)

    from_status = Column(Enum(FulfillmentStatus), nullable=True)
    to_status = Column(Enum(FulfillmentStatus), nullable=False)
    station = Column(Enum(Station), nullable=True)
    source = Column(Enum(TransitionSource), nullable=False, default=TransitionSource.STATION)
    outcome = Column(Enum(TransitionOutcome), nullable=False)
    detail = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<OrderStatusEvent {self.order_id} {self.to_status.value} {self.outcome.value}>"
