"""
Pydantic Schemas

Request/response validation for the HTTP API, and the immutable values the
engine passes around internally (orders, catalog snapshots, history events).
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fulfillment.models import (
    CategoryKind,
    FulfillmentStatus,
    PaymentStatus,
    Station,
    TransitionOutcome,
    TransitionSource,
)


def _money(value: float) -> float:
    return round(value, 2)


# =============================================================================
# CATALOG VALUES
# =============================================================================

class CategoryRecord(BaseModel):
    """Menu category as seen by the classification index."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    name: str
    kind: Optional[CategoryKind] = None


class MenuItemRecord(BaseModel):
    """Menu item as seen by the classification index."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    name: str
    price: float = Field(..., ge=0)
    category_id: Optional[str] = None
    is_available: bool = True


class CatalogSnapshot(BaseModel):
    """Categories and menu items read at one instant."""
    model_config = ConfigDict(frozen=True)

    categories: List[CategoryRecord] = Field(default_factory=list)
    menu_items: List[MenuItemRecord] = Field(default_factory=list)


# =============================================================================
# ORDER VALUES
# =============================================================================

class OrderItem(BaseModel):
    """Single line item, with the name and price captured at order time."""
    model_config = ConfigDict(frozen=True)

    item_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100, examples=["Nasi Goreng"])
    price: float = Field(..., ge=0, examples=[25000])
    quantity: int = Field(..., ge=1, le=99, examples=[2])
    notes: Optional[str] = Field(None, max_length=200)

    @property
    def line_total(self) -> float:
        return _money(self.price * self.quantity)


class OrderCreate(BaseModel):
    """Request schema the checkout collaborator uses to place an order."""

    customer_name: str = Field(..., min_length=1, max_length=100, examples=["Budi"])
    table_number: str = Field(..., min_length=1, max_length=20, examples=["7"])
    items: List[OrderItem] = Field(..., min_length=1)
    subtotal: float = Field(..., ge=0)
    discount: float = Field(default=0.0, ge=0)
    total: float = Field(..., ge=0)
    payment_method: str = Field(default="cash", pattern="^(cash|qris|card)$")
    payment_status: PaymentStatus = PaymentStatus.PENDING

    @model_validator(mode="after")
    def check_totals(self) -> "OrderCreate":
        items_total = _money(sum(item.line_total for item in self.items))
        if _money(self.subtotal) != items_total:
            raise ValueError(
                f"subtotal {self.subtotal} does not match line items ({items_total})"
            )
        if self.discount > self.subtotal:
            raise ValueError("discount cannot exceed subtotal")
        if _money(self.total) != _money(self.subtotal - self.discount):
            raise ValueError(
                f"total {self.total} must equal subtotal minus discount "
                f"({_money(self.subtotal - self.discount)})"
            )
        return self


class OrderRecord(BaseModel):
    """
    An order as stored. Immutable: every status change yields a new value,
    which is what lets displays snapshot and restore their caches exactly.
    """
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    customer_name: str
    table_number: str
    items: List[OrderItem] = Field(default_factory=list)
    subtotal: float
    discount: float = 0.0
    total: float
    payment_method: str
    payment_status: PaymentStatus = PaymentStatus.PENDING
    status: FulfillmentStatus = FulfillmentStatus.QUEUED
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal


class OrderStatusEventRecord(BaseModel):
    """One entry of an order's transition history."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    order_id: str
    from_status: Optional[FulfillmentStatus] = None
    to_status: FulfillmentStatus
    station: Optional[Station] = None
    source: TransitionSource = TransitionSource.STATION
    outcome: TransitionOutcome
    detail: Optional[str] = None
    created_at: datetime


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class TransitionRequest(BaseModel):
    """Body of PATCH /api/orders/{id}/status."""
    status: FulfillmentStatus = Field(..., examples=["preparing"])
    station: Optional[Station] = Field(None, examples=["kitchen"])


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class TransitionResponse(BaseModel):
    """Outcome of a status change request."""
    success: bool = True
    order: OrderRecord
    applied: bool
    acknowledged: bool = False
    message: str


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderRecord]


class OrderHistoryResponse(BaseModel):
    order_id: str
    events: List[OrderStatusEventRecord]


class TicketLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    quantity: int
    notes: Optional[str] = None


class StationTicket(BaseModel):
    """Preparation ticket for one station (or the whole order)."""
    order_id: str
    station: Optional[Station] = None
    customer_name: str
    table_number: str
    created_at: datetime
    lines: List[TicketLine]
    text: str


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    order_store: str
    catalog: str
    broker: str
    timestamp: datetime
