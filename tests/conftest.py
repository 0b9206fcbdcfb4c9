"""Pytest configuration and fixtures."""

import itertools
from datetime import datetime, timezone

import pytest

from fulfillment.models import FulfillmentStatus
from fulfillment.schemas import CatalogSnapshot, OrderItem, OrderRecord
from fulfillment.services.autocomplete import AsyncioAutoCompleter, reset_auto_completer
from fulfillment.services.catalog import reset_catalog_service
from fulfillment.services.catalog.mock import (
    DEFAULT_CATEGORIES,
    DEFAULT_MENU_ITEMS,
    MockCatalogService,
)
from fulfillment.services.classification import ClassificationIndex, ClassificationIndexProvider
from fulfillment.services.fulfillment import FulfillmentService, reset_fulfillment_service
from fulfillment.services.routing import StationRouter
from fulfillment.services.state_machine import OrderStatusMachine
from fulfillment.services.store import reset_order_store
from fulfillment.services.store.memory import InMemoryOrderStore

# Seeded catalog: nasi-goreng / mie-ayam / sate-ayam are food ("Makanan"),
# es-teh / kopi-susu are drinks ("Minuman"), jus-alpukat is a drink by kind,
# pisang-goreng / es-campur are food by kind.
PRICES = {item.id: item.price for item in DEFAULT_MENU_ITEMS}
NAMES = {item.id: item.name for item in DEFAULT_MENU_ITEMS}


@pytest.fixture(autouse=True)
def reset_factories():
    """Drop cached collaborators so no test sees another test's orders."""
    yield
    reset_fulfillment_service()
    reset_order_store()
    reset_catalog_service()
    reset_auto_completer()


@pytest.fixture
def snapshot() -> CatalogSnapshot:
    return CatalogSnapshot(categories=DEFAULT_CATEGORIES, menu_items=DEFAULT_MENU_ITEMS)


@pytest.fixture
def index(snapshot) -> ClassificationIndex:
    return ClassificationIndex(snapshot)


@pytest.fixture
def router(index) -> StationRouter:
    return StationRouter(index)


@pytest.fixture
def machine() -> OrderStatusMachine:
    return OrderStatusMachine()


@pytest.fixture
def catalog() -> MockCatalogService:
    return MockCatalogService()


@pytest.fixture
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def completer() -> AsyncioAutoCompleter:
    return AsyncioAutoCompleter(delay_seconds=0.01)


@pytest.fixture
def service(store, catalog, completer) -> FulfillmentService:
    provider = ClassificationIndexProvider(catalog.get_snapshot, ttl=300)
    return FulfillmentService(store=store, index_provider=provider, auto_completer=completer)


@pytest.fixture
def make_order():
    """Build an OrderRecord from (item_id, quantity) pairs or bare item ids."""
    counter = itertools.count(1)

    def _make(*items, status=FulfillmentStatus.QUEUED, order_id=None, notes=None) -> OrderRecord:
        lines = []
        for entry in items:
            item_id, quantity = entry if isinstance(entry, tuple) else (entry, 1)
            lines.append(OrderItem(
                item_id=item_id,
                name=NAMES.get(item_id, "Item"),
                price=PRICES.get(item_id, 10000),
                quantity=quantity,
                notes=notes,
            ))
        subtotal = sum(line.line_total for line in lines)
        now = datetime(2024, 5, 17, 12, 30, tzinfo=timezone.utc)
        return OrderRecord(
            id=order_id or f"order-{next(counter):04d}",
            customer_name="Budi",
            table_number="7",
            items=lines,
            subtotal=subtotal,
            discount=0.0,
            total=subtotal,
            payment_method="cash",
            status=status,
            created_at=now,
            updated_at=now,
        )

    return _make


@pytest.fixture
def order_payload():
    """Checkout payload with consistent totals."""

    def _payload(*items, discount=0.0) -> dict:
        lines = []
        for entry in items:
            item_id, quantity = entry if isinstance(entry, tuple) else (entry, 1)
            lines.append({
                "item_id": item_id,
                "name": NAMES[item_id],
                "price": PRICES[item_id],
                "quantity": quantity,
            })
        subtotal = sum(line["price"] * line["quantity"] for line in lines)
        return {
            "customer_name": "Siti",
            "table_number": "3",
            "items": lines,
            "subtotal": subtotal,
            "discount": discount,
            "total": subtotal - discount,
            "payment_method": "qris",
        }

    return _payload
