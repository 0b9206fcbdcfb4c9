"""
Mock Catalog Service Implementation

Serves an in-memory catalog in development mode (ENV_MODE=development) so
the kitchen and bar displays can be exercised without a catalog database.

The seed mirrors a typical Indonesian cafe menu: "Makanan" (food) and
"Minuman" (drinks) are classified by name, "Dessert" and "Beverages" carry
an explicit kind.
"""

import logging
from typing import Iterable, Optional

from fulfillment.models import CategoryKind
from fulfillment.schemas import CatalogSnapshot, CategoryRecord, MenuItemRecord
from fulfillment.services.catalog.base import BaseCatalogService

logger = logging.getLogger(__name__)


DEFAULT_CATEGORIES = [
    CategoryRecord(id="cat-makanan", name="Makanan"),
    CategoryRecord(id="cat-minuman", name="Minuman"),
    CategoryRecord(id="cat-dessert", name="Dessert", kind=CategoryKind.FOOD),
    CategoryRecord(id="cat-beverages", name="Cold Pressed", kind=CategoryKind.BEVERAGE),
]

DEFAULT_MENU_ITEMS = [
    MenuItemRecord(id="nasi-goreng", name="Nasi Goreng", price=25000, category_id="cat-makanan"),
    MenuItemRecord(id="mie-ayam", name="Mie Ayam", price=22000, category_id="cat-makanan"),
    MenuItemRecord(id="sate-ayam", name="Sate Ayam", price=30000, category_id="cat-makanan"),
    MenuItemRecord(id="es-teh", name="Es Teh Manis", price=8000, category_id="cat-minuman"),
    MenuItemRecord(id="kopi-susu", name="Kopi Susu", price=18000, category_id="cat-minuman"),
    MenuItemRecord(id="jus-alpukat", name="Jus Alpukat", price=20000, category_id="cat-beverages"),
    MenuItemRecord(id="pisang-goreng", name="Pisang Goreng", price=15000, category_id="cat-dessert"),
    MenuItemRecord(id="es-campur", name="Es Campur", price=17000, category_id="cat-dessert"),
]


class MockCatalogService(BaseCatalogService):
    """
    In-memory catalog.

    Categories and items can be replaced at runtime (e.g. a category rename
    in a test) with `replace()`; readers always receive a fresh snapshot.
    """

    def __init__(
        self,
        categories: Optional[Iterable[CategoryRecord]] = None,
        menu_items: Optional[Iterable[MenuItemRecord]] = None,
    ):
        self._snapshot = CatalogSnapshot(
            categories=list(DEFAULT_CATEGORIES if categories is None else categories),
            menu_items=list(DEFAULT_MENU_ITEMS if menu_items is None else menu_items),
        )
        self.reads = 0
        logger.info(
            f"MockCatalogService initialized "
            f"({len(self._snapshot.categories)} categories, "
            f"{len(self._snapshot.menu_items)} items)"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    def replace(
        self,
        categories: Optional[Iterable[CategoryRecord]] = None,
        menu_items: Optional[Iterable[MenuItemRecord]] = None,
    ) -> None:
        self._snapshot = CatalogSnapshot(
            categories=list(self._snapshot.categories if categories is None else categories),
            menu_items=list(self._snapshot.menu_items if menu_items is None else menu_items),
        )

    async def get_snapshot(self) -> CatalogSnapshot:
        self.reads += 1
        return self._snapshot

    async def health_check(self) -> bool:
        return True
