"""
Catalog Service Abstract Base Class

Defines the read-only contract the engine needs from the menu catalog.
The catalog itself (category and menu CRUD) is owned by another part of the
system; the engine only reads snapshots of it to classify line items.

Design Pattern: Strategy Pattern
    - MockCatalogService serves a seeded in-memory catalog in development
    - SqlCatalogService reads the catalog tables in staging/production
"""

from abc import ABC, abstractmethod

from fulfillment.core.exceptions import NotFound
from fulfillment.schemas import CatalogSnapshot, CategoryRecord


class BaseCatalogService(ABC):
    """
    Abstract base class for catalog services.

    Example:
        >>> catalog = get_catalog_service()
        >>> snapshot = await catalog.get_snapshot()
        >>> len(snapshot.menu_items)
        8
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the catalog provider name (e.g. "mock", "sql")."""
        pass

    @abstractmethod
    async def get_snapshot(self) -> CatalogSnapshot:
        """
        Read every category and menu item.

        Returns:
            CatalogSnapshot: Immutable copy of the catalog at call time
        """
        pass

    async def get_category(self, item_id: str) -> CategoryRecord:
        """
        Resolve the category of a menu item.

        Raises:
            NotFound: If the item, or its category, does not exist
        """
        snapshot = await self.get_snapshot()
        item = next((mi for mi in snapshot.menu_items if mi.id == item_id), None)
        if item is None:
            raise NotFound("Menu item", item_id)
        category = next((c for c in snapshot.categories if c.id == item.category_id), None)
        if category is None:
            raise NotFound("Category", str(item.category_id))
        return category

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify the catalog can be read.

        Returns:
            bool: True if the catalog is reachable
        """
        pass
