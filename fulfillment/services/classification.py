"""
Menu Classification Index

Maps a menu item to the station that prepares it.

The station is never stored on a menu item. It is derived from the item's
category every time it is asked for:

    category.kind == beverage      -> bar
    category.kind == food          -> kitchen
    no kind, name contains a beverage token (case-insensitive) -> bar
    anything else                  -> kitchen

The index is an immutable snapshot of the catalog. The provider rebuilds it
wholesale once it is older than the cache TTL and swaps the reference, so
readers never observe a half-built index.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Iterable, Optional

from fulfillment.core.exceptions import UnknownItem
from fulfillment.models import CategoryKind, Station
from fulfillment.schemas import CatalogSnapshot, CategoryRecord, MenuItemRecord

logger = logging.getLogger(__name__)

DEFAULT_BEVERAGE_TOKENS = ("minuman", "beverage", "drink")

CatalogLoader = Callable[[], Awaitable[CatalogSnapshot]]


def classify_category(
    category: Optional[CategoryRecord],
    beverage_tokens: Iterable[str] = DEFAULT_BEVERAGE_TOKENS,
) -> Station:
    """Derive the station for a category. Missing categories go to the kitchen."""
    if category is None:
        return Station.KITCHEN
    if category.kind is not None:
        return Station.BAR if category.kind == CategoryKind.BEVERAGE else Station.KITCHEN

    name = category.name.strip().lower()
    if any(token in name for token in beverage_tokens):
        return Station.BAR
    return Station.KITCHEN


class ClassificationIndex:
    """Read-only item -> category -> station lookup over one catalog snapshot."""

    def __init__(
        self,
        snapshot: CatalogSnapshot,
        beverage_tokens: Iterable[str] = DEFAULT_BEVERAGE_TOKENS,
    ):
        self._items: Dict[str, MenuItemRecord] = {item.id: item for item in snapshot.menu_items}
        self._categories: Dict[str, CategoryRecord] = {c.id: c for c in snapshot.categories}
        self._beverage_tokens = tuple(t.lower() for t in beverage_tokens)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def category_of(self, item_id: str) -> Optional[CategoryRecord]:
        item = self._items.get(item_id)
        if item is None:
            raise UnknownItem(item_id)
        return self._categories.get(item.category_id) if item.category_id else None

    def station_of(self, item_id: str) -> Station:
        """
        Return the station that prepares `item_id`.

        Raises:
            UnknownItem: If the item is not in this snapshot. Callers route
                such items to the kitchen.
        """
        return classify_category(self.category_of(item_id), self._beverage_tokens)


class ClassificationIndexProvider:
    """
    Holds the current index and rebuilds it from the catalog when stale.

    Attributes:
        ttl: Maximum index age in seconds (0 rebuilds on every call)
    """

    def __init__(
        self,
        loader: CatalogLoader,
        ttl: float = 300.0,
        beverage_tokens: Iterable[str] = DEFAULT_BEVERAGE_TOKENS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self.ttl = ttl
        self._beverage_tokens = tuple(beverage_tokens)
        self._clock = clock
        self._index: Optional[ClassificationIndex] = None
        self._built_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def current(self) -> Optional[ClassificationIndex]:
        return self._index

    def is_stale(self) -> bool:
        if self._index is None or self._built_at is None:
            return True
        return self._clock() - self._built_at >= self.ttl

    def invalidate(self) -> None:
        self._built_at = None

    async def get_index(self) -> ClassificationIndex:
        """Return a fresh-enough index, rebuilding it if the TTL has passed."""
        if not self.is_stale():
            return self._index
        async with self._lock:
            # Another caller may have rebuilt while we waited
            if not self.is_stale():
                return self._index
            return await self._rebuild()

    async def refresh(self) -> ClassificationIndex:
        async with self._lock:
            return await self._rebuild()

    async def _rebuild(self) -> ClassificationIndex:
        try:
            snapshot = await self._loader()
        except Exception as e:
            if self._index is None:
                raise
            logger.warning(f"Catalog refresh failed, keeping stale classification index: {e}")
            self._built_at = self._clock()
            return self._index

        index = ClassificationIndex(snapshot, self._beverage_tokens)
        self._index = index
        self._built_at = self._clock()
        logger.debug(f"Classification index rebuilt ({len(index)} items)")
        return index
