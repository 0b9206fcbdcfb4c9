"""
SQL Catalog Service Implementation

Reads the `categories` and `menu_items` tables maintained by the catalog
CRUD collaborator. Used in staging and production.
"""

import logging
from typing import Optional

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import async_sessionmaker

from fulfillment.models import Category, MenuItem
from fulfillment.schemas import CatalogSnapshot, CategoryRecord, MenuItemRecord
from fulfillment.services.catalog.base import BaseCatalogService

logger = logging.getLogger(__name__)


class SqlCatalogService(BaseCatalogService):
    """Catalog backed by the relational database."""

    def __init__(self, session_maker: Optional[async_sessionmaker] = None):
        if session_maker is None:
            from fulfillment.database import async_session_maker
            session_maker = async_session_maker
        self._session_maker = session_maker

    @property
    def provider_name(self) -> str:
        return "sql"

    async def get_snapshot(self) -> CatalogSnapshot:
        async with self._session_maker() as session:
            categories = (await session.execute(select(Category).order_by(Category.name))).scalars().all()
            items = (await session.execute(select(MenuItem).order_by(MenuItem.name))).scalars().all()

        logger.debug(f"Catalog read: {len(categories)} categories, {len(items)} items")
        return CatalogSnapshot(
            categories=[CategoryRecord.model_validate(c) for c in categories],
            menu_items=[MenuItemRecord.model_validate(i) for i in items],
        )

    async def health_check(self) -> bool:
        try:
            async with self._session_maker() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Catalog health check failed: {e}")
            return False
