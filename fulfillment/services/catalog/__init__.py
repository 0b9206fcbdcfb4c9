"""
Catalog Service Factory

Returns the mock or SQL catalog based on ENV_MODE.

Usage:
    from fulfillment.services.catalog import get_catalog_service

    catalog = get_catalog_service()
    snapshot = await catalog.get_snapshot()
"""

import logging
from functools import lru_cache

from fulfillment.core.config import get_settings
from fulfillment.services.catalog.base import BaseCatalogService
from fulfillment.services.catalog.mock import MockCatalogService
from fulfillment.services.catalog.sql import SqlCatalogService

logger = logging.getLogger(__name__)


@lru_cache()
def get_catalog_service() -> BaseCatalogService:
    """Get the configured catalog service (cached)."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Catalog Service: Using MockCatalogService (development mode)")
        return MockCatalogService()
    else:
        logger.info(f"Catalog Service: Using SqlCatalogService ({settings.env_mode.value} mode)")
        return SqlCatalogService()


def reset_catalog_service() -> None:
    """Clear the cached service instance."""
    get_catalog_service.cache_clear()


__all__ = [
    "get_catalog_service",
    "reset_catalog_service",
    "BaseCatalogService",
    "MockCatalogService",
    "SqlCatalogService",
]
