"""
Order Store Factory

Provides a single entry point for obtaining the order store.

Environment Switching:
    - ENV_MODE=development → InMemoryOrderStore (no database)
    - ENV_MODE=staging → SqlOrderStore
    - ENV_MODE=production → SqlOrderStore
"""

import logging
from functools import lru_cache

from fulfillment.core.config import get_settings
from fulfillment.services.store.base import BaseOrderStore
from fulfillment.services.store.memory import InMemoryOrderStore
from fulfillment.services.store.sql import SqlOrderStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_order_store() -> BaseOrderStore:
    """
    Get the configured order store (cached, one per process).

    Returns:
        BaseOrderStore: InMemoryOrderStore or SqlOrderStore
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Order Store: Using InMemoryOrderStore (development mode)")
        return InMemoryOrderStore(failure_rate=settings.mock_store_failure_rate)
    else:
        logger.info(f"Order Store: Using SqlOrderStore ({settings.env_mode.value} mode)")
        return SqlOrderStore()


def reset_order_store() -> None:
    """Clear the cached store instance."""
    get_order_store.cache_clear()
    logger.debug("Order store cache cleared")


__all__ = [
    "get_order_store",
    "reset_order_store",
    "BaseOrderStore",
    "InMemoryOrderStore",
    "SqlOrderStore",
]
