"""
Celery Tasks
Background steps of the fulfillment engine.
"""

import asyncio
import logging
import time

from sqlalchemy.pool import NullPool

from fulfillment.celery_worker import celery_app
from fulfillment.core.config import get_settings
from fulfillment.database import build_engine, build_session_maker

logger = logging.getLogger(__name__)


async def _complete(order_id: str) -> dict:
    # Imported here so the worker builds its own engine on its own event loop
    from fulfillment.services.catalog.sql import SqlCatalogService
    from fulfillment.services.fulfillment import FulfillmentService, build_index_provider
    from fulfillment.services.store.sql import SqlOrderStore

    settings = get_settings()
    engine = build_engine(settings.database_url, poolclass=NullPool)
    session_maker = build_session_maker(engine)
    try:
        service = FulfillmentService(
            store=SqlOrderStore(session_maker),
            index_provider=build_index_provider(SqlCatalogService(session_maker)),
        )
        order = await service.complete_ready_order(order_id)
    finally:
        await engine.dispose()

    return {
        'order_id': order_id,
        'completed': order is not None,
        'status': order.status.value if order is not None else None,
    }


@celery_app.task(bind=True, max_retries=0)
def complete_ready_order(self, order_id: str) -> dict:
    """
    Move a ready order to completed.

    Not retried: a failure leaves the order ready and is recorded in its
    history for manual completion.

    Args:
        order_id: Order that became ready one grace delay ago

    Returns:
        dict: Result of the completion step
    """
    task_id = self.request.id
    start_time = time.time()

    result = asyncio.run(_complete(order_id))

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed

    if result['completed']:
        logger.info(f"Task {task_id}: order {order_id} completed in {elapsed}s")
    else:
        logger.warning(f"Task {task_id}: order {order_id} not completed")

    return result
