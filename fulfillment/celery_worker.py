"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend.

Run with:
    celery -A fulfillment.celery_worker.celery_app worker --loglevel=info
"""

from celery import Celery

from fulfillment.core.config import get_settings

REDIS_URL = get_settings().redis_url

# Create Celery app
celery_app = Celery(
    'fulfillment_worker',
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=['fulfillment.tasks']  # Module containing our tasks
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,  # Process one task at a time
    worker_concurrency=4,  # Number of worker processes

    # Result settings
    result_expires=3600,  # Results expire after 1 hour

    # Completion must not run twice; a lost worker leaves the order ready
    task_acks_late=False,
    task_reject_on_worker_lost=False,

    broker_connection_retry_on_startup=True,
)


if __name__ == '__main__':
    celery_app.start()
