"""
                        Services Module

Collaborators with the hybrid architecture pattern (in-memory/mock for
development, SQL/Celery for staging and production) and the engine logic
that sits on top of them.

Services:
    - catalog: read-only menu catalog
    - store: durable order records
    - classification: item -> station index
    - routing: per-station partitioning of orders
    - state_machine: fulfillment status rules
    - autocomplete: ready -> completed scheduling
    - fulfillment: server side of status changes
"""

from fulfillment.services.fulfillment import FulfillmentService, get_fulfillment_service

__all__ = ["FulfillmentService", "get_fulfillment_service"]
