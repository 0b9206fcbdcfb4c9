"""
Client Synchronization Layer

Used by every display to poll the engine and apply status changes
optimistically with exact rollback.
"""

from fulfillment.sync.display import DisplaySynchronizer, Mutation, MutationState
from fulfillment.sync.gateway import BaseOrdersGateway, HttpOrdersGateway, LocalOrdersGateway
from fulfillment.sync.polling import PollingTask

__all__ = [
    "DisplaySynchronizer",
    "Mutation",
    "MutationState",
    "BaseOrdersGateway",
    "HttpOrdersGateway",
    "LocalOrdersGateway",
    "PollingTask",
]
