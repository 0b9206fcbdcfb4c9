"""
Core module initialization.
Exports configuration, logging utilities and the engine error types.
"""

from fulfillment.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from fulfillment.core.exceptions import (
    FulfillmentError,
    InvalidTransition,
    UnknownItem,
    NotFound,
    ConflictOnWrite,
    TransportFailure,
    MutationInFlight,
    EmptyTicket,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "FulfillmentError",
    "InvalidTransition",
    "UnknownItem",
    "NotFound",
    "ConflictOnWrite",
    "TransportFailure",
    "MutationInFlight",
    "EmptyTicket",
]
