"""
Engine Error Taxonomy

Every failure the fulfillment engine reports is one of these types, so the
HTTP layer and the display synchronizer can map them without inspecting
messages.

    FulfillmentError
    ├── InvalidTransition   status not reachable, or station lacks authority
    ├── UnknownItem         classification miss (recovered by the router)
    ├── NotFound            order / item id does not exist
    ├── ConflictOnWrite     another writer changed the record first   (retryable)
    ├── TransportFailure    network error or timeout                  (retryable)
    ├── MutationInFlight    a display already has a pending edit for the order
    └── EmptyTicket         nothing to print for the requested station
"""

from typing import Optional


class FulfillmentError(Exception):
    """Base class for all engine errors."""

    code = "fulfillment_error"
    retryable = False

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    @classmethod
    def from_detail(cls, message: str) -> "FulfillmentError":
        """Rebuild an error from its message alone (e.g. an HTTP error body)."""
        error = cls.__new__(cls)
        FulfillmentError.__init__(error, message)
        return error

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.code,
            "detail": self.message,
        }


class InvalidTransition(FulfillmentError):
    code = "invalid_transition"

    def __init__(self, from_status, to_status, reason: Optional[str] = None):
        from_value = getattr(from_status, "value", from_status)
        to_value = getattr(to_status, "value", to_status)
        message = f"Cannot move order from '{from_value}' to '{to_value}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason


class UnknownItem(FulfillmentError):
    code = "unknown_item"

    def __init__(self, item_id: str):
        super().__init__(f"Menu item '{item_id}' is not in the catalog")
        self.item_id = item_id


class NotFound(FulfillmentError):
    code = "not_found"

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} '{identifier}' not found")
        self.kind = kind
        self.identifier = identifier


class ConflictOnWrite(FulfillmentError):
    code = "conflict"
    retryable = True

    def __init__(self, order_id: str, expected, actual):
        expected_value = getattr(expected, "value", expected)
        actual_value = getattr(actual, "value", actual)
        super().__init__(
            f"Order '{order_id}' changed concurrently "
            f"(expected '{expected_value}', found '{actual_value}')"
        )
        self.order_id = order_id
        self.expected = expected
        self.actual = actual


class TransportFailure(FulfillmentError):
    code = "transport_failure"
    retryable = True


class MutationInFlight(FulfillmentError):
    code = "mutation_in_flight"

    def __init__(self, order_id: str):
        super().__init__(f"A status change for order '{order_id}' is still pending")
        self.order_id = order_id


class EmptyTicket(FulfillmentError):
    code = "empty_ticket"

    def __init__(self, order_id: str, station):
        station_value = getattr(station, "value", station)
        super().__init__(f"Order '{order_id}' has no items for the {station_value} station")
        self.order_id = order_id
        self.station = station
