"""
Orders Gateways

How a display reaches the engine. The synchronizer only needs three calls:
fetch the order collection, fetch the catalog (to classify items locally),
and request a status change.

    - HttpOrdersGateway: httpx client against the engine's HTTP API
    - LocalOrdersGateway: calls a FulfillmentService in the same process

Both report failures with the engine's own error types, so the
synchronizer handles a 409 from the network and a ConflictOnWrite from an
in-process store the same way.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx

from fulfillment.core.exceptions import (
    ConflictOnWrite,
    FulfillmentError,
    InvalidTransition,
    NotFound,
    TransportFailure,
)
from fulfillment.models import FulfillmentStatus, Station
from fulfillment.schemas import (
    CatalogSnapshot,
    OrderListResponse,
    OrderRecord,
    TransitionResponse,
)

logger = logging.getLogger(__name__)


class BaseOrdersGateway(ABC):
    """Interface a display uses to talk to the engine."""

    @abstractmethod
    async def fetch_orders(self) -> List[OrderRecord]:
        """Return the full order collection."""
        pass

    @abstractmethod
    async def fetch_catalog(self) -> CatalogSnapshot:
        """Return the current catalog snapshot."""
        pass

    @abstractmethod
    async def request_transition(
        self,
        order_id: str,
        to_status: FulfillmentStatus,
        station: Optional[Station] = None,
    ) -> TransitionResponse:
        """
        Ask the engine to change an order's status.

        Raises:
            InvalidTransition, NotFound, ConflictOnWrite, TransportFailure
        """
        pass

    async def aclose(self) -> None:
        """Release network resources. Default: nothing to release."""


class HttpOrdersGateway(BaseOrdersGateway):
    """
    Gateway over the engine's HTTP API.

    Args:
        base_url: Engine URL, e.g. "http://localhost:8001"
        timeout: Per-request timeout in seconds
        client: Pre-built httpx.AsyncClient (tests pass one with an ASGI transport)
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportFailure(f"Request to {url} timed out") from e
        except httpx.TransportError as e:
            raise TransportFailure(f"Could not reach the order service: {e}") from e

        if response.is_success:
            return response
        raise self._error_from(response)

    @staticmethod
    def _error_from(response: httpx.Response) -> FulfillmentError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        detail = str(body.get("detail") or response.text[:200])

        if response.status_code == 404:
            return NotFound.from_detail(detail)
        if response.status_code == 409:
            return ConflictOnWrite.from_detail(detail)
        if response.status_code == 422:
            return InvalidTransition.from_detail(detail)
        return TransportFailure(f"Order service error {response.status_code}: {detail}")

    async def fetch_orders(self) -> List[OrderRecord]:
        response = await self._send("GET", "/api/orders")
        return OrderListResponse.model_validate(response.json()).orders

    async def fetch_catalog(self) -> CatalogSnapshot:
        response = await self._send("GET", "/api/catalog")
        return CatalogSnapshot.model_validate(response.json())

    async def request_transition(
        self,
        order_id: str,
        to_status: FulfillmentStatus,
        station: Optional[Station] = None,
    ) -> TransitionResponse:
        payload = {
            "status": FulfillmentStatus(to_status).value,
            "station": Station(station).value if station else None,
        }
        response = await self._send("PATCH", f"/api/orders/{order_id}/status", json=payload)
        return TransitionResponse.model_validate(response.json())

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class LocalOrdersGateway(BaseOrdersGateway):
    """Gateway that calls the fulfillment service directly (same process)."""

    def __init__(self, service, catalog):
        self.service = service
        self.catalog = catalog

    async def fetch_orders(self) -> List[OrderRecord]:
        return await self.service.list_orders()

    async def fetch_catalog(self) -> CatalogSnapshot:
        return await self.catalog.get_snapshot()

    async def request_transition(
        self,
        order_id: str,
        to_status: FulfillmentStatus,
        station: Optional[Station] = None,
    ) -> TransitionResponse:
        result = await self.service.request_transition(order_id, to_status, station)
        return TransitionResponse(
            order=result.order,
            applied=result.decision.applies,
            acknowledged=result.decision.acknowledged,
            message=result.decision.message,
        )
