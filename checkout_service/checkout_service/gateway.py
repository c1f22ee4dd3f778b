"""Async client for the storefront catalog/order REST API."""

from typing import Any, Optional

import httpx
from logging_utils.config import get_gateway_logger

from .errors import GatewayError
from .schemas import (
    Bill,
    BillCreate,
    Client,
    Order,
    OrderCreate,
    OrderDetailCreate,
    OrderDetailLine,
    ProductFilter,
    ProductSnapshot,
)

logger = get_gateway_logger("checkout-service")

PRODUCTS_PATH = "/products/"
PRODUCT_SEARCH_PATH = "/products/search"
BILLS_PATH = "/bills/"
ORDERS_PATH = "/orders/"
ORDER_DETAILS_PATH = "/order_details/"
CLIENTS_PATH = "/clients/"


class StoreGateway:
    """Client for the store API used by checkout and the profile views.

    Each call either returns the created or fetched resource or raises
    :class:`GatewayError`; network failures, timeouts and non-2xx responses
    are not distinguished beyond the optional status code.

    Attributes:
        _client: The underlying ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the gateway.

        Args:
            base_url (str): Root URL of the store API.
            timeout (float): Seconds allowed per request.
            transport: Optional transport, used by tests to stub the API.
        """
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def __aenter__(self) -> "StoreGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """Send a request and decode the JSON body.

        Raises:
            GatewayError: On timeout, transport failure or a non-2xx status.
        """
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error(f"Store API timeout | method={method} | path={path} | error={e!r}")
            raise GatewayError(f"{method} {path} timed out") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"Store API error | method={method} | path={path} | status={status} | body={e.response.text[:200]}")
            raise GatewayError(f"{method} {path} failed", status_code=status) from e
        except httpx.HTTPError as e:
            logger.error(f"Store API unreachable | method={method} | path={path} | error={e!r}")
            raise GatewayError(f"{method} {path} failed: {e}") from e

        logger.debug(f"Store API {method} {path} -> {response.status_code}")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Store API returned invalid JSON | method={method} | path={path} | body={response.text[:200]}")
            raise GatewayError(f"{method} {path} returned invalid JSON", status_code=response.status_code) from e

    async def ping(self) -> bool:
        """Return True if the catalog endpoint answers."""
        try:
            await self._request("GET", PRODUCTS_PATH, params={"limit": 1})
            return True
        except GatewayError:
            return False

    async def list_products(self) -> list[ProductSnapshot]:
        """Read the full catalog."""
        data = await self._request("GET", PRODUCTS_PATH)
        return [ProductSnapshot.model_validate(item) for item in data or []]

    async def search_products(self, product_filter: ProductFilter) -> list[ProductSnapshot]:
        """Forward a catalog search to the store API."""
        data = await self._request("GET", PRODUCT_SEARCH_PATH, params=product_filter.to_params())
        return [ProductSnapshot.model_validate(item) for item in data or []]

    async def create_bill(self, bill: BillCreate) -> Bill:
        """Create a bill; the API assigns ``bill_id``."""
        data = await self._request("POST", BILLS_PATH, json=bill.model_dump(mode="json", by_alias=True))
        return Bill.model_validate(data)

    async def create_order(self, order: OrderCreate) -> Order:
        """Create an order referencing an existing bill; the API assigns ``order_id``."""
        data = await self._request("POST", ORDERS_PATH, json=order.model_dump(mode="json", by_alias=True))
        return Order.model_validate(data)

    async def create_order_detail(self, detail: OrderDetailCreate) -> OrderDetailLine:
        """Create one purchased line of an order."""
        data = await self._request(
            "POST", ORDER_DETAILS_PATH, json=detail.model_dump(mode="json", by_alias=True)
        )
        return OrderDetailLine.model_validate(data)

    async def delete_bill(self, bill_id: int) -> None:
        await self._request("DELETE", f"{BILLS_PATH}{bill_id}")

    async def delete_order(self, order_id: int) -> None:
        await self._request("DELETE", f"{ORDERS_PATH}{order_id}")

    async def delete_order_detail(self, order_detail_id: int) -> None:
        await self._request("DELETE", f"{ORDER_DETAILS_PATH}{order_detail_id}")

    async def get_client(self, client_id: int) -> Client:
        data = await self._request("GET", f"{CLIENTS_PATH}{client_id}")
        return Client.model_validate(data)

    async def list_orders(self, client_id: int) -> list[Order]:
        data = await self._request("GET", ORDERS_PATH, params={"client_id": client_id})
        return [Order.model_validate(item) for item in data or []]

    async def list_bills(self, client_id: int) -> list[Bill]:
        data = await self._request("GET", BILLS_PATH, params={"client_id": client_id})
        return [Bill.model_validate(item) for item in data or []]

    async def list_order_details(self, order_id: int) -> list[OrderDetailLine]:
        data = await self._request("GET", ORDER_DETAILS_PATH, params={"order_id": order_id})
        return [OrderDetailLine.model_validate(item) for item in data or []]
