"""FastAPI server implementation for the Checkout Service."""

import asyncio
import secrets
from contextlib import asynccontextmanager
from typing import Optional

from confluent_kafka.admin import AdminClient
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Response

from .cart import CartState, CartStore
from .config import settings
from .coordinator import OrderTransactionCoordinator
from .errors import CartLocked, GatewayError, LineNotFound
from .gateway import StoreGateway
from .logger import logger
from .producer import CheckoutEventProducer
from .reconciler import OrphanLedger, Reconciler
from .schemas import (
    Bill,
    CartItemAdd,
    CartItemUpdate,
    CartView,
    CheckoutResult,
    Client,
    Order,
    OrderDetailView,
    OrphanRecord,
    ProductFilter,
    ProductSnapshot,
    ReconciliationReport,
)

FAULT_STATUS = {
    "validation": 422,
    "empty_cart": 422,
    "authentication": 401,
    "in_progress": 409,
    "gateway": 502,
}


class CheckoutState:
    """Class to manage checkout service state."""

    def __init__(self) -> None:
        """Initialize checkout state."""
        self.carts = CartStore()
        self.ledger = OrphanLedger()
        self.gateway: Optional[StoreGateway] = None
        self.events: Optional[CheckoutEventProducer] = None
        self.coordinator: Optional[OrderTransactionCoordinator] = None
        self.reconciler: Optional[Reconciler] = None

    def configure(self, gateway: StoreGateway, events: Optional[CheckoutEventProducer] = None) -> None:
        """Wire the gateway and optional event producer into the saga and the reconciler.

        Args:
            gateway: Store API client
            events: Kafka producer, or None to disable events
        """
        self.gateway = gateway
        self.events = events
        self.coordinator = OrderTransactionCoordinator(gateway, ledger=self.ledger, events=events)
        self.reconciler = Reconciler(gateway, self.ledger)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage the lifecycle of the FastAPI application."""
    if state.gateway is None:
        events = None
        if settings.kafka_bootstrap_servers:
            events = CheckoutEventProducer(settings.kafka_bootstrap_servers)
            logger.info(f"Publishing checkout events to {settings.kafka_bootstrap_servers}")
        state.configure(StoreGateway(settings.store_api_url, timeout=settings.gateway_timeout), events)
    logger.info(f"Store API: {settings.store_api_url} | compensation={'on' if settings.compensate else 'off'}")

    yield

    logger.info("Shutting down checkout service...")
    if state.events:
        state.events.close()
    if state.gateway:
        await state.gateway.close()
    logger.info("Shutdown complete")


app = FastAPI(title="Checkout Service", lifespan=lifespan)
router = APIRouter()
state = CheckoutState()


def require_client(x_client_id: Optional[int] = Header(None)) -> int:
    """Return the authenticated client id set by the upstream auth layer."""
    if x_client_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_client_id


def require_operator(x_admin_token: Optional[str] = Header(None)) -> None:
    """Allow only callers presenting the configured operator token."""
    if x_admin_token is None:
        raise HTTPException(status_code=401, detail="Operator token required")
    if settings.admin_token is None or not secrets.compare_digest(
        x_admin_token.encode(), settings.admin_token.encode()
    ):
        raise HTTPException(status_code=403, detail="Forbidden")


def require_gateway() -> StoreGateway:
    if state.gateway is None:
        raise HTTPException(status_code=503, detail="Service unavailable")
    return state.gateway


def _gateway_http_error(e: GatewayError) -> HTTPException:
    if e.status_code == 404:
        return HTTPException(status_code=404, detail="Not found")
    return HTTPException(status_code=502, detail="Store API unavailable")


def _cart_view(client_id: int) -> CartView:
    cart = state.carts.get(client_id)
    return CartView(lines=cart.lines, subtotal=cart.subtotal, locked=cart.locked)


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy"}


@router.get("/health/ready")
async def readiness_check():
    """Check if the service is ready to accept traffic.

    Returns:
        dict: Readiness plus store API and Kafka reachability.
    """
    store_ok = await state.gateway.ping() if state.gateway else False
    kafka_ok = _check_kafka_connection() if settings.kafka_bootstrap_servers else None
    ready = store_ok and kafka_ok is not False
    return {"status": "ready" if ready else "not_ready", "store_api": store_ok, "kafka": kafka_ok}


@router.get("/cart", response_model=CartView)
async def get_cart(client_id: int = Depends(require_client)):
    return _cart_view(client_id)


@router.post("/cart/items", response_model=CartView)
async def add_cart_item(item: CartItemAdd, client_id: int = Depends(require_client)):
    """Add a product to the client's cart.

    Args:
        item: Product data and quantity to add

    Raises:
        HTTPException: 409 while a checkout holds the cart
    """
    try:
        state.carts.get(client_id).add(item)
    except CartLocked as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _cart_view(client_id)


@router.put("/cart/items/{product_id}", response_model=CartView)
async def update_cart_item(product_id: int, update: CartItemUpdate, client_id: int = Depends(require_client)):
    """Set a line quantity; zero or less removes the line.

    Raises:
        HTTPException: 404 for an unknown product, 409 while a checkout holds the cart
    """
    try:
        state.carts.get(client_id).update_quantity(product_id, update.quantity)
    except LineNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CartLocked as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _cart_view(client_id)


@router.delete("/cart/items/{product_id}", response_model=CartView)
async def remove_cart_item(product_id: int, client_id: int = Depends(require_client)):
    try:
        state.carts.get(client_id).remove(product_id)
    except LineNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CartLocked as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _cart_view(client_id)


@router.delete("/cart", response_model=CartView)
async def clear_cart(client_id: int = Depends(require_client)):
    try:
        state.carts.get(client_id).clear()
    except CartLocked as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _cart_view(client_id)


@router.post("/checkout", response_model=CheckoutResult, status_code=201)
async def checkout(response: Response, x_client_id: Optional[int] = Header(None)):
    """Turn the client's cart into a bill, an order and its detail lines.

    Returns:
        CheckoutResult: 201 on success; on failure the status code reflects
        the fault (401, 409, 422 or 502) and the cart is left as it was.
    """
    if state.coordinator is None:
        raise HTTPException(status_code=503, detail="Service unavailable")

    # Anonymous callers get an empty stand-in; the saga refuses them before any I/O.
    cart = state.carts.get(x_client_id) if x_client_id is not None else CartState()
    result = await state.coordinator.checkout(cart, x_client_id)
    if not result.succeeded:
        response.status_code = FAULT_STATUS[result.fault]
    return result


@router.get("/products", response_model=list[ProductSnapshot])
async def search_products(product_filter: ProductFilter = Depends(), gateway: StoreGateway = Depends(require_gateway)):
    """Forward a catalog search to the store API."""
    try:
        return await gateway.search_products(product_filter)
    except GatewayError as e:
        raise _gateway_http_error(e)


@router.get("/profile", response_model=Client)
async def get_profile(client_id: int = Depends(require_client), gateway: StoreGateway = Depends(require_gateway)):
    try:
        return await gateway.get_client(client_id)
    except GatewayError as e:
        raise _gateway_http_error(e)


@router.get("/profile/orders", response_model=list[Order])
async def get_order_history(client_id: int = Depends(require_client), gateway: StoreGateway = Depends(require_gateway)):
    try:
        return await gateway.list_orders(client_id)
    except GatewayError as e:
        raise _gateway_http_error(e)


@router.get("/profile/bills", response_model=list[Bill])
async def get_bills(client_id: int = Depends(require_client), gateway: StoreGateway = Depends(require_gateway)):
    try:
        return await gateway.list_bills(client_id)
    except GatewayError as e:
        raise _gateway_http_error(e)


@router.get("/profile/orders/{order_id}/details", response_model=list[OrderDetailView])
async def get_order_details(
    order_id: int,
    client_id: int = Depends(require_client),
    gateway: StoreGateway = Depends(require_gateway),
):
    """Get the purchased lines of an order with current product names.

    Args:
        order_id: The order to look up

    Returns:
        list[OrderDetailView]: Detail lines; a product no longer in the
        catalog is shown by its id
    """
    try:
        orders = await gateway.list_orders(client_id)
        if order_id not in {order.order_id for order in orders}:
            raise HTTPException(status_code=404, detail="Order not found")
        return await order_details_with_names(gateway, order_id)
    except GatewayError as e:
        raise _gateway_http_error(e)


@router.get("/orphans", response_model=list[OrphanRecord], dependencies=[Depends(require_operator)])
async def list_orphans():
    """List records left behind by failed checkouts."""
    return state.ledger.pending()


@router.post("/orphans/reconcile", response_model=ReconciliationReport, dependencies=[Depends(require_operator)])
async def reconcile_orphans():
    """Retry compensating deletes for every pending orphan."""
    if state.reconciler is None:
        raise HTTPException(status_code=503, detail="Service unavailable")
    return await state.reconciler.sweep()


async def order_details_with_names(gateway: StoreGateway, order_id: int) -> list[OrderDetailView]:
    """Read an order's detail lines and label each with its product name."""
    products, details = await asyncio.gather(gateway.list_products(), gateway.list_order_details(order_id))
    names = {product.product_id: product.name for product in products}
    return [
        OrderDetailView(detail=detail, product_name=names.get(detail.product_id, f"Product #{detail.product_id}"))
        for detail in details
    ]


def _check_kafka_connection() -> bool:
    """Check if Kafka connection is available.

    Returns:
        bool: True if Kafka is accessible, False otherwise.
    """
    try:
        admin = AdminClient({"bootstrap.servers": settings.kafka_bootstrap_servers})
        return bool(admin.list_topics(timeout=5))
    except Exception as e:
        logger.error(f"Kafka connection failed: {e}")
        return False


app.include_router(router)
logger.info("API router mounted.")
