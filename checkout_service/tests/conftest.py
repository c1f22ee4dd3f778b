"""Test fixtures for the checkout service tests."""

import asyncio
import itertools
from decimal import Decimal

import pytest

from checkout_service.cart import CartState
from checkout_service.coordinator import OrderTransactionCoordinator
from checkout_service.errors import GatewayError
from checkout_service.reconciler import OrphanLedger
from checkout_service.schemas import (
    Bill,
    CartItemAdd,
    CartLine,
    Client,
    Order,
    OrderDetailLine,
    ProductSnapshot,
)


class FakeStoreAPI:
    """In-memory stand-in for the store API with switchable failures.

    Attributes:
        fail: Stage names whose next calls raise ``GatewayError``.
        fail_detail_for: Product ids whose order-detail writes fail.
        fail_delete: Record kinds whose deletes fail.
        delay: Seconds to sleep before answering, per stage.
        deleted: ``(kind, id)`` pairs in the order they were deleted.
    """

    def __init__(self, products: list[ProductSnapshot]):
        self.products = {p.product_id: p for p in products}
        self.bills: dict[int, Bill] = {}
        self.orders: dict[int, Order] = {}
        self.details: dict[int, OrderDetailLine] = {}
        self.fail: set[str] = set()
        self.fail_detail_for: set[int] = set()
        self.fail_delete: set[str] = set()
        self.delay: dict[str, float] = {}
        self.deleted: list[tuple[str, int]] = []
        self._ids = itertools.count(100)

    async def _enter(self, stage: str) -> None:
        if stage in self.delay:
            await asyncio.sleep(self.delay[stage])
        if stage in self.fail:
            raise GatewayError(f"{stage} simulated network error")

    async def ping(self) -> bool:
        return "ping" not in self.fail

    async def list_products(self):
        await self._enter("fetch_catalog")
        return list(self.products.values())

    async def search_products(self, product_filter):
        await self._enter("search")
        found = list(self.products.values())
        if product_filter.in_stock_only:
            found = [p for p in found if p.available_stock > 0]
        return found

    async def create_bill(self, bill):
        await self._enter("create_bill")
        created = Bill(bill_id=next(self._ids), **bill.model_dump())
        self.bills[created.bill_id] = created
        return created

    async def create_order(self, order):
        await self._enter("create_order")
        created = Order(order_id=next(self._ids), **order.model_dump())
        self.orders[created.order_id] = created
        return created

    async def create_order_detail(self, detail):
        await self._enter("create_order_detail")
        if detail.product_id in self.fail_detail_for:
            raise GatewayError("order detail rejected", status_code=422)
        created = OrderDetailLine(order_detail_id=next(self._ids), **detail.model_dump(exclude={"order_detail_id"}))
        self.details[created.order_detail_id] = created
        return created

    async def _delete(self, kind: str, table: dict, record_id: int) -> None:
        if kind in self.fail_delete:
            raise GatewayError(f"delete {kind} failed", status_code=500)
        if table.pop(record_id, None) is None:
            raise GatewayError(f"{kind} {record_id} not found", status_code=404)
        self.deleted.append((kind, record_id))

    async def delete_bill(self, bill_id):
        await self._delete("bill", self.bills, bill_id)

    async def delete_order(self, order_id):
        await self._delete("order", self.orders, order_id)

    async def delete_order_detail(self, order_detail_id):
        await self._delete("order_detail", self.details, order_detail_id)

    async def get_client(self, client_id):
        await self._enter("profile")
        return Client(client_id=client_id, name="Ada", lastname="Lovelace", email="ada@example.com")

    async def list_orders(self, client_id):
        await self._enter("profile")
        return [o for o in self.orders.values() if o.client_id == client_id]

    async def list_bills(self, client_id):
        await self._enter("profile")
        return [b for b in self.bills.values() if b.client_id == client_id]

    async def list_order_details(self, order_id):
        await self._enter("profile")
        return [d for d in self.details.values() if d.order_id == order_id]


def product(product_id: int, name: str, price: str, stock: int) -> ProductSnapshot:
    return ProductSnapshot(product_id=product_id, name=name, unit_price=Decimal(price), available_stock=stock)


def line(product_id: int, name: str, price: str, quantity: int) -> CartLine:
    return CartLine(product_id=product_id, name=name, unit_price=Decimal(price), quantity=quantity)


@pytest.fixture
def catalog():
    """A small catalog: a charger, a headset and a monitor."""
    return [
        product(1, "USB-C Charger", "10.00", 5),
        product(2, "Wireless Headset", "45.50", 3),
        product(3, "27in Monitor", "120.00", 1),
    ]


@pytest.fixture
def store(catalog):
    return FakeStoreAPI(catalog)


@pytest.fixture
def cart():
    """A cart holding two chargers."""
    cart = CartState(client_id=7)
    cart.add(CartItemAdd(product_id=1, name="USB-C Charger", unit_price=Decimal("10.00"), quantity=2))
    return cart


@pytest.fixture
def ledger():
    return OrphanLedger()


@pytest.fixture
def coordinator(store, ledger):
    """A coordinator over the fake store API with compensation off."""
    return OrderTransactionCoordinator(store, ledger=ledger, compensate=False, step_timeout=1.0)
