"""Pydantic models for carts, catalog snapshots and the store API records."""

import uuid
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import IntEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator

CENTS = Decimal("0.01")

# Money travels as a JSON number on the wire and stays a Decimal in memory.
Money = Annotated[Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")]


def to_money(value) -> Decimal:
    """Quantize a numeric value to cents."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_checkout_id() -> str:
    """Return the identifier of one checkout attempt."""
    return f"chk-{uuid.uuid4().hex[:12]}"


class OrderStatus(IntEnum):
    """Order lifecycle values as stored by the store API."""

    PENDING = 1
    IN_PROGRESS = 2
    DELIVERED = 3
    CANCELED = 4


class DeliveryMethod(IntEnum):
    """Delivery methods accepted by the store API."""

    DRIVE_THRU = 1
    ON_HAND = 2
    HOME_DELIVERY = 3


class PaymentType(IntEnum):
    """Payment tags accepted by the store API."""

    CARD = 1
    CASH = 2


class StoreRecord(BaseModel):
    """Base for records exchanged with the store API (``id_key`` style field names)."""

    model_config = ConfigDict(populate_by_name=True)


class CartLine(BaseModel):
    """One product and quantity held in a client's cart.

    Attributes:
        product_id (int): Catalog identifier of the product.
        name (str): Product name shown to the client.
        unit_price (Decimal): Price per unit when the product was added.
        quantity (int): Units requested, always at least 1.
        image_url (str | None): Product image reference.
    """

    product_id: int
    name: str = Field(..., min_length=1)
    unit_price: Money = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    image_url: str | None = None

    @field_validator("unit_price")
    def quantize_price(cls, v):
        return to_money(v)

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "product_id": 1,
                "name": "USB-C Charger 65W",
                "unit_price": 10.0,
                "quantity": 2,
                "image_url": "https://cdn.example.com/charger.png",
            }
        }
    )


class ProductSnapshot(StoreRecord):
    """A product as read from the catalog at checkout time."""

    product_id: int = Field(..., alias="id_key")
    name: str
    unit_price: Money = Field(..., alias="price")
    available_stock: int = Field(..., alias="stock")
    image_url: str | None = None
    category_id: int | None = None


class ProductFilter(BaseModel):
    """Catalog search parameters forwarded verbatim to the store API."""

    search: str | None = None
    category_id: int | None = None
    min_price: float | None = Field(None, ge=0)
    max_price: float | None = Field(None, ge=0)
    in_stock_only: bool = False
    sort_by: str | None = None

    def to_params(self) -> dict:
        """Return the non-empty filter fields as query parameters."""
        params = self.model_dump(exclude_none=True)
        if not params.get("in_stock_only"):
            params.pop("in_stock_only", None)
        if not params.get("search"):
            params.pop("search", None)
        return params


class BillCreate(StoreRecord):
    client_id: int
    total: Money
    bill_number: str
    issue_date: date = Field(..., alias="date")
    payment_type: PaymentType = PaymentType.CARD


class Bill(BillCreate):
    """A bill persisted by the store API; ``bill_id`` is assigned remotely."""

    bill_id: int = Field(..., alias="id_key")


class OrderCreate(StoreRecord):
    client_id: int
    total: Money
    status: OrderStatus = OrderStatus.PENDING
    delivery_method: DeliveryMethod = DeliveryMethod.DRIVE_THRU
    placed_at: datetime = Field(..., alias="date")
    bill_id: int


class Order(OrderCreate):
    """An order persisted by the store API, referencing exactly one bill."""

    order_id: int = Field(..., alias="id_key")


class OrderDetailCreate(StoreRecord):
    order_id: int
    product_id: int
    quantity: int = Field(..., ge=1)
    unit_price_at_purchase: Money = Field(..., alias="price")


class OrderDetailLine(OrderDetailCreate):
    """A purchased line; the price is the purchase-time record of truth."""

    order_detail_id: int | None = Field(None, alias="id_key")


class OrderDetailView(BaseModel):
    """An order detail line enriched with the current product name."""

    detail: OrderDetailLine
    product_name: str


class Client(StoreRecord):
    """A storefront client profile."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    client_id: int = Field(..., alias="id_key")
    name: str | None = None
    lastname: str | None = None
    email: str | None = None
    telephone: str | None = None


class Totals(BaseModel):
    """Checkout amounts computed once before any write."""

    subtotal: Money
    shipping: Money
    total: Money


class OrphanRecord(BaseModel):
    """A record left behind by a checkout that failed after writing it.

    Attributes:
        kind: Which store API resource was left behind.
        record_id: Identifier assigned by the store API.
        client_id: Client whose checkout created the record.
        checkout_id: Checkout attempt that created the record.
        reason: Failure that interrupted the checkout.
        detected_at: When the orphan was recorded.
    """

    kind: Literal["bill", "order", "order_detail"]
    record_id: int
    client_id: int
    checkout_id: str
    reason: str
    detected_at: datetime = Field(default_factory=utcnow)


class ReconciliationReport(BaseModel):
    attempted: int = 0
    resolved: int = 0
    remaining: int = 0


CheckoutFault = Literal["validation", "empty_cart", "authentication", "in_progress", "gateway"]


class CheckoutResult(BaseModel):
    """Outcome of one checkout attempt.

    Attributes:
        checkout_id (str): Identifier of this attempt, used in logs and events.
        status (str): ``success`` or ``failed``.
        fault (str | None): Failure category when ``status`` is ``failed``.
        message (str): User-facing summary.
        faults (list[str]): Per-product stock faults, in cart order.
        order_id (int | None): Created order on success.
        bill_id (int | None): Created bill on success.
        totals (Totals | None): Amounts written to the bill and order.
        orphans (list[OrphanRecord]): Records left behind by a failed write stage.
    """

    checkout_id: str = Field(default_factory=new_checkout_id)
    status: Literal["success", "failed"]
    fault: CheckoutFault | None = None
    message: str
    faults: list[str] = Field(default_factory=list)
    order_id: int | None = None
    bill_id: int | None = None
    totals: Totals | None = None
    orphans: list[OrphanRecord] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class OrderPlacedEvent(BaseModel):
    """Confirmation published to ``orders.created`` after a successful checkout."""

    checkout_id: str
    order_id: int
    bill_id: int
    client_id: int
    total: Money
    lines: list[CartLine] = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utcnow)


class CartItemAdd(BaseModel):
    """Request body for adding a product to the cart."""

    product_id: int
    name: str = Field(..., min_length=1)
    unit_price: Money = Field(..., ge=0)
    quantity: int = Field(1, ge=1)
    image_url: str | None = None


class CartItemUpdate(BaseModel):
    """Request body for setting a line quantity; zero or less removes the line."""

    quantity: int


class CartView(BaseModel):
    lines: list[CartLine]
    subtotal: Money
    locked: bool
