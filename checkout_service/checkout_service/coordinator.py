"""Checkout saga: turns a cart into a bill, an order and its detail lines."""

import asyncio
import uuid
from collections.abc import Awaitable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, TypeVar

from pydantic import ValidationError

from .cart import CartState
from .config import settings
from .errors import (
    AuthenticationRequired,
    CatalogUnavailable,
    CheckoutError,
    EmptyCartFault,
    GatewayError,
    GatewayWriteFault,
    ValidationFault,
)
from .gateway import StoreGateway
from .logger import logger
from .pricing import compute_totals
from .producer import CheckoutEventProducer
from .reconciler import OrphanLedger, delete_record
from .schemas import (
    BillCreate,
    CartLine,
    CheckoutResult,
    DeliveryMethod,
    OrderCreate,
    OrderDetailCreate,
    OrderPlacedEvent,
    OrderStatus,
    OrphanRecord,
    PaymentType,
    new_checkout_id,
)
from .validator import build_snapshot, validate

T = TypeVar("T")


def new_bill_number() -> str:
    """Return a collision-resistant bill number."""
    return f"B-{uuid.uuid4().hex}"


class SagaLog:
    """Records, in creation order, what one checkout attempt wrote to the store API."""

    def __init__(self, checkout_id: str, client_id: int):
        self.checkout_id = checkout_id
        self.client_id = client_id
        self.created: list[tuple[str, int]] = []

    def record(self, kind: str, record_id: Optional[int]) -> None:
        if record_id is not None:
            self.created.append((kind, record_id))

    def as_orphans(self, reason: str) -> list[OrphanRecord]:
        """Return the created records, newest first."""
        return [
            OrphanRecord(
                kind=kind,
                record_id=record_id,
                client_id=self.client_id,
                checkout_id=self.checkout_id,
                reason=reason,
            )
            for kind, record_id in reversed(self.created)
        ]


class OrderTransactionCoordinator:
    """Runs checkouts against the store API.

    The flow is FETCH_CATALOG, VALIDATE, COMPUTE_TOTALS, CREATE_BILL,
    CREATE_ORDER and CREATE_ORDER_DETAILS. Each gateway call is bounded by
    ``step_timeout`` and a timeout counts as that step failing. Detail lines
    are written concurrently and every outcome is awaited before the result
    is decided.

    When a write stage fails, the records created so far are deleted in
    reverse order if ``compensate`` is set; whatever remains is recorded in the
    orphan ledger and published for reconciliation. The cart is cleared only
    on success.

    Attributes:
        gateway: Store API client.
        ledger: Where orphaned records are recorded.
        events: Optional Kafka producer for confirmations and orphan reports.
        compensate: Whether to issue compensating deletes on failure.
        step_timeout: Seconds allowed per gateway call.
    """

    def __init__(
        self,
        gateway: StoreGateway,
        ledger: Optional[OrphanLedger] = None,
        events: Optional[CheckoutEventProducer] = None,
        compensate: Optional[bool] = None,
        step_timeout: Optional[float] = None,
        free_threshold: Optional[Decimal] = None,
        flat_fee: Optional[Decimal] = None,
    ):
        self.gateway = gateway
        self.ledger = ledger if ledger is not None else OrphanLedger()
        self.events = events
        self.compensate = settings.compensate if compensate is None else compensate
        self.step_timeout = settings.gateway_timeout if step_timeout is None else step_timeout
        self.free_threshold = free_threshold
        self.flat_fee = flat_fee

    async def checkout(self, cart: CartState, client_id: Optional[int]) -> CheckoutResult:
        """Convert the cart into a bill, an order and its detail lines.

        Args:
            cart: The client's cart; held frozen for the duration of the call.
            client_id: Authenticated client, or None if nobody is signed in.

        Returns:
            CheckoutResult: ``success`` with the new ids and totals, or
            ``failed`` with a fault tag and message. The cart is unchanged on
            failure.
        """
        checkout_id = new_checkout_id()
        try:
            if client_id is None:
                raise AuthenticationRequired()
            if cart.is_empty:
                raise EmptyCartFault()
            with cart.freeze() as lines:
                logger.info(f"Checkout started | checkout_id={checkout_id} | client_id={client_id} | lines={len(lines)}")
                result = await self._run(checkout_id, lines, client_id)
                cart.commit_checkout()
        except CheckoutError as e:
            return self._failed(checkout_id, client_id, e)

        logger.info(
            f"Checkout succeeded | checkout_id={checkout_id} | order_id={result.order_id} | "
            f"bill_id={result.bill_id} | total={result.totals.total}"
        )
        self._publish_confirmation(result, client_id, lines)
        return result

    async def _run(self, checkout_id: str, lines: list[CartLine], client_id: int) -> CheckoutResult:
        try:
            products = await self._call("fetch_catalog", self.gateway.list_products())
        except GatewayError as e:
            raise CatalogUnavailable(e) from e

        verdict = validate(lines, build_snapshot(products))
        if not verdict.valid:
            raise ValidationFault(verdict.faults)

        totals = compute_totals(lines, self.free_threshold, self.flat_fee)
        logger.info(
            f"Checkout validated | checkout_id={checkout_id} | subtotal={totals.subtotal} | "
            f"shipping={totals.shipping} | total={totals.total}"
        )

        saga = SagaLog(checkout_id, client_id)
        try:
            bill = await self._write(
                "create_bill",
                self.gateway.create_bill(
                    BillCreate(
                        client_id=client_id,
                        total=totals.total,
                        bill_number=new_bill_number(),
                        issue_date=datetime.now(timezone.utc).date(),
                        payment_type=PaymentType.CARD,
                    )
                ),
            )
            saga.record("bill", bill.bill_id)

            order = await self._write(
                "create_order",
                self.gateway.create_order(
                    OrderCreate(
                        client_id=client_id,
                        total=totals.total,
                        status=OrderStatus.PENDING,
                        delivery_method=DeliveryMethod.DRIVE_THRU,
                        placed_at=datetime.now(timezone.utc),
                        bill_id=bill.bill_id,
                    )
                ),
            )
            saga.record("order", order.order_id)

            await self._create_details(saga, order.order_id, lines)
        except GatewayWriteFault as fault:
            fault.orphans = await self._unwind(saga, fault)
            raise

        return CheckoutResult(
            checkout_id=checkout_id,
            status="success",
            message=f"Purchase #{order.order_id} completed successfully!",
            order_id=order.order_id,
            bill_id=bill.bill_id,
            totals=totals,
        )

    async def _create_details(self, saga: SagaLog, order_id: int, lines: list[CartLine]) -> None:
        details = [
            OrderDetailCreate(
                order_id=order_id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_at_purchase=line.unit_price,
            )
            for line in lines
        ]
        outcomes = await asyncio.gather(
            *(self._call("create_order_detail", self.gateway.create_order_detail(d)) for d in details),
            return_exceptions=True,
        )

        failures = []
        for detail, outcome in zip(details, outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    f"Order detail write failed | checkout_id={saga.checkout_id} | order_id={order_id} | "
                    f"product_id={detail.product_id} | error={outcome!r}"
                )
                failures.append(outcome)
            elif isinstance(outcome, BaseException):
                # cancellation and interpreter exits propagate untouched
                raise outcome
            else:
                saga.record("order_detail", outcome.order_detail_id)

        if failures:
            raise GatewayWriteFault("create_order_detail", failures[0])

    async def _call(self, stage: str, call: Awaitable[T]) -> T:
        """Await one gateway call under the step timeout.

        Raises:
            GatewayError: On timeout, gateway failure or an unreadable response.
        """
        try:
            return await asyncio.wait_for(call, timeout=self.step_timeout)
        except asyncio.TimeoutError as e:
            raise GatewayError(f"{stage} timed out after {self.step_timeout}s") from e
        except ValidationError as e:
            raise GatewayError(f"{stage} returned an unreadable response: {e.error_count()} errors") from e

    async def _write(self, stage: str, call: Awaitable[T]) -> T:
        try:
            return await self._call(stage, call)
        except GatewayError as e:
            raise GatewayWriteFault(stage, e) from e

    async def _unwind(self, saga: SagaLog, fault: GatewayWriteFault) -> list[OrphanRecord]:
        """Compensate what the failed attempt created and record what is left.

        Returns:
            list[OrphanRecord]: Records still present in the store API.
        """
        created = saga.as_orphans(str(fault))
        if not self.compensate:
            orphans = created
        else:
            orphans = []
            for record in created:
                try:
                    await self._call(f"compensate_{record.kind}", delete_record(self.gateway, record))
                    logger.info(
                        f"Compensated | checkout_id={saga.checkout_id} | kind={record.kind} | record_id={record.record_id}"
                    )
                except GatewayError as e:
                    logger.error(
                        f"Compensation failed | checkout_id={saga.checkout_id} | kind={record.kind} | "
                        f"record_id={record.record_id} | error={e}"
                    )
                    orphans.append(record)

        if orphans:
            self.ledger.record(orphans)
            if self.events:
                try:
                    self.events.publish_orphans(saga.checkout_id, orphans)
                except Exception as e:
                    logger.error(f"Failed to publish orphans for {saga.checkout_id}: {e}")
        return orphans

    def _failed(self, checkout_id: str, client_id: Optional[int], error: CheckoutError) -> CheckoutResult:
        if isinstance(error, ValidationFault):
            logger.warning(f"Checkout rejected | checkout_id={checkout_id} | client_id={client_id} | faults={error.faults}")
        elif isinstance(error, (GatewayWriteFault, CatalogUnavailable)):
            logger.error(f"Checkout failed | checkout_id={checkout_id} | client_id={client_id} | error={error}")
        else:
            logger.info(f"Checkout refused | checkout_id={checkout_id} | client_id={client_id} | fault={error.fault}")

        return CheckoutResult(
            checkout_id=checkout_id,
            status="failed",
            fault=error.fault,
            message=error.message,
            faults=getattr(error, "faults", []),
            orphans=getattr(error, "orphans", []),
        )

    def _publish_confirmation(self, result: CheckoutResult, client_id: int, lines: list[CartLine]) -> None:
        if not self.events:
            return
        event = OrderPlacedEvent(
            checkout_id=result.checkout_id,
            order_id=result.order_id,
            bill_id=result.bill_id,
            client_id=client_id,
            total=result.totals.total,
            lines=lines,
        )
        try:
            self.events.publish_order_placed(event)
        except Exception as e:
            logger.error(f"Failed to publish confirmation for order {result.order_id}: {e}")
