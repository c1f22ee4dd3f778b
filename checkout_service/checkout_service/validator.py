"""Stock re-validation of a cart against a fresh catalog snapshot."""

from collections.abc import Iterable, Mapping, Sequence

from pydantic import BaseModel, Field

from .schemas import CartLine, ProductSnapshot


class ValidationResult(BaseModel):
    """Outcome of a stock check.

    Attributes:
        faults (list[str]): One human-readable fault per offending cart line, in cart order.
    """

    faults: list[str] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.faults


def build_snapshot(products: Iterable[ProductSnapshot]) -> dict[int, ProductSnapshot]:
    """Index a catalog read by product id."""
    return {product.product_id: product for product in products}


def missing_product_fault(line: CartLine) -> str:
    return f'The product "{line.name}" is no longer available.'


def insufficient_stock_fault(line: CartLine, available: int) -> str:
    return f'Not enough stock for "{line.name}". available: {available}, in cart: {line.quantity}.'


def validate(cart_lines: Sequence[CartLine], catalog_snapshot: Mapping[int, ProductSnapshot]) -> ValidationResult:
    """Check every cart line against the catalog snapshot.

    All lines are checked; the result lists every fault found, in cart order.

    Args:
        cart_lines: The lines to be purchased.
        catalog_snapshot: Products keyed by product id, read at call time.

    Returns:
        ValidationResult: Empty ``faults`` when checkout may proceed.
    """
    faults = []
    for line in cart_lines:
        product = catalog_snapshot.get(line.product_id)
        if product is None:
            faults.append(missing_product_fault(line))
        elif line.quantity > product.available_stock:
            faults.append(insufficient_stock_fault(line, product.available_stock))
    return ValidationResult(faults=faults)
