"""Checkout totals: subtotal plus flat shipping unless the free threshold is exceeded."""

from collections.abc import Sequence
from decimal import Decimal

from .config import settings
from .schemas import CartLine, Totals, to_money


def compute_totals(
    cart_lines: Sequence[CartLine],
    free_threshold: Decimal | None = None,
    flat_fee: Decimal | None = None,
) -> Totals:
    """Compute subtotal, shipping and total for a cart.

    Shipping is waived only when the subtotal is strictly greater than the
    free-shipping threshold.

    Args:
        cart_lines: Lines being purchased.
        free_threshold: Override for ``settings.shipping_free_threshold``.
        flat_fee: Override for ``settings.shipping_flat``.

    Returns:
        Totals: Amounts quantized to cents.
    """
    threshold = settings.shipping_free_threshold if free_threshold is None else free_threshold
    fee = settings.shipping_flat if flat_fee is None else flat_fee

    subtotal = to_money(sum((line.unit_price * line.quantity for line in cart_lines), Decimal("0")))
    shipping = Decimal("0.00") if subtotal > threshold else to_money(fee)
    return Totals(subtotal=subtotal, shipping=shipping, total=subtotal + shipping)
