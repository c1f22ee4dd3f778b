"""Error types raised by the cart, the store API gateway and the checkout saga."""

from typing import Optional

GENERIC_FAILURE_MESSAGE = "The purchase could not be completed. Please try again."


class GatewayError(Exception):
    """A store API call failed (network error, timeout or non-2xx response)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (HTTP {self.status_code})"
        return self.message


class CartError(Exception):
    """Base class for cart edit errors."""


class CartLocked(CartError):
    """The cart was edited while a checkout is in flight."""

    def __init__(self):
        super().__init__("cart is locked while a checkout is in progress")


class LineNotFound(CartError):
    """No line exists for the product."""

    def __init__(self, product_id: int):
        super().__init__(f"product {product_id} is not in the cart")
        self.product_id = product_id


class CheckoutError(Exception):
    """Base class for checkout failures.

    Attributes:
        fault: Category tag carried into ``CheckoutResult.fault``.
        message: User-facing message.
    """

    fault = "gateway"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFault(CheckoutError):
    """Stock or availability mismatch detected before any write."""

    fault = "validation"

    def __init__(self, faults: list[str]):
        super().__init__(" ".join(faults))
        self.faults = faults


class AuthenticationRequired(CheckoutError):
    fault = "authentication"

    def __init__(self):
        super().__init__("You must sign in to complete the purchase.")


class EmptyCartFault(CheckoutError):
    fault = "empty_cart"

    def __init__(self):
        super().__init__("The cart is empty.")


class CheckoutInProgress(CheckoutError):
    """A checkout is already in flight for this cart."""

    fault = "in_progress"

    def __init__(self):
        super().__init__("A checkout is already in progress for this cart.")


class CatalogUnavailable(CheckoutError):
    """The catalog could not be read for stock validation; nothing was written."""

    fault = "gateway"

    def __init__(self, cause: Exception):
        super().__init__(GENERIC_FAILURE_MESSAGE)
        self.cause = cause


class GatewayWriteFault(CheckoutError):
    """A write stage failed after validation passed.

    The stage name and cause are kept for logs; clients only see the
    generic failure message.
    """

    fault = "gateway"

    def __init__(self, stage: str, cause: Exception):
        super().__init__(GENERIC_FAILURE_MESSAGE)
        self.stage = stage
        self.cause = cause
        self.orphans = []

    def __str__(self) -> str:
        return f"{self.stage} failed: {self.cause}"
