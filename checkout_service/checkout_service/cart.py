"""Per-client cart state with a freeze flag held during checkout."""

from contextlib import contextmanager
from decimal import Decimal

from .errors import CartLocked, CheckoutInProgress, LineNotFound
from .logger import logger
from .schemas import CartItemAdd, CartLine, to_money


class CartState:
    """The mutable line collection of one client's cart.

    Lines keep insertion order and always have ``quantity >= 1``. While a
    checkout holds the cart through :meth:`freeze`, every edit raises
    :class:`CartLocked` and a second freeze raises :class:`CheckoutInProgress`.
    """

    def __init__(self, client_id: int | None = None):
        self.client_id = client_id
        self._lines: dict[int, CartLine] = {}
        self._frozen = False

    @property
    def lines(self) -> list[CartLine]:
        """Return a copy of the lines in cart order."""
        return [line.model_copy() for line in self._lines.values()]

    @property
    def locked(self) -> bool:
        return self._frozen

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def subtotal(self) -> Decimal:
        return to_money(sum((line.line_total for line in self._lines.values()), Decimal("0")))

    def __len__(self) -> int:
        return len(self._lines)

    def _ensure_unlocked(self) -> None:
        if self._frozen:
            raise CartLocked()

    def add(self, item: CartItemAdd) -> CartLine:
        """Add a product, incrementing its quantity if it is already in the cart.

        Args:
            item: Product data and the number of units to add.

        Returns:
            CartLine: The resulting line.
        """
        self._ensure_unlocked()
        line = self._lines.get(item.product_id)
        if line is None:
            line = CartLine(**item.model_dump())
        else:
            line = line.model_copy(update={"quantity": line.quantity + item.quantity})
        self._lines[item.product_id] = line
        logger.debug(f"Cart line set | client_id={self.client_id} | product_id={item.product_id} | quantity={line.quantity}")
        return line

    def update_quantity(self, product_id: int, quantity: int) -> CartLine | None:
        """Set a line's quantity; a quantity of zero or less removes the line.

        Returns:
            CartLine | None: The updated line, or None if it was removed.

        Raises:
            LineNotFound: If the product is not in the cart.
        """
        self._ensure_unlocked()
        if product_id not in self._lines:
            raise LineNotFound(product_id)
        if quantity <= 0:
            del self._lines[product_id]
            return None
        line = self._lines[product_id].model_copy(update={"quantity": quantity})
        self._lines[product_id] = line
        return line

    def remove(self, product_id: int) -> None:
        self._ensure_unlocked()
        if self._lines.pop(product_id, None) is None:
            raise LineNotFound(product_id)

    def clear(self) -> None:
        self._ensure_unlocked()
        self._lines.clear()

    def commit_checkout(self) -> None:
        """Empty the cart at the end of a successful checkout that holds the freeze."""
        if not self._frozen:
            raise RuntimeError("commit_checkout called without holding the cart")
        self._lines.clear()

    @contextmanager
    def freeze(self):
        """Hold the cart for the duration of a checkout.

        Yields:
            list[CartLine]: The lines captured when the freeze began.

        Raises:
            CheckoutInProgress: If another checkout already holds the cart.
        """
        if self._frozen:
            raise CheckoutInProgress()
        self._frozen = True
        try:
            yield self.lines
        finally:
            self._frozen = False


class CartStore:
    """In-memory carts keyed by client id."""

    def __init__(self):
        self._carts: dict[int, CartState] = {}

    def get(self, client_id: int) -> CartState:
        """Return the cart for a client, creating an empty one on first use."""
        cart = self._carts.get(client_id)
        if cart is None:
            cart = self._carts[client_id] = CartState(client_id)
        return cart
