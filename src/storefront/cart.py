"""Cart engine.

The cart is an immutable value; every operation returns a new ``Cart``.
``CartEngine`` holds the current cart for one browsing session and reports
user-facing confirmations through an advisory callback.

Missing product IDs are never an error: updating or removing a product that
isn't in the cart leaves the cart unchanged.
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Callable, Iterator

from .errors import InvalidQuantityError
from .models import CartLine, Product, format_money, round_money

Advise = Callable[[str], None]

ITEM_REMOVED = "Item removed from cart."


def _check_quantity(quantity: object) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantityError(quantity)
    return quantity


@dataclass(frozen=True)
class Cart:
    """Ordered cart lines, at most one per product ID."""

    lines: tuple[CartLine, ...] = ()

    def __iter__(self) -> Iterator[CartLine]:
        return iter(self.lines)

    def __len__(self) -> int:
        return len(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def item_count(self) -> int:
        """Total number of units across all lines."""
        return sum(line.quantity for line in self.lines)

    def get(self, product_id: str) -> CartLine | None:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None

    def exact_total(self) -> Decimal:
        """Unrounded sum of price * quantity."""
        return sum((line.subtotal for line in self.lines), Decimal("0"))

    def total(self) -> Decimal:
        """Sum of price * quantity, rounded to cents."""
        return round_money(self.exact_total())

    def display_total(self) -> str:
        return format_money(self.exact_total())


def add_item(cart: Cart, product: Product, quantity: int = 1) -> Cart:
    """
    Add units of a product.

    Merges into the existing line for ``product.id`` (additive), otherwise
    appends a new line snapshotting the product's name, price and image.
    Stock is not checked.

    Raises:
        InvalidQuantityError: If quantity is not a positive integer.
    """
    quantity = _check_quantity(quantity)
    if cart.get(product.id) is None:
        return Cart(cart.lines + (CartLine.snapshot(product, quantity),))
    return Cart(
        tuple(
            replace(line, quantity=line.quantity + quantity)
            if line.product_id == product.id
            else line
            for line in cart.lines
        )
    )


def remove_item(cart: Cart, product_id: str) -> Cart:
    """Remove the line for a product; unchanged if it isn't in the cart."""
    return Cart(tuple(line for line in cart.lines if line.product_id != product_id))


def update_quantity(cart: Cart, product_id: str, new_quantity: int) -> Cart:
    """Set a line's quantity exactly. ``new_quantity <= 0`` removes the line."""
    if new_quantity <= 0:
        return remove_item(cart, product_id)
    new_quantity = _check_quantity(new_quantity)
    return Cart(
        tuple(
            replace(line, quantity=new_quantity) if line.product_id == product_id else line
            for line in cart.lines
        )
    )


class CartEngine:
    """Stateful wrapper around the cart operations for one session."""

    def __init__(self, advise: Advise | None = None):
        self.cart = Cart()
        self._advise = advise or (lambda message: None)

    def add_item(self, product: Product, quantity: int = 1) -> Cart:
        self.cart = add_item(self.cart, product, quantity)
        self._advise(f"{product.name} added to cart!")
        return self.cart

    def update_quantity(self, product_id: str, new_quantity: int) -> Cart:
        if new_quantity <= 0:
            return self.remove_item(product_id)
        self.cart = update_quantity(self.cart, product_id, new_quantity)
        return self.cart

    def remove_item(self, product_id: str) -> Cart:
        self.cart = remove_item(self.cart, product_id)
        self._advise(ITEM_REMOVED)
        return self.cart

    def total(self) -> Decimal:
        return self.cart.total()

    def clear(self) -> Cart:
        self.cart = Cart()
        return self.cart
