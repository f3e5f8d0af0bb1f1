"""Order submission state machine.

    idle --submit--> submitting --ok--> confirmed
                                --error--> failed --> idle

Preconditions (non-empty cart, signed-in principal) are checked locally;
a violation reports an advisory and never reaches the store. A successful
write clears the cart. A failed write leaves the cart as it was.

There is no idempotency key and no lock against concurrent submissions:
resubmitting after a failure that was in fact a late success creates a
second order.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from .cart import Advise, Cart, CartEngine
from .document_store import MemoryDocumentStore
from .errors import StoreError
from .models import Order, OrderLine, OrderStatus, Principal, _utc_now

logger = logging.getLogger(__name__)

CART_EMPTY = "Your cart is empty!"
LOGIN_REQUIRED = "Please log in to place an order."
ORDER_FAILED = "Failed to place order. Please try again."


class SubmissionState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of one submit() call."""

    state: SubmissionState
    advisory: str
    order: Order | None = None

    @property
    def ok(self) -> bool:
        return self.state == SubmissionState.CONFIRMED


def build_order(cart: Cart, principal: Principal, timestamp: str | None = None) -> Order:
    """Project the cart and principal into a pending order."""
    return Order(
        user_id=principal.uid,
        items=tuple(
            OrderLine(
                product_id=line.product_id,
                name=line.name,
                price=line.price,
                quantity=line.quantity,
            )
            for line in cart
        ),
        total_amount=cart.total(),
        timestamp=timestamp or _utc_now(),
        status=OrderStatus.PENDING,
    )


async def load_orders(
    store: MemoryDocumentStore, collection: str, user_id: str | None = None
) -> list[Order]:
    """All readable orders, oldest first, optionally only those of one principal."""
    orders = []
    for doc in await store.list_documents(collection):
        try:
            order = Order.from_document(doc.id, doc.data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping order %s: %s", doc.id, e)
            continue
        if user_id is None or order.user_id == user_id:
            orders.append(order)
    return sorted(orders, key=lambda o: o.timestamp)


class OrderSubmission:
    """Turns the session's cart into exactly one order document per submit."""

    def __init__(
        self,
        store: MemoryDocumentStore,
        collection: str,
        cart_engine: CartEngine,
        principal: Callable[[], Principal | None],
        advise: Advise | None = None,
        on_confirmed: Callable[[Order], None] | None = None,
    ):
        self.store = store
        self.collection = collection
        self.cart_engine = cart_engine
        self._principal = principal
        self._advise = advise or (lambda message: None)
        self._on_confirmed = on_confirmed
        self._listeners: list[Callable[[SubmissionState], None]] = []
        self.state = SubmissionState.IDLE
        self.last_order: Order | None = None

    def add_listener(self, listener: Callable[[SubmissionState], None]) -> None:
        """Observe every state transition."""
        self._listeners.append(listener)

    def _transition(self, state: SubmissionState) -> None:
        logger.debug("Order submission: %s -> %s", self.state.value, state.value)
        self.state = state
        for listener in list(self._listeners):
            listener(state)

    def _reject(self, message: str) -> SubmissionResult:
        self._advise(message)
        return SubmissionResult(SubmissionState.IDLE, message)

    async def submit(self) -> SubmissionResult:
        """Validate preconditions, write the order, and report the outcome."""
        if self.state == SubmissionState.CONFIRMED:
            self._transition(SubmissionState.IDLE)

        cart = self.cart_engine.cart
        if cart.is_empty:
            return self._reject(CART_EMPTY)
        principal = self._principal()
        if principal is None:
            return self._reject(LOGIN_REQUIRED)

        self._transition(SubmissionState.SUBMITTING)
        order = build_order(cart, principal)
        try:
            order_id = await self.store.create_document(self.collection, order.to_fields())
        except StoreError as e:
            logger.error("Error placing order: %s", e)
            self._transition(SubmissionState.FAILED)
            self._advise(ORDER_FAILED)
            self._transition(SubmissionState.IDLE)
            return SubmissionResult(SubmissionState.FAILED, ORDER_FAILED)

        order = replace(order, id=order_id)
        self.last_order = order
        self._transition(SubmissionState.CONFIRMED)
        self.cart_engine.clear()
        logger.info("Order %s placed by %s (total %s)", order_id, principal.uid, order.total_amount)

        message = f"Order placed successfully! Order ID: {order_id}"
        if self._on_confirmed is not None:
            self._on_confirmed(order)
        self._advise(message)
        return SubmissionResult(SubmissionState.CONFIRMED, message, order)
