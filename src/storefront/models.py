"""Data models for storefront."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any
import uuid

CENTS = Decimal("0.01")


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _generate_id() -> str:
    """Generate a new document ID."""
    return uuid.uuid4().hex


def to_decimal(value: Any) -> Decimal:
    """
    Convert a stored price (str, int or float) to Decimal without float noise.

    Raises:
        ValueError: If the value is not a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount


def round_money(amount: Decimal) -> Decimal:
    """Round an amount to cents."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal) -> str:
    """Format an amount for display, e.g. Decimal('25') -> '25.00'."""
    return str(round_money(amount))


@dataclass(frozen=True)
class Product:
    """A catalog product as stored in the remote products collection."""

    id: str
    name: str
    price: Decimal
    description: str = ""
    image_url: str | None = None
    stock: int = 0

    def to_fields(self) -> dict[str, Any]:
        """Document fields without the store-assigned ID."""
        result: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "price": str(self.price),
            "stock": self.stock,
        }
        if self.image_url is not None:
            result["imageUrl"] = self.image_url
        return result

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, **self.to_fields()}

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "Product":
        """
        Raises:
            ValueError: If price or stock is missing a usable non-negative value.
        """
        price = to_decimal(data.get("price", 0))
        if price < 0:
            raise ValueError(f"Negative price: {price}")
        stock = data.get("stock", 0)
        if isinstance(stock, bool) or not isinstance(stock, int) or stock < 0:
            raise ValueError(f"Invalid stock: {stock!r}")
        return cls(
            id=doc_id,
            name=str(data.get("name", "")),
            price=price,
            description=str(data.get("description", "")),
            image_url=data.get("imageUrl"),
            stock=stock,
        )


@dataclass(frozen=True)
class CartLine:
    """One product in the cart, with a snapshot of its displayable fields."""

    product_id: str
    name: str
    price: Decimal
    quantity: int
    image_url: str | None = None

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "price": str(self.price),
            "quantity": self.quantity,
            "image_url": self.image_url,
            "subtotal": format_money(self.subtotal),
        }

    @classmethod
    def snapshot(cls, product: Product, quantity: int) -> "CartLine":
        """Create a line from the product's current name/price/image."""
        return cls(
            product_id=product.id,
            name=product.name,
            price=product.price,
            quantity=quantity,
            image_url=product.image_url,
        )


class OrderStatus(str, Enum):
    PENDING = "pending"
    SHIPPED = "shipped"
    DELIVERED = "delivered"


@dataclass(frozen=True)
class OrderLine:
    """Immutable line snapshot inside an order."""

    product_id: str
    name: str
    price: Decimal
    quantity: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "productId": self.product_id,
            "name": self.name,
            "price": str(self.price),
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderLine":
        return cls(
            product_id=data["productId"],
            name=data.get("name", ""),
            price=to_decimal(data.get("price", 0)),
            quantity=int(data["quantity"]),
        )


@dataclass(frozen=True)
class Order:
    """A placed order. `id` is None until the store has assigned one."""

    user_id: str
    items: tuple[OrderLine, ...]
    total_amount: Decimal
    timestamp: str = field(default_factory=_utc_now)
    status: OrderStatus = OrderStatus.PENDING
    id: str | None = None

    def to_fields(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "items": [item.to_dict() for item in self.items],
            "totalAmount": str(self.total_amount),
            "timestamp": self.timestamp,
            "status": self.status.value,
        }

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, **self.to_fields()}

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "Order":
        return cls(
            id=doc_id,
            user_id=data["userId"],
            items=tuple(OrderLine.from_dict(i) for i in data.get("items", [])),
            total_amount=to_decimal(data.get("totalAmount", 0)),
            timestamp=data.get("timestamp", ""),
            status=OrderStatus(data.get("status", OrderStatus.PENDING.value)),
        )


class PrincipalKind(str, Enum):
    ANONYMOUS = "anonymous"
    CREDENTIALED = "credentialed"


@dataclass(frozen=True)
class Principal:
    """The signed-in identity of a browsing session."""

    uid: str
    kind: PrincipalKind
    email: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return self.kind == PrincipalKind.ANONYMOUS

    def to_dict(self) -> dict[str, Any]:
        return {"uid": self.uid, "kind": self.kind.value, "email": self.email}
