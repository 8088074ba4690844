"""Cart snapshot: an immutable, expiring selection of books.

A snapshot lives client-side (see storefront.cart_cookie) and is never a
database row. Every mutation returns a new snapshot; each line keeps the
price the shopper saw when adding it, in cents.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import ValidationError

from storefront.catalog import BookState
from storefront.config import CartConfig
from storefront.errors import CartValidationError
from storefront.models.schemas import CartPayload
from storefront.rules import (
    check_cart_not_expired,
    check_quantity_limit,
    check_stock_availability,
    evaluate_rules,
)

DEFAULT_CART_CONFIG = CartConfig()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Snapshot types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CartLine:
    """One book in the cart, priced at add-time."""

    book_id: int
    quantity: int
    price_at_add: int
    currency: str
    is_member_price: bool = False

    @property
    def line_total(self) -> int:
        return self.price_at_add * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "book_id": self.book_id,
            "quantity": self.quantity,
            "price_at_add": self.price_at_add,
            "currency": self.currency,
            "is_member_price": self.is_member_price,
        }


@dataclass(frozen=True)
class CartSnapshot:
    """A shopper's cart at one point in time."""

    created_at: datetime
    expires_at: datetime
    items: tuple[CartLine, ...] = field(default_factory=tuple)
    default_currency: str = DEFAULT_CART_CONFIG.default_currency

    def __post_init__(self):
        if not self.expires_at > self.created_at:
            raise CartValidationError("Cart expiry must be after its creation time")

    @property
    def subtotal(self) -> int:
        return sum(line.line_total for line in self.items)

    @property
    def currency(self) -> str:
        return self.items[0].currency if self.items else self.default_currency

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def is_expired(self, now: datetime | None = None) -> bool:
        """Expired once `now` is strictly after `expires_at`."""
        now = _aware(now) if now else _utcnow()
        return not check_cart_not_expired(_aware(self.expires_at), now).passed

    def line_for(self, book_id: int) -> CartLine | None:
        return next((line for line in self.items if line.book_id == book_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [line.to_dict() for line in self.items],
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    def summary(self) -> dict[str, Any]:
        """Display view with derived totals."""
        return {
            **self.to_dict(),
            "items": [
                {**line.to_dict(), "line_total": line.line_total} for line in self.items
            ],
            "item_count": self.item_count,
            "subtotal": self.subtotal,
            "currency": self.currency,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartSnapshot":
        """Build a snapshot from untrusted data, validating its structure."""
        try:
            payload = CartPayload.model_validate(data)
        except ValidationError as exc:
            first = exc.errors()[0]
            raise CartValidationError(first.get("msg", "Invalid cart data")) from exc

        return cls(
            items=tuple(CartLine(**line.model_dump()) for line in payload.items),
            created_at=_aware(payload.created_at),
            expires_at=_aware(payload.expires_at),
        )


# ---------------------------------------------------------------------------
# Mutations (pure, each returns a new snapshot)
# ---------------------------------------------------------------------------

def new_cart(
    now: datetime | None = None,
    config: CartConfig = DEFAULT_CART_CONFIG,
) -> CartSnapshot:
    """Create an empty cart expiring `config.ttl_days` from now."""
    now = _aware(now) if now else _utcnow()
    return CartSnapshot(
        created_at=now,
        expires_at=now + timedelta(days=config.ttl_days),
        default_currency=config.default_currency,
    )


def _validate_quantity(quantity: int, available: int, config: CartConfig) -> None:
    result = evaluate_rules(
        check_quantity_limit(quantity, config.max_item_quantity),
        check_stock_availability(available, quantity),
    )
    if not result.all_passed:
        raise CartValidationError(result.failed[0].message)


def add_item(
    cart: CartSnapshot,
    book: BookState,
    quantity: int = 1,
    member: bool = False,
    config: CartConfig = DEFAULT_CART_CONFIG,
) -> CartSnapshot:
    """Add `quantity` of `book`, merging with an existing line.

    A merged line keeps its original price_at_add.
    """
    if book.currency not in config.supported_currencies:
        raise CartValidationError(f"Unsupported currency: {book.currency}")
    if not cart.is_empty and book.currency != cart.currency:
        raise CartValidationError(
            f"Cart currency is {cart.currency}; cannot add items priced in {book.currency}"
        )

    existing = cart.line_for(book.id)
    if existing is not None:
        merged = existing.quantity + quantity
        _validate_quantity(merged, book.stock_quantity, config)
        items = tuple(
            replace(line, quantity=merged) if line.book_id == book.id else line
            for line in cart.items
        )
        return replace(cart, items=items)

    if len(cart.items) >= config.max_items:
        raise CartValidationError(f"Cart cannot exceed {config.max_items} items")
    _validate_quantity(quantity, book.stock_quantity, config)

    use_member = member and book.member_price is not None
    line = CartLine(
        book_id=book.id,
        quantity=quantity,
        price_at_add=book.member_price if use_member else book.sell_price,
        currency=book.currency,
        is_member_price=use_member,
    )
    if line.price_at_add <= 0:
        raise CartValidationError("Price must be positive")
    return replace(cart, items=cart.items + (line,))


def update_quantity(
    cart: CartSnapshot,
    book_id: int,
    quantity: int,
    available: int,
    config: CartConfig = DEFAULT_CART_CONFIG,
) -> CartSnapshot:
    """Set a line's quantity; zero removes the line."""
    if cart.line_for(book_id) is None:
        raise CartValidationError("Item not in cart")
    if quantity == 0:
        return remove_item(cart, book_id)

    _validate_quantity(quantity, available, config)
    items = tuple(
        replace(line, quantity=quantity) if line.book_id == book_id else line
        for line in cart.items
    )
    return replace(cart, items=items)


def remove_item(cart: CartSnapshot, book_id: int) -> CartSnapshot:
    return replace(
        cart, items=tuple(line for line in cart.items if line.book_id != book_id)
    )
