"""Pure-function checkout rules.

Rules are stateless functions: (entity, context) -> RuleResult.
No database, no side effects. The cart and the checkout orchestrator
evaluate them and decide whether a failure is fatal or only a warning.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class RuleResult:
    """Outcome of a single rule evaluation."""

    passed: bool
    rule_name: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class RuleSetResult:
    """Aggregate outcome of multiple rules."""

    all_passed: bool
    results: list[RuleResult]
    failed: list[RuleResult] = field(default_factory=list)

    def __post_init__(self):
        self.failed = [r for r in self.results if not r.passed]
        self.all_passed = len(self.failed) == 0


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def check_stock_availability(available: int, quantity: int) -> RuleResult:
    """Check that `available` stock covers the requested quantity."""
    passed = available >= quantity

    return RuleResult(
        passed=passed,
        rule_name="stock_availability",
        message=(
            f"In stock: {available} available"
            if passed
            else f"Only {available} items available in stock"
        ),
        details={"available": available, "requested": quantity},
    )


def check_quantity_limit(quantity: int, max_quantity: int) -> RuleResult:
    """Quantity per cart line must be within 1..max_quantity."""
    if quantity < 1:
        message = "Quantity must be at least 1"
    elif quantity > max_quantity:
        message = f"Maximum quantity per item is {max_quantity}"
    else:
        message = "Quantity within limits"

    return RuleResult(
        passed=1 <= quantity <= max_quantity,
        rule_name="quantity_limit",
        message=message,
        details={"quantity": quantity, "max_quantity": max_quantity},
    )


def check_cart_not_expired(expires_at: datetime, now: datetime) -> RuleResult:
    """A cart expires strictly after `expires_at`; equal is still valid."""
    passed = not now > expires_at
    return RuleResult(
        passed=passed,
        rule_name="cart_expiry",
        message="Cart is valid" if passed else "Cart has expired",
        details={"expires_at": expires_at.isoformat(), "now": now.isoformat()},
    )


def check_price_drift(
    title: str,
    price_at_add: int,
    current_price: int,
    threshold: Decimal = Decimal("0.10"),
) -> RuleResult:
    """Flag a catalog price that moved more than `threshold` since add-time.

    Both prices are cents. Exactly `threshold` does not count as drift;
    direction does not matter.
    """
    drift = abs(current_price - price_at_add)
    passed = Decimal(drift) <= Decimal(price_at_add) * threshold

    return RuleResult(
        passed=passed,
        rule_name="price_drift",
        message=(
            "Price unchanged"
            if passed
            else f'Price for "{title}" has changed since it was added to cart'
        ),
        details={
            "price_at_add": price_at_add,
            "current_price": current_price,
            "drift": drift,
        },
    )


# ---------------------------------------------------------------------------
# Rule composition
# ---------------------------------------------------------------------------

def evaluate_rules(*rules: RuleResult) -> RuleSetResult:
    """Compose multiple rule results into a single aggregate.

    Example::

        result = evaluate_rules(
            check_quantity_limit(qty, 99),
            check_stock_availability(book.stock_quantity, qty),
        )
        if not result.all_passed:
            raise CartValidationError(result.failed[0].message)
    """
    return RuleSetResult(
        all_passed=all(r.passed for r in rules),
        results=list(rules),
    )
