"""Integer minor-unit money helpers.

Every amount inside the storefront is an ``int`` number of cents. Decimal
dollars only appear when parsing input and when formatting for display.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")

CURRENCY_SYMBOLS = {"USD": "$", "AUD": "A$", "EUR": "€", "GBP": "£"}


def parse_money(value: str | int | float | Decimal) -> int:
    """Convert a dollar amount to cents, rounding half up.

    Floats go through ``str`` first so binary artifacts (25.015 stored as
    25.0149999...) do not leak into the result.
    """
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid money amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid money amount: {value!r}")
    return int((amount / CENT).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_decimal(cents: int) -> Decimal:
    """Cents -> Decimal dollars with two places."""
    return (Decimal(cents) * CENT).quantize(CENT)


def round_cents(amount: Decimal) -> int:
    """Round a fractional cent amount to whole cents, half up."""
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_money(cents: int | None, currency: str = "AUD") -> str:
    """Format cents for display, e.g. 2500 -> 'A$25.00'."""
    if cents is None:
        return "N/A"
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    sign = "-" if cents < 0 else ""
    return f"{sign}{symbol}{to_decimal(abs(cents)):,.2f}"
