"""Tax calculation: pure functions over integer cents.

The tax amount is computed exactly from the subtotal and rounded to whole
cents once, at the end.
"""

from dataclasses import dataclass
from decimal import Decimal

from storefront.config import TaxConfig
from storefront.money import round_cents

_DEFAULT_TAX = TaxConfig()


@dataclass(frozen=True)
class TaxCalculation:
    """Tax outcome for a subtotal."""

    tax_rate: Decimal
    tax_amount: int
    total_with_tax: int
    tax_description: str

    def to_dict(self) -> dict:
        return {
            "tax_rate": str(self.tax_rate),
            "tax_amount": self.tax_amount,
            "total_with_tax": self.total_with_tax,
            "tax_description": self.tax_description,
        }


def _lookup(currency: str, config: TaxConfig) -> tuple[Decimal, str]:
    return config.rates.get(currency, (Decimal("0"), config.fallback_description))


def calculate_tax(
    subtotal: int,
    currency: str,
    config: TaxConfig = _DEFAULT_TAX,
) -> TaxCalculation:
    """Calculate tax for a subtotal (in cents) and currency code."""
    if subtotal < 0:
        raise ValueError("Subtotal cannot be negative")

    rate, description = _lookup(currency, config)
    tax_amount = round_cents(Decimal(subtotal) * rate)

    return TaxCalculation(
        tax_rate=rate,
        tax_amount=tax_amount,
        total_with_tax=subtotal + tax_amount,
        tax_description=description,
    )


def get_tax_rate(currency: str, config: TaxConfig = _DEFAULT_TAX) -> Decimal:
    return _lookup(currency, config)[0]


def has_tax(currency: str, config: TaxConfig = _DEFAULT_TAX) -> bool:
    return get_tax_rate(currency, config) > 0


def format_tax_rate(currency: str, config: TaxConfig = _DEFAULT_TAX) -> str:
    """Format the rate as a whole percentage, e.g. '10%'."""
    return f"{get_tax_rate(currency, config) * 100:.0f}%"
