"""Dataclass-based storefront configuration.

Thresholds, limits and feature flags live in frozen dataclasses:
- Type safety (IDE autocompletion, mypy checking)
- Default values (sensible out-of-the-box)
- Immutability (frozen=True prevents accidental mutation)
- Easy overrides from environment variables via from_env()
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal


# ---------------------------------------------------------------------------
# Nested config sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CartConfig:
    """Cart snapshot limits and cookie storage."""

    ttl_days: int = 7
    max_items: int = 50
    max_item_quantity: int = 99
    supported_currencies: tuple[str, ...] = ("USD", "EUR", "GBP", "AUD")
    default_currency: str = "AUD"
    cookie_name: str = "infoshop_cart"
    max_cookie_bytes: int = 4096
    cookie_warning_bytes: int = 3500


@dataclass(frozen=True)
class CheckoutConfig:
    """Order commit behaviour."""

    max_stock_attempts: int = 3
    price_drift_threshold: Decimal = Decimal("0.10")  # fraction of price_at_add
    ordering_enabled: bool = True


def _default_tax_rates() -> dict[str, tuple[Decimal, str]]:
    return {
        "AUD": (Decimal("0.10"), "GST (10%)"),
        "USD": (Decimal("0"), "No sales tax (varies by state)"),
        "EUR": (Decimal("0"), "VAT (varies by country)"),
        "GBP": (Decimal("0.20"), "VAT (20%)"),
    }


@dataclass(frozen=True)
class TaxConfig:
    """Flat tax rate per currency."""

    rates: dict[str, tuple[Decimal, str]] = field(default_factory=_default_tax_rates)
    fallback_description: str = "No tax configured"


SQUARE_BASE_URLS = {
    "sandbox": "https://connect.squareupsandbox.com",
    "production": "https://connect.squareup.com",
}


@dataclass(frozen=True)
class PaymentConfig:
    """Card processor (Square) connection settings."""

    square_access_token: str = ""
    square_environment: str = "sandbox"
    square_api_version: str = "2024-10-17"
    timeout_seconds: float = 10.0
    max_retries: int = 1

    @property
    def base_url(self) -> str:
        return SQUARE_BASE_URLS.get(self.square_environment, SQUARE_BASE_URLS["sandbox"])


@dataclass(frozen=True)
class RateLimitConfig:
    """Checkout endpoint rate limiting."""

    max_requests: int = 10
    window_seconds: int = 60
    max_tracked_keys: int = 10_000


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StoreConfig:
    """Complete storefront configuration.

    Usage::

        config = StoreConfig.from_env()
        if not config.checkout.ordering_enabled:
            raise OrderingDisabledError()
    """

    cart: CartConfig = field(default_factory=CartConfig)
    checkout: CheckoutConfig = field(default_factory=CheckoutConfig)
    tax: TaxConfig = field(default_factory=TaxConfig)
    payment: PaymentConfig = field(default_factory=PaymentConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    debug: bool = False
    production: bool = False

    @classmethod
    def default(cls) -> "StoreConfig":
        """Create config with all defaults."""
        return cls()

    @classmethod
    def from_env(cls, prefix: str = "STOREFRONT_") -> "StoreConfig":
        """Create config from environment variables.

        Example: STOREFRONT_ORDERING_ENABLED=false
        """
        def env(name: str, default: str) -> str:
            return os.getenv(f"{prefix}{name}", default)

        checkout = CheckoutConfig(
            max_stock_attempts=int(env("MAX_STOCK_ATTEMPTS", "3")),
            price_drift_threshold=Decimal(env("PRICE_DRIFT_THRESHOLD", "0.10")),
            ordering_enabled=env("ORDERING_ENABLED", "true").lower() == "true",
        )
        cart = CartConfig(ttl_days=int(env("CART_TTL_DAYS", "7")))
        payment = PaymentConfig(
            square_access_token=os.getenv("SQUARE_ACCESS_TOKEN", ""),
            square_environment=os.getenv("SQUARE_ENVIRONMENT", "sandbox"),
            timeout_seconds=float(env("PAYMENT_TIMEOUT", "10")),
        )
        rate_limit = RateLimitConfig(
            max_requests=int(env("RATE_LIMIT_MAX_REQUESTS", "10")),
            window_seconds=int(env("RATE_LIMIT_WINDOW_SECONDS", "60")),
        )

        return cls(
            cart=cart,
            checkout=checkout,
            payment=payment,
            rate_limit=rate_limit,
            debug=os.getenv("DEBUG", "false").lower() == "true",
            production=os.getenv("ENVIRONMENT", "development") == "production",
        )
