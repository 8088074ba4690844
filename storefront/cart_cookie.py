"""Signed cookie storage for the cart snapshot.

The cart never touches the database; it rides in an httpOnly cookie as
an HS256-signed JWT with claims ``{"cart": ..., "iat": ..., "exp": ...}``.

Anything that does not verify (bad signature, bad structure, elapsed
``exp`` or an expired cart) reads back as "no cart".
"""

import os
from datetime import datetime, timedelta

import jwt
import structlog
from starlette.requests import Request
from starlette.responses import Response

from core.models.base import utcnow
from storefront.cart import CartSnapshot
from storefront.config import StoreConfig
from storefront.errors import CartValidationError, StorefrontError

logger = structlog.get_logger(__name__)

SECRET_ENV_VAR = "CART_ENCRYPTION_SECRET"
MIN_SECRET_LENGTH = 32
ALGORITHM = "HS256"


def get_secret_key() -> bytes:
    """Signing key from CART_ENCRYPTION_SECRET (at least 32 characters)."""
    secret = os.getenv(SECRET_ENV_VAR)
    if not secret:
        raise RuntimeError(
            f"{SECRET_ENV_VAR} environment variable is required for cart signing. "
            "Generate one with: openssl rand -base64 32"
        )
    if len(secret) < MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"{SECRET_ENV_VAR} must be at least {MIN_SECRET_LENGTH} characters long"
        )
    return secret.encode()


# ---------------------------------------------------------------------------
# Token codec
# ---------------------------------------------------------------------------

def encode_cart(
    cart: CartSnapshot,
    secret: bytes | None = None,
    now: datetime | None = None,
    ttl: timedelta = timedelta(days=7),
) -> str:
    """Serialise and sign a cart snapshot as an HS256 JWT."""
    secret = secret or get_secret_key()
    now = now or utcnow()
    claims = {
        "cart": cart.to_dict(),
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def decode_cart(
    token: str,
    secret: bytes | None = None,
    now: datetime | None = None,
    include_expired: bool = False,
) -> CartSnapshot | None:
    """Verify and parse a token. None for anything that does not check out.

    With ``include_expired`` a validly signed cart past its ``expires_at``
    is returned as is, so checkout can tell the shopper it expired.
    """
    secret = secret or get_secret_key()
    now = now or utcnow()

    try:
        # Time claims are checked against `now` below, not the wall clock
        claims = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            options={"require": ["exp"], "verify_exp": False, "verify_iat": False},
        )
    except jwt.InvalidTokenError as exc:
        logger.info("cart_cookie_rejected", reason="signature", error=str(exc))
        return None

    try:
        if int(claims["exp"]) <= now.timestamp():
            logger.info("cart_cookie_rejected", reason="token_expired")
            return None
        cart = CartSnapshot.from_dict(claims["cart"])
    except (ValueError, TypeError, KeyError, StorefrontError) as exc:
        logger.info("cart_cookie_rejected", reason="structure", error=str(exc))
        return None

    if cart.is_expired(now) and not include_expired:
        logger.info("cart_cookie_rejected", reason="cart_expired")
        return None
    return cart


# ---------------------------------------------------------------------------
# Request / response helpers
# ---------------------------------------------------------------------------

def get_cart(
    request: Request,
    config: StoreConfig | None = None,
    include_expired: bool = False,
) -> CartSnapshot | None:
    """Read the cart from the request's cookie, if any."""
    config = config or StoreConfig.default()
    token = request.cookies.get(config.cart.cookie_name)
    if not token:
        return None
    return decode_cart(token, include_expired=include_expired)


def save_cart(
    response: Response, cart: CartSnapshot, config: StoreConfig | None = None
) -> None:
    """Sign the cart into the response's cookie.

    Raises CartValidationError when the token would not fit in a cookie.
    """
    config = config or StoreConfig.default()
    limits = config.cart
    token = encode_cart(cart, ttl=timedelta(days=limits.ttl_days))

    size = len(token.encode())
    if size > limits.max_cookie_bytes:
        raise CartValidationError(
            f"Cart is too large ({size} bytes). Please remove some items. "
            f"Maximum cart size is {limits.max_cookie_bytes} bytes."
        )
    if size > limits.cookie_warning_bytes:
        logger.warning(
            "cart_cookie_near_limit",
            size=size,
            limit=limits.max_cookie_bytes,
            percent=round(size / limits.max_cookie_bytes * 100),
        )

    response.set_cookie(
        limits.cookie_name,
        token,
        max_age=limits.ttl_days * 24 * 60 * 60,
        path="/",
        httponly=True,
        secure=config.production,
        samesite="lax",
    )


def clear_cart(response: Response, config: StoreConfig | None = None) -> None:
    config = config or StoreConfig.default()
    response.delete_cookie(config.cart.cookie_name, path="/")
