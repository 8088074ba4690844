"""Checkout service: the flow around one order commit.

Validates the request, confirms card payments with the payment gate and
hands the cart to the order commit orchestrator. Every domain failure comes
back as an ``OrderResult`` with ``success=False``; clearing the cart after a
successful order is the caller's job.
"""

import structlog

from core.models.base import utcnow
from storefront.cart import CartSnapshot
from storefront.checkout import (
    CheckoutStore,
    CreateOrderRequest,
    OrderCommitOrchestrator,
    OrderResult,
)
from storefront.config import StoreConfig
from storefront.errors import (
    CartExpiredError,
    CartValidationError,
    EmptyCartError,
    OrderingDisabledError,
    PaymentVerificationError,
    StorefrontError,
)
from storefront.models.schemas import CheckoutRequest, PaymentMethod
from storefront.payments import PaymentGateway
from storefront.tax import calculate_tax

logger = structlog.get_logger(__name__)

CheckoutResult = OrderResult

# (attribute, wire name) pairs a checkout request cannot do without
REQUIRED_FIELDS = (
    ("square_transaction_id", "squareTransactionId"),
    ("payment_method", "paymentMethod"),
)


def _parse_payment_method(value: str) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise CartValidationError(
            f"Invalid payment method: {value}. Expected one of {allowed}"
        ) from None


async def process_checkout(
    params: CheckoutRequest,
    cart: CartSnapshot | None,
    store: CheckoutStore,
    gateway: PaymentGateway,
    config: StoreConfig | None = None,
) -> CheckoutResult:
    """Verify payment (for card orders) and commit the order.

    An expired cart is refused before the payment gate is consulted.
    """
    config = config or StoreConfig.default()
    log = logger.bind(payment_id=params.square_transaction_id)

    try:
        for attr, wire_name in REQUIRED_FIELDS:
            if not getattr(params, attr):
                raise CartValidationError(f"Missing required field: {wire_name}")
        method = _parse_payment_method(params.payment_method)

        if not config.checkout.ordering_enabled:
            raise OrderingDisabledError()
        if cart is None:
            raise CartValidationError("Failed to retrieve cart")
        if cart.is_empty:
            raise EmptyCartError()
        if cart.is_expired(utcnow()):
            raise CartExpiredError()

        if method is PaymentMethod.CARD:
            expected = calculate_tax(cart.subtotal, cart.currency, config.tax)
            verification = await gateway.verify_payment(
                params.square_transaction_id,
                expected.total_with_tax,
                cart.currency,
            )
            if not verification.valid:
                raise PaymentVerificationError(verification.error or "unknown error")
    except StorefrontError as exc:
        log.warning("checkout_rejected", reason=exc.message)
        return CheckoutResult.failed(exc.message, exc.status_code)

    orchestrator = OrderCommitOrchestrator(store, config)
    return await orchestrator.create_order(
        CreateOrderRequest(
            cart=cart,
            payment_method=method,
            square_transaction_id=params.square_transaction_id,
            square_receipt_url=params.square_receipt_url,
            customer_email=params.customer_email,
            customer_name=params.customer_name,
        )
    )
