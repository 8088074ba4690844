"""
Payment verification gate.

Before any stock is touched, checkout confirms that the shopper's card
charge really happened, for the expected amount and currency, and has not
already paid for another order. The gate never charges or re-charges a
card; it only reads.

Square implementation checks, in order:
1. The payment id is not already attached to a sale
2. The payment exists
3. Its status is COMPLETED
4. amount_money.amount equals the expected amount in cents
5. amount_money.currency equals the expected currency
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional, Protocol
from urllib.parse import quote

import httpx
import structlog

from core.resilience import CircuitBreaker, CircuitOpenError
from storefront.config import PaymentConfig

logger = structlog.get_logger(__name__)

SAFE_VERIFICATION_ERROR = "Failed to verify payment with Square"


@dataclass
class PaymentVerification:
    """Outcome of verifying one payment reference."""
    valid: bool
    error: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    receipt_url: Optional[str] = None
    status: Optional[str] = None

    @classmethod
    def reject(cls, error: str, status: Optional[str] = None) -> "PaymentVerification":
        return cls(valid=False, error=error, status=status)


class PaymentGateway(Protocol):
    async def verify_payment(
        self, reference: str, expected_amount: int, expected_currency: str
    ) -> PaymentVerification: ...


class UsedPaymentLookup(Protocol):
    async def exists_for_transaction(self, transaction_id: str) -> bool: ...


class SquarePaymentGateway:
    """Verifies payments against the Square Payments API over HTTP."""

    def __init__(
        self,
        config: PaymentConfig,
        sales: UsedPaymentLookup,
        client: httpx.AsyncClient | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        self.config = config
        self.sales = sales
        self._client = client
        self.breaker = breaker or CircuitBreaker(
            name="square-payments",
            max_retries=config.max_retries,
            retry_on=(httpx.TransportError,),
        )

    async def verify_payment(
        self, reference: str, expected_amount: int, expected_currency: str
    ) -> PaymentVerification:
        log = logger.bind(payment_id=reference)
        try:
            if await self.sales.exists_for_transaction(reference):
                log.warning("payment_reused")
                return PaymentVerification.reject(
                    "Payment has already been used for another order"
                )

            payment = await self.breaker.call(self._fetch_payment, reference)
        except (httpx.HTTPError, CircuitOpenError) as exc:
            log.error("payment_verification_error", error=str(exc))
            return PaymentVerification.reject(SAFE_VERIFICATION_ERROR)

        if payment is None:
            log.warning("payment_not_found")
            return PaymentVerification.reject("Payment not found in Square")

        return self._check(payment, expected_amount, expected_currency, log)

    def _check(
        self,
        payment: dict[str, Any],
        expected_amount: int,
        expected_currency: str,
        log,
    ) -> PaymentVerification:
        status = payment.get("status")
        if status != "COMPLETED":
            log.warning("payment_not_completed", status=status)
            return PaymentVerification.reject(
                f"Payment status is {status}, expected COMPLETED", status=status
            )

        money = payment.get("amount_money") or {}
        amount = money.get("amount")
        if amount is None:
            return PaymentVerification.reject("Payment amount not found", status=status)

        if int(amount) != expected_amount:
            log.warning("payment_amount_mismatch", expected=expected_amount, actual=amount)
            return PaymentVerification.reject(
                f"Payment amount mismatch. Expected: {expected_amount} cents, "
                f"Got: {amount} cents",
                status=status,
            )

        currency = money.get("currency") or ""
        if currency != expected_currency:
            log.warning("payment_currency_mismatch", expected=expected_currency, actual=currency)
            return PaymentVerification.reject(
                f"Currency mismatch. Expected: {expected_currency}, Got: {currency}",
                status=status,
            )

        return PaymentVerification(
            valid=True,
            amount=int(amount),
            currency=currency,
            receipt_url=payment.get("receipt_url"),
            status=status,
        )

    async def _fetch_payment(self, reference: str) -> dict[str, Any] | None:
        """GET /v2/payments/{id}. None when Square does not know the id."""
        headers = {
            "Authorization": f"Bearer {self.config.square_access_token}",
            "Square-Version": self.config.square_api_version,
            "Accept": "application/json",
        }
        url = f"{self.config.base_url}/v2/payments/{quote(reference, safe='')}"

        if self._client is not None:
            resp = await self._client.get(url, headers=headers, timeout=self.config.timeout_seconds)
        else:
            async with httpx.AsyncClient() as client:
                resp = await client.get(url, headers=headers, timeout=self.config.timeout_seconds)

        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json().get("payment")
