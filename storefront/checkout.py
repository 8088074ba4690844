"""Order commit orchestrator.

Turns a cart snapshot plus a verified payment into a persisted sale while
adjusting inventory safely under concurrent checkouts:

    VALIDATING -> CHECKING_STOCK -> RESERVING_STOCK -> PERSISTING -> DONE
         \\              \\                 \\               \\
          +--------------+-----------------+---------------+--> FAILED

Stock is taken with the ledger's compare-and-swap, retried a bounded
number of times per book. The whole run shares one unit of work: any
failure rolls back every decrement and row written so far, and the unit
of work is committed before success is reported, so an order is durable
entirely or not at all. Failures come back as an ``OrderResult`` with
``success=False`` and the HTTP status the route should answer with;
nothing is raised to the caller.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Protocol, Sequence

import structlog

from core.models.base import utcnow
from storefront.cart import CartLine, CartSnapshot
from storefront.catalog import BookState, Catalog
from storefront.config import StoreConfig
from storefront.errors import (
    BooksNotFoundError,
    CartExpiredError,
    ConcurrentModificationError,
    EmptyCartError,
    InsufficientStockError,
    StorefrontError,
)
from storefront.ledger import StockLedger
from storefront.models.schemas import PaymentMethod, PriceType, SaleStatus
from storefront.rules import check_price_drift, check_stock_availability
from storefront.tax import calculate_tax
from storefront.workflow import CHECKOUT_TRANSITIONS, CheckoutState, WorkflowInstance

logger = structlog.get_logger(__name__)


class CheckoutStore(Catalog, Protocol):
    """Everything the orchestrator reads and writes, in one unit of work."""

    async def next_receipt_number(self) -> str: ...

    async def create_sale_item(self, data: dict[str, Any]) -> int: ...

    async def create_sale(self, data: dict[str, Any], item_ids: Sequence[int]) -> int: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


# ---------------------------------------------------------------------------
# Input / output
# ---------------------------------------------------------------------------

@dataclass
class CreateOrderRequest:
    cart: CartSnapshot
    payment_method: PaymentMethod
    square_transaction_id: str | None = None
    square_receipt_url: str | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    status: SaleStatus = SaleStatus.PENDING


@dataclass
class OrderResult:
    """`{success: True, sale_id, warnings?}` or `{success: False, error}`.

    `status_code` is not serialised; the route layer answers with it.
    """

    success: bool
    sale_id: int | None = None
    warnings: list[str] | None = None
    error: str | None = None
    status_code: int = 200

    @classmethod
    def ok(cls, sale_id: int, warnings: list[str] | None = None) -> "OrderResult":
        return cls(success=True, sale_id=sale_id, warnings=warnings or None)

    @classmethod
    def failed(cls, error: str, status_code: int = 400) -> "OrderResult":
        return cls(success=False, error=error, status_code=status_code)

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        data: dict[str, Any] = {"success": True, "saleId": self.sale_id}
        if self.warnings:
            data["warnings"] = list(self.warnings)
        return data


@dataclass
class _Reservation:
    """Stock taken for one book, with the state the winning CAS consumed."""

    book: BookState
    quantity: int
    lines: list[CartLine] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class OrderCommitOrchestrator:
    """Runs one checkout's order commit against a CheckoutStore."""

    def __init__(
        self,
        store: CheckoutStore,
        config: StoreConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.config = config or StoreConfig.default()
        self.ledger = StockLedger(store)
        self._clock = clock

    async def create_order(self, request: CreateOrderRequest) -> OrderResult:
        workflow = WorkflowInstance(
            workflow_id=f"checkout-{request.square_transaction_id or 'manual'}",
            current_state=CheckoutState.VALIDATING,
            transitions=CHECKOUT_TRANSITIONS,
        )
        log = logger.bind(
            workflow_id=workflow.workflow_id,
            payment_method=request.payment_method.value,
        )
        warnings: list[str] = []

        try:
            self._validate(request.cart)

            workflow.transition(CheckoutState.CHECKING_STOCK)
            reservations = await self._check_stock(request.cart, warnings)

            workflow.transition(CheckoutState.RESERVING_STOCK)
            for reservation in reservations:
                reservation.book = await self._reserve(reservation, log)
            warnings.extend(self._price_warnings(reservations))

            workflow.transition(CheckoutState.PERSISTING)
            sale_id = await self._persist(request, reservations)
            await self.store.commit()

            workflow.transition(CheckoutState.DONE)
        except StorefrontError as exc:
            await self._fail(workflow, log, exc.message)
            return OrderResult.failed(exc.message, exc.status_code)
        except Exception as exc:
            log.exception("checkout_unexpected_error", state=workflow.current_state.value)
            await self._fail(workflow, log, str(exc))
            return OrderResult.failed(
                str(exc) if self.config.debug else "Failed to create order",
                status_code=500,
            )

        log.info(
            "order_created",
            sale_id=sale_id,
            path=workflow.path,
            warnings=len(warnings),
        )
        return OrderResult.ok(sale_id, warnings)

    # -- VALIDATING --

    def _validate(self, cart: CartSnapshot) -> None:
        if cart.is_expired(self._clock()):
            raise CartExpiredError()
        if cart.is_empty:
            raise EmptyCartError()

    # -- CHECKING_STOCK --

    async def _check_stock(
        self, cart: CartSnapshot, warnings: list[str]
    ) -> list[_Reservation]:
        """Bulk-read every book once and fail fast on obvious shortages.

        Returns one pending reservation per existing book, ordered by id so
        concurrent checkouts touch rows in the same order.
        """
        book_ids = {line.book_id for line in cart.items}
        books = {book.id: book for book in await self.store.find_books_by_ids(list(book_ids))}

        reservations: dict[int, _Reservation] = {}
        for line in cart.items:
            book = books.get(line.book_id)
            if book is None:
                warnings.append(
                    f"Book {line.book_id} is no longer available and was not included in your order"
                )
                continue
            reservation = reservations.setdefault(
                book.id, _Reservation(book=book, quantity=0)
            )
            reservation.quantity += line.quantity
            reservation.lines.append(line)

        if not reservations:
            raise BooksNotFoundError()

        for reservation in reservations.values():
            book = reservation.book
            if not check_stock_availability(book.stock_quantity, reservation.quantity).passed:
                raise InsufficientStockError(
                    book.id, book.title, book.stock_quantity, reservation.quantity
                )

        return [reservations[book_id] for book_id in sorted(reservations)]

    # -- RESERVING_STOCK --

    async def _reserve(self, reservation: _Reservation, log) -> BookState:
        """Compare-and-swap the decrement, re-reading between attempts."""
        max_attempts = self.config.checkout.max_stock_attempts
        current = reservation.book
        quantity = reservation.quantity

        for attempt in range(1, max_attempts + 1):
            outcome = await self.ledger.try_decrement_stock(current.id, quantity, current.version)
            if outcome.applied:
                return current

            if outcome.current is None:
                raise BooksNotFoundError(f'"{current.title}" is no longer available')
            current = outcome.current
            if not check_stock_availability(current.stock_quantity, quantity).passed:
                raise InsufficientStockError(
                    current.id, current.title, current.stock_quantity, quantity
                )
            log.info(
                "stock_cas_conflict",
                book_id=current.id,
                attempt=attempt,
                max_attempts=max_attempts,
            )

        raise ConcurrentModificationError(current.id, current.title, max_attempts)

    # -- Price staleness (warnings only) --

    def _price_warnings(self, reservations: list[_Reservation]) -> list[str]:
        threshold = self.config.checkout.price_drift_threshold
        warnings = []
        for reservation in reservations:
            book = reservation.book
            for line in reservation.lines:
                if line.is_member_price and book.member_price is not None:
                    current_price = book.member_price
                else:
                    current_price = book.sell_price
                result = check_price_drift(book.title, line.price_at_add, current_price, threshold)
                if not result.passed:
                    warnings.append(result.message)
                    break
        return warnings

    # -- PERSISTING --

    async def _persist(
        self, request: CreateOrderRequest, reservations: list[_Reservation]
    ) -> int:
        """Write every line item first, then the one sale that owns them."""
        lines = [line for r in reservations for line in r.lines]
        currency = request.cart.currency
        subtotal = sum(line.line_total for line in lines)
        tax = calculate_tax(subtotal, currency, self.config.tax)

        item_ids = []
        for line in lines:
            item_ids.append(
                await self.store.create_sale_item(
                    {
                        "book_id": line.book_id,
                        "quantity": line.quantity,
                        "unit_price": line.price_at_add,
                        "line_total": line.line_total,
                        "price_type": (
                            PriceType.MEMBER if line.is_member_price else PriceType.REGULAR
                        ).value,
                    }
                )
            )

        now = self._clock()
        receipt_number = await self.store.next_receipt_number()
        return await self.store.create_sale(
            {
                "receipt_number": receipt_number,
                "sale_date": now,
                "subtotal": subtotal,
                "tax_amount": tax.tax_amount,
                "total_amount": tax.total_with_tax,
                "currency": currency,
                "payment_method": request.payment_method.value,
                "square_transaction_id": request.square_transaction_id,
                "square_receipt_url": request.square_receipt_url,
                "customer_email": request.customer_email,
                "customer_name": request.customer_name,
                "status": request.status.value,
                "status_history": [
                    {
                        "status": request.status.value,
                        "timestamp": now.isoformat(),
                        "note": "Order placed",
                    }
                ],
            },
            item_ids,
        )

    # -- FAILED --

    async def _fail(self, workflow: WorkflowInstance, log, reason: str) -> None:
        failed_in = workflow.current_state
        if workflow.can_transition(CheckoutState.FAILED):
            workflow.transition(CheckoutState.FAILED, metadata={"reason": reason})
        await self.store.rollback()
        log.warning("checkout_failed", state=failed_in.value, reason=reason, path=workflow.path)


async def create_order(
    store: CheckoutStore,
    request: CreateOrderRequest,
    config: StoreConfig | None = None,
) -> OrderResult:
    """Convenience entry point: run one order commit."""
    return await OrderCommitOrchestrator(store, config).create_order(request)
