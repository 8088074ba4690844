"""Optimistic stock ledger.

Stock for each book is guarded by its ``updated_at`` version token. A
decrement is a single conditional update that only applies when the caller
still holds the current version and enough stock remains. There are no
locks or waits here: a lost race is reported back (``applied=False``)
together with the fresh state so the caller can decide whether to retry.
"""

from dataclasses import dataclass
from datetime import datetime

import structlog

from storefront.catalog import BookState, Catalog

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class StockChangeOutcome:
    """Result of one compare-and-swap attempt.

    ``current`` is the state re-read after a failed attempt (None when the
    book no longer exists). It is None after a successful attempt.
    """

    applied: bool
    current: BookState | None = None


class StockLedger:
    """Compare-and-swap stock mutations over a Catalog."""

    def __init__(self, catalog: Catalog):
        self.catalog = catalog

    async def try_decrement_stock(
        self, book_id: int, amount: int, expected_version: datetime
    ) -> StockChangeOutcome:
        """Take `amount` units iff the version matches and stock suffices."""
        return await self._try_change(book_id, -_positive(amount), expected_version)

    async def try_increment_stock(
        self, book_id: int, amount: int, expected_version: datetime
    ) -> StockChangeOutcome:
        """Return `amount` units iff the version matches."""
        return await self._try_change(book_id, _positive(amount), expected_version)

    async def restore_stock(
        self, book_id: int, amount: int, max_attempts: int = DEFAULT_MAX_ATTEMPTS
    ) -> bool:
        """Increment stock, re-reading the version between attempts.

        Returns False when the book no longer exists or every attempt lost
        its race.
        """
        book = await self.catalog.find_book_by_id(book_id)
        for attempt in range(1, max_attempts + 1):
            if book is None:
                logger.warning("restock_book_missing", book_id=book_id, amount=amount)
                return False
            outcome = await self.try_increment_stock(book_id, amount, book.version)
            if outcome.applied:
                return True
            logger.info("stock_cas_conflict", book_id=book_id, attempt=attempt, delta=amount)
            book = outcome.current
        logger.warning("restock_attempts_exhausted", book_id=book_id, amount=amount)
        return False

    async def _try_change(
        self, book_id: int, delta: int, expected_version: datetime
    ) -> StockChangeOutcome:
        matched = await self.catalog.conditional_update_stock(
            book_id, delta, expected_version
        )
        if matched:
            return StockChangeOutcome(applied=True)
        current = await self.catalog.find_book_by_id(book_id)
        return StockChangeOutcome(applied=False, current=current)


def _positive(amount: int) -> int:
    if amount <= 0:
        raise ValueError(f"Stock change amount must be positive, got {amount}")
    return amount
