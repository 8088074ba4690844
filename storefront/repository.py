"""Storefront repositories: async database access.

BookRepository is the SQL implementation of the Catalog contract,
including the version-guarded conditional stock update. SaleRepository
persists orders. SqlCheckoutStore bundles both behind the CheckoutStore
contract the orchestrator runs against, within one session/transaction.
"""

from datetime import datetime, timedelta
from typing import Any, Sequence

from fastapi import Depends
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_session
from core.models.base import utcnow
from core.repository import BaseRepository
from storefront.catalog import BookState
from storefront.models.db_models import Book, Sale, SaleItem


def next_version(expected: datetime) -> datetime:
    """A version token strictly later than `expected`.

    Naive tokens (SQLite) are UTC wall-clock; keep the same form.
    """
    now = utcnow()
    if expected.tzinfo is None:
        now = now.replace(tzinfo=None)
    if now <= expected:
        now = expected + timedelta(microseconds=1)
    return now


def to_state(book: Book) -> BookState:
    return BookState(
        id=book.id,
        title=book.title,
        stock_quantity=book.stock_quantity,
        sell_price=book.sell_price,
        member_price=book.member_price,
        currency=book.currency,
        version=book.updated_at,
    )


# ---------------------------------------------------------------------------
# Book repository (Catalog)
# ---------------------------------------------------------------------------

class BookRepository(BaseRepository[Book]):
    """Catalog reads and the conditional stock update."""

    model = Book

    async def find_books_by_ids(self, ids: Sequence[int]) -> list[BookState]:
        if not ids:
            return []
        stmt = (
            select(Book)
            .where(Book.id.in_(sorted(set(ids))))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [to_state(book) for book in result.scalars().all()]

    async def find_book_by_id(self, book_id: int) -> BookState | None:
        book = await self.get(book_id)
        return to_state(book) if book else None

    async def conditional_update_stock(
        self, book_id: int, delta: int, expected_version: datetime
    ) -> int:
        """UPDATE ... WHERE id AND updated_at = expected AND stock + delta >= 0."""
        stmt = (
            update(Book)
            .where(
                Book.id == book_id,
                Book.updated_at == expected_version,
                Book.stock_quantity + delta >= 0,
            )
            .values(
                stock_quantity=Book.stock_quantity + delta,
                updated_at=next_version(expected_version),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount


# ---------------------------------------------------------------------------
# Sale repository
# ---------------------------------------------------------------------------

class SaleRepository(BaseRepository[Sale]):
    """Orders and their line items."""

    model = Sale

    async def exists_for_transaction(self, transaction_id: str) -> bool:
        stmt = select(Sale.id).where(Sale.square_transaction_id == transaction_id).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def next_receipt_number(self, now: datetime | None = None) -> str:
        """RCPT-YYYYMMDD-NNNN, sequential per day."""
        day = (now or utcnow()).strftime("%Y%m%d")
        prefix = f"RCPT-{day}-"
        stmt = (
            select(Sale.receipt_number)
            .where(Sale.receipt_number.like(f"{prefix}%"))
            .order_by(Sale.receipt_number.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        last = result.scalar_one_or_none()
        sequence = int(last.rsplit("-", 1)[-1]) + 1 if last else 1
        return f"{prefix}{sequence:04d}"

    async def create_sale_item(self, data: dict[str, Any]) -> int:
        item = SaleItem(**data)
        self.session.add(item)
        await self.session.flush()
        return item.id

    async def create_sale(self, data: dict[str, Any], item_ids: Sequence[int]) -> int:
        """Create the sale and attach the already-written, unattached line items."""
        ids = sorted(set(item_ids))
        if not ids:
            raise ValueError("A sale needs at least one line item")

        sale = Sale(**data)
        self.session.add(sale)
        await self.session.flush()

        result = await self.session.execute(
            update(SaleItem)
            .where(SaleItem.id.in_(ids), SaleItem.sale_id.is_(None))
            .values(sale_id=sale.id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(ids):
            raise LookupError("Sale references line items that do not exist")
        return sale.id

    async def list_for_customer(
        self,
        customer_email: str,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Sale], int]:
        return await self.list(
            page=page,
            limit=limit,
            filters={"customer_email": customer_email, "status": status},
        )


# ---------------------------------------------------------------------------
# Checkout unit of work
# ---------------------------------------------------------------------------

class SqlCheckoutStore:
    """CheckoutStore over one AsyncSession.

    Everything the orchestrator writes goes through the same session, so
    commit() makes stock decrements and order rows durable together and
    rollback() undoes them together.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.books = BookRepository(session)
        self.sales = SaleRepository(session)

    async def find_books_by_ids(self, ids: Sequence[int]) -> list[BookState]:
        return await self.books.find_books_by_ids(ids)

    async def find_book_by_id(self, book_id: int) -> BookState | None:
        return await self.books.find_book_by_id(book_id)

    async def conditional_update_stock(
        self, book_id: int, delta: int, expected_version: datetime
    ) -> int:
        return await self.books.conditional_update_stock(book_id, delta, expected_version)

    async def next_receipt_number(self) -> str:
        return await self.sales.next_receipt_number()

    async def create_sale_item(self, data: dict[str, Any]) -> int:
        return await self.sales.create_sale_item(data)

    async def create_sale(self, data: dict[str, Any], item_ids: Sequence[int]) -> int:
        return await self.sales.create_sale(data, item_ids)

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


# ---------------------------------------------------------------------------
# FastAPI dependency factories
# ---------------------------------------------------------------------------

def get_book_repository(
    session: AsyncSession = Depends(get_session),
) -> BookRepository:
    """FastAPI dependency for BookRepository."""
    return BookRepository(session)


def get_sale_repository(
    session: AsyncSession = Depends(get_session),
) -> SaleRepository:
    """FastAPI dependency for SaleRepository."""
    return SaleRepository(session)


def get_checkout_store(
    session: AsyncSession = Depends(get_session),
) -> SqlCheckoutStore:
    """FastAPI dependency for the checkout unit of work."""
    return SqlCheckoutStore(session)
