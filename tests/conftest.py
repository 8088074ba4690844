"""Shared fixtures: an in-memory checkout store and a SQLite database."""
import asyncio
import itertools
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.database import init_db
from storefront.cart import CartLine, CartSnapshot
from storefront.catalog import BookState
from storefront.payments import PaymentVerification

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)
SECRET = b"x" * 32


def make_book(
    book_id: int = 1,
    title: str = "Dune",
    stock: int = 10,
    price: int = 2500,
    currency: str = "AUD",
    member_price: int | None = None,
) -> BookState:
    return BookState(
        id=book_id,
        title=title,
        stock_quantity=stock,
        sell_price=price,
        currency=currency,
        version=NOW,
        member_price=member_price,
    )


def make_cart(*lines: tuple, now: datetime = NOW) -> CartSnapshot:
    """make_cart((book_id, quantity, price_at_add), ...) in AUD."""
    items = []
    for line in lines:
        book_id, quantity, price = line[:3]
        member = line[3] if len(line) > 3 else False
        items.append(CartLine(book_id, quantity, price, "AUD", is_member_price=member))
    return CartSnapshot(
        created_at=now,
        expires_at=now + timedelta(days=7),
        items=tuple(items),
    )


# ---------------------------------------------------------------------------
# In-memory checkout store
# ---------------------------------------------------------------------------

class FakeDatabase:
    """Shared rows that several FakeCheckoutStore sessions write to.

    ``before_update(db, book_id)`` runs just before each conditional
    update and can simulate a concurrent writer.
    """

    def __init__(self, *books: BookState):
        self.books: dict[int, BookState] = {b.id: b for b in books}
        self.sale_items: dict[int, dict[str, Any]] = {}
        self.sales: dict[int, dict[str, Any]] = {}
        self.events: list[str] = []
        self.update_attempts = 0
        self.before_update: Optional[Callable[["FakeDatabase", int], None]] = None
        self.fail_on_create_sale = False
        self.fail_on_commit = False
        self.commits = 0
        self._ticks = 0
        self._item_seq = itertools.count(1)
        self._sale_seq = itertools.count(1)

    def next_version(self) -> datetime:
        self._ticks += 1
        return NOW + timedelta(microseconds=self._ticks)

    def touch(self, book_id: int, **changes) -> None:
        """Another writer changes a book (and its version)."""
        self.books[book_id] = replace(
            self.books[book_id], version=self.next_version(), **changes
        )

    def stock(self, book_id: int) -> int:
        return self.books[book_id].stock_quantity


class FakeCheckoutStore:
    """One unit of work against a FakeDatabase, with journaled rollback."""

    def __init__(self, db: FakeDatabase):
        self.db = db
        self.rollbacks = 0
        self._stock_journal: list[tuple[int, int]] = []
        self._item_ids: list[int] = []
        self._sale_ids: list[int] = []

    async def find_books_by_ids(self, ids):
        await asyncio.sleep(0)
        return [self.db.books[i] for i in sorted(set(ids)) if i in self.db.books]

    async def find_book_by_id(self, book_id):
        await asyncio.sleep(0)
        return self.db.books.get(book_id)

    async def conditional_update_stock(self, book_id, delta, expected_version):
        self.db.update_attempts += 1
        await asyncio.sleep(0)
        if self.db.before_update:
            self.db.before_update(self.db, book_id)
        book = self.db.books.get(book_id)
        if (
            book is None
            or book.version != expected_version
            or book.stock_quantity + delta < 0
        ):
            return 0
        self.db.touch(book_id, stock_quantity=book.stock_quantity + delta)
        self._stock_journal.append((book_id, delta))
        return 1

    async def next_receipt_number(self):
        return f"RCPT-20260314-{len(self.db.sales) + 1:04d}"

    async def create_sale_item(self, data):
        item_id = next(self.db._item_seq)
        self.db.sale_items[item_id] = {**data, "sale_id": None}
        self.db.events.append("sale_item")
        self._item_ids.append(item_id)
        return item_id

    async def create_sale(self, data, item_ids):
        if self.db.fail_on_create_sale:
            raise RuntimeError("database unavailable")
        if not item_ids:
            raise ValueError("A sale needs at least one line item")
        sale_id = next(self.db._sale_seq)
        self.db.sales[sale_id] = {**data, "item_ids": list(item_ids)}
        for item_id in item_ids:
            self.db.sale_items[item_id]["sale_id"] = sale_id
        self.db.events.append("sale")
        self._sale_ids.append(sale_id)
        return sale_id

    async def commit(self):
        await asyncio.sleep(0)
        if self.db.fail_on_commit:
            raise RuntimeError("commit failed")
        self.db.commits += 1
        self._stock_journal.clear()
        self._item_ids.clear()
        self._sale_ids.clear()

    async def rollback(self):
        self.rollbacks += 1
        for book_id, delta in reversed(self._stock_journal):
            if book_id in self.db.books:
                self.db.touch(
                    book_id, stock_quantity=self.db.books[book_id].stock_quantity - delta
                )
        for item_id in self._item_ids:
            self.db.sale_items.pop(item_id, None)
        for sale_id in self._sale_ids:
            self.db.sales.pop(sale_id, None)
        self._stock_journal.clear()
        self._item_ids.clear()
        self._sale_ids.clear()


class FakeGateway:
    """Payment gate that answers with a fixed verification."""

    def __init__(self, verification: PaymentVerification | None = None):
        self.verification = verification or PaymentVerification(valid=True)
        self.calls: list[tuple[str, int, str]] = []

    async def verify_payment(self, reference, expected_amount, expected_currency):
        self.calls.append((reference, expected_amount, expected_currency))
        return self.verification


@pytest.fixture
def fake_db():
    return FakeDatabase(make_book())


@pytest.fixture
def store(fake_db):
    return FakeCheckoutStore(fake_db)


# ---------------------------------------------------------------------------
# SQLite database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session
