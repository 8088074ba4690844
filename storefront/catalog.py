"""Catalog contract consumed by the cart, the stock ledger and checkout.

The catalog itself (books, their prices and stock) is owned elsewhere;
this module only fixes what the storefront reads from it and the single
write it performs: a version-guarded stock update.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, Sequence


@dataclass(frozen=True)
class BookState:
    """Point-in-time view of a book as seen by checkout.

    ``version`` is the row's ``updated_at`` at read time; a conditional
    update only applies while it is still current.
    """

    id: int
    title: str
    stock_quantity: int
    sell_price: int
    currency: str
    version: datetime
    member_price: int | None = None


class Catalog(Protocol):
    async def find_books_by_ids(self, ids: Sequence[int]) -> list[BookState]:
        """Fetch all existing books among ``ids`` in one query."""
        ...

    async def find_book_by_id(self, book_id: int) -> BookState | None:
        ...

    async def conditional_update_stock(
        self, book_id: int, delta: int, expected_version: datetime
    ) -> int:
        """Add ``delta`` to stock iff the version still matches and the result
        stays >= 0. Returns the number of rows matched (0 or 1)."""
        ...
