"""Async repository pattern for database access.

Provides a generic base repository with get/create/list operations over an
AsyncSession. Domain repositories subclass this to add their own queries,
e.g. the catalog's conditional stock update.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.models.base import Base

# ---------------------------------------------------------------------------
# Type variable for model classes
# ---------------------------------------------------------------------------

ModelT = TypeVar("ModelT", bound=Base)


# ---------------------------------------------------------------------------
# Base repository
# ---------------------------------------------------------------------------

class BaseRepository(Generic[ModelT]):
    """Generic async repository with get/create/list + pagination.

    Subclass and set `model` to your SQLAlchemy model::

        class SaleRepository(BaseRepository[Sale]):
            model = Sale

            async def find_by_transaction(self, transaction_id: str):
                stmt = select(self.model).where(
                    self.model.square_transaction_id == transaction_id,
                )
                result = await self.session.execute(stmt)
                return result.scalar_one_or_none()
    """

    model: type[ModelT]

    def __init__(self, session: AsyncSession):
        self.session = session

    # -- List with pagination --

    async def list(
        self,
        page: int = 1,
        limit: int = 50,
        filters: dict[str, Any] | None = None,
    ) -> tuple[list[ModelT], int]:
        """List rows with pagination and optional equality filters.

        Returns (rows, total_count).
        """
        stmt = select(self.model)
        count_stmt = select(func.count()).select_from(self.model)

        if filters:
            for col_name, value in filters.items():
                if hasattr(self.model, col_name) and value is not None:
                    stmt = stmt.where(getattr(self.model, col_name) == value)
                    count_stmt = count_stmt.where(getattr(self.model, col_name) == value)

        offset = (page - 1) * limit
        stmt = stmt.order_by(self.model.id.desc()).offset(offset).limit(limit)

        result = await self.session.execute(stmt)
        rows = list(result.scalars().all())

        count_result = await self.session.execute(count_stmt)
        total = count_result.scalar() or 0

        return rows, total

    # -- Get by ID --

    async def get(self, item_id: int) -> ModelT | None:
        """Get a single row by primary key, bypassing stale identity-map state."""
        stmt = (
            select(self.model)
            .where(self.model.id == item_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    # -- Create --

    async def create(self, data: dict[str, Any]) -> ModelT:
        """Create a new row and flush it so its id is assigned."""
        item = self.model(**data)
        self.session.add(item)
        await self.session.flush()
        return item
