"""Order management after commit: status changes, cancellation, history.

Status changes follow SALE_STATUS_TRANSITIONS and are appended to the
sale's ``status_history``. Cancelling can put the sold quantities back on
the shelf through the stock ledger's compare-and-swap increment.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.models.base import utcnow
from storefront.errors import InvalidStatusTransitionError, OrderNotFoundError
from storefront.ledger import StockLedger
from storefront.models.db_models import Sale
from storefront.models.schemas import SaleStatus
from storefront.repository import BookRepository, SaleRepository
from storefront.workflow import SALE_STATUS_TRANSITIONS, WorkflowInstance

logger = structlog.get_logger(__name__)


class OrderManager:
    """Order lifecycle operations over one session."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.sales = SaleRepository(session)
        self.ledger = StockLedger(BookRepository(session))

    async def update_order_status(
        self, sale_id: int, new_status: SaleStatus, note: str | None = None
    ) -> Sale:
        """Move a sale to `new_status`, recording the change in its history.

        Raises OrderNotFoundError for an unknown sale and
        InvalidStatusTransitionError when the move is not allowed.
        """
        sale = await self.get_order(sale_id)
        old_status = SaleStatus(sale.status)
        workflow = WorkflowInstance(
            workflow_id=f"sale-{sale_id}",
            current_state=old_status,
            transitions=SALE_STATUS_TRANSITIONS,
        )
        workflow.transition(new_status, metadata={"note": note} if note else None)

        entry = {
            "status": new_status.value,
            "timestamp": utcnow().isoformat(),
            "note": note or f"Status changed from {old_status.value} to {new_status.value}",
        }
        sale.status = new_status.value
        # Reassign so the JSON column is flagged dirty
        sale.status_history = [*(sale.status_history or []), entry]
        await self.session.flush()

        logger.info(
            "order_status_changed",
            sale_id=sale_id,
            from_status=old_status.value,
            to_status=new_status.value,
        )
        return sale

    async def cancel_order(
        self, sale_id: int, reason: str, restore_stock: bool = True
    ) -> Sale:
        """Cancel a sale and optionally return its quantities to stock.

        Only PENDING and PROCESSING orders can be cancelled; completed ones
        go through a refund instead.
        """
        current = await self.get_order(sale_id)
        if current.status == SaleStatus.CANCELLED.value:
            raise InvalidStatusTransitionError("Order is already cancelled")
        if current.status in (SaleStatus.COMPLETED.value, SaleStatus.REFUNDED.value):
            raise InvalidStatusTransitionError(
                f"Cannot cancel order with status {current.status}. "
                "Please process a refund instead."
            )

        sale = await self.update_order_status(sale_id, SaleStatus.CANCELLED, reason)
        if not restore_stock:
            return sale

        for item in sale.items:
            if item.book_id is None:
                logger.info("restock_skipped", sale_id=sale_id, sale_item_id=item.id)
                continue
            restored = await self.ledger.restore_stock(item.book_id, item.quantity)
            if not restored:
                logger.warning(
                    "restock_failed",
                    sale_id=sale_id,
                    book_id=item.book_id,
                    quantity=item.quantity,
                )
        return sale

    async def get_order(self, sale_id: int) -> Sale:
        sale = await self.sales.get(sale_id)
        if sale is None:
            raise OrderNotFoundError(sale_id)
        return sale

    async def get_customer_orders(
        self,
        customer_email: str,
        status: SaleStatus | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Sale], int]:
        """A customer's orders, newest first. Returns (sales, total_count)."""
        return await self.sales.list_for_customer(
            customer_email,
            status=status.value if status else None,
            page=page,
            limit=limit,
        )
