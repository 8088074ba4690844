"""SQLAlchemy models for the storefront.

Each model inherits from Base and uses TimestampMixin. Money columns are
integer cents. The to_dict() method provides a standard serialisation
interface used by repositories and routers.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.models.base import Base, TimestampMixin, utcnow
from storefront.models.schemas import PriceType, SaleStatus


class Book(TimestampMixin, Base):
    """A book in the catalog. Checkout only touches stock and reads prices."""

    __tablename__ = "books"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_books_stock_non_negative"),
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    author: Mapped[str | None] = mapped_column(String(200), nullable=True, index=True)
    isbn: Mapped[str | None] = mapped_column(String(13), unique=True, nullable=True)
    sell_price: Mapped[int] = mapped_column(Integer, nullable=False)
    member_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="AUD")
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "sell_price": self.sell_price,
            "member_price": self.member_price,
            "currency": self.currency,
            "stock_quantity": self.stock_quantity,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Sale(TimestampMixin, Base):
    """A completed checkout. Owns its line items."""

    __tablename__ = "sales"

    receipt_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    sale_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    subtotal: Mapped[int] = mapped_column(Integer, nullable=False)
    tax_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(10), nullable=False)
    square_transaction_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True
    )
    square_receipt_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(320), nullable=True, index=True)
    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SaleStatus.PENDING.value
    )
    status_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    items: Mapped[list["SaleItem"]] = relationship(
        back_populates="sale", lazy="selectin", order_by="SaleItem.id"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "sale_date": self.sale_date.isoformat() if self.sale_date else None,
            "subtotal": self.subtotal,
            "tax_amount": self.tax_amount,
            "total_amount": self.total_amount,
            "currency": self.currency,
            "payment_method": self.payment_method,
            "square_transaction_id": self.square_transaction_id,
            "square_receipt_url": self.square_receipt_url,
            "customer_email": self.customer_email,
            "customer_name": self.customer_name,
            "status": self.status,
            "status_history": list(self.status_history or []),
            "items": [item.to_dict() for item in self.items],
        }


class SaleItem(TimestampMixin, Base):
    """One line of a sale, priced at what the shopper agreed to."""

    __tablename__ = "sale_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_sale_items_quantity_positive"),
    )

    sale_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("sales.id"), nullable=True, index=True
    )
    book_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("books.id", ondelete="SET NULL"), nullable=True, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[int] = mapped_column(Integer, nullable=False)
    line_total: Mapped[int] = mapped_column(Integer, nullable=False)
    price_type: Mapped[str] = mapped_column(
        String(10), nullable=False, default=PriceType.REGULAR.value
    )

    sale: Mapped[Optional["Sale"]] = relationship(back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "book_id": self.book_id,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "line_total": self.line_total,
            "price_type": self.price_type,
        }
