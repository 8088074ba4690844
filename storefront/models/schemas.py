"""Pydantic schemas for API request/response and cart payload validation."""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class PaymentMethod(str, Enum):
    CARD = "CARD"
    CASH = "CASH"
    OTHER = "OTHER"


class SaleStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PriceType(str, Enum):
    MEMBER = "MEMBER"
    REGULAR = "REGULAR"


Currency = Literal["USD", "EUR", "GBP", "AUD"]


# ---------------------------------------------------------------------------
# Cart payload (what the signed cookie carries)
# ---------------------------------------------------------------------------

class CartLinePayload(BaseModel):
    book_id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1, le=99)
    price_at_add: int = Field(..., gt=0)
    currency: Currency
    is_member_price: bool = False


class CartPayload(BaseModel):
    items: list[CartLinePayload] = Field(default_factory=list, max_length=50)
    created_at: datetime
    expires_at: datetime


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class AddToCartRequest(BaseModel):
    book_id: int = Field(..., gt=0)
    quantity: int = Field(1, ge=1)
    member: bool = False


class UpdateQuantityRequest(BaseModel):
    quantity: int = Field(..., ge=0)


class CheckoutRequest(BaseModel):
    """Body of POST /checkout/create-order.

    Field presence is checked by the checkout service so missing fields get
    the same structured error as every other checkout failure.
    """

    model_config = ConfigDict(populate_by_name=True)

    square_transaction_id: Optional[str] = Field(None, alias="squareTransactionId")
    square_receipt_url: Optional[str] = Field(None, alias="squareReceiptUrl")
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    customer_email: Optional[EmailStr] = Field(None, alias="customerEmail")
    customer_name: Optional[str] = Field(None, alias="customerName", max_length=200)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class CartLineResponse(BaseModel):
    book_id: int
    quantity: int
    price_at_add: int
    currency: str
    is_member_price: bool
    line_total: int


class CartResponse(BaseModel):
    items: list[CartLineResponse]
    item_count: int
    subtotal: int
    currency: str
    created_at: datetime
    expires_at: datetime
