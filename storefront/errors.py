"""Storefront domain errors.

Each error carries a user-safe ``message`` and the HTTP status the route
layer should answer with. The checkout orchestrator and service recover
these into structured results; only unexpected errors escape.
"""


class StorefrontError(Exception):
    """Base class for all storefront domain errors."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CartValidationError(StorefrontError):
    """Cart contents or a cart mutation broke a cart rule."""


class CartExpiredError(StorefrontError):
    def __init__(self, message: str = "Cart has expired. Please add items again."):
        super().__init__(message)


class EmptyCartError(StorefrontError):
    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class BooksNotFoundError(StorefrontError):
    def __init__(self, message: str = "Books in cart no longer exist"):
        super().__init__(message)


class InsufficientStockError(StorefrontError):
    """Requested quantity exceeds available stock for one book."""

    def __init__(self, book_id: int, title: str, available: int, requested: int):
        super().__init__(
            f'Insufficient stock for "{title}": '
            f"{available} available, {requested} requested"
        )
        self.book_id = book_id
        self.title = title
        self.available = available
        self.requested = requested


class ConcurrentModificationError(StorefrontError):
    """Stock compare-and-swap kept losing to concurrent writers."""

    status_code = 409

    def __init__(self, book_id: int, title: str, attempts: int):
        super().__init__(
            f'Too many concurrent modifications for "{title}", please retry checkout'
        )
        self.book_id = book_id
        self.title = title
        self.attempts = attempts


class PaymentVerificationError(StorefrontError):
    def __init__(self, reason: str):
        super().__init__(f"Payment verification failed: {reason}")
        self.reason = reason


class OrderingDisabledError(StorefrontError):
    status_code = 503

    def __init__(self, message: str = "Online ordering is not currently available"):
        super().__init__(message)


class OrderNotFoundError(StorefrontError):
    status_code = 404

    def __init__(self, sale_id: int):
        super().__init__("Order not found")
        self.sale_id = sale_id


class InvalidStatusTransitionError(StorefrontError):
    status_code = 409
