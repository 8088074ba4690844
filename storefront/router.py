"""Storefront API router: cart and checkout endpoints.

Standard router pattern:
- Cart endpoints read and write the signed cart cookie, never the database
- Checkout endpoint verifies payment and commits the order
- Repository and gateway injection via FastAPI Depends
- Domain errors raised by cart endpoints are rendered by the app's
  StorefrontError handler as {success: false, error}
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from storefront import cart as carts
from storefront.cart import CartSnapshot
from storefront.cart_cookie import clear_cart, get_cart, save_cart
from storefront.config import StoreConfig
from storefront.models.schemas import (
    AddToCartRequest,
    CartResponse,
    CheckoutRequest,
    UpdateQuantityRequest,
)
from storefront.payments import PaymentGateway, SquarePaymentGateway
from storefront.repository import (
    BookRepository,
    SaleRepository,
    SqlCheckoutStore,
    get_book_repository,
    get_checkout_store,
    get_sale_repository,
)
from storefront.service import process_checkout

logger = structlog.get_logger(__name__)

router = APIRouter()

STORE_CONFIG = StoreConfig.from_env()


# ============================================================================
# Dependencies
# ============================================================================

def get_store_config() -> StoreConfig:
    """FastAPI dependency for the storefront configuration."""
    return STORE_CONFIG


def get_payment_gateway(
    config: StoreConfig = Depends(get_store_config),
    sales: SaleRepository = Depends(get_sale_repository),
) -> PaymentGateway:
    """FastAPI dependency for the Square payment gate."""
    return SquarePaymentGateway(config.payment, sales)


def _current_cart(request: Request, config: StoreConfig) -> CartSnapshot:
    return get_cart(request, config) or carts.new_cart(config=config.cart)


def _cart_response(cart: CartSnapshot) -> CartResponse:
    return CartResponse.model_validate(cart.summary())


# ============================================================================
# Cart Endpoints
# ============================================================================

@router.get("/cart", response_model=CartResponse)
async def read_cart(
    request: Request,
    config: StoreConfig = Depends(get_store_config),
):
    """Current cart, or an empty one when there is no valid cookie."""
    return _cart_response(_current_cart(request, config))


@router.post("/cart/items", response_model=CartResponse)
async def add_to_cart(
    body: AddToCartRequest,
    request: Request,
    response: Response,
    books: BookRepository = Depends(get_book_repository),
    config: StoreConfig = Depends(get_store_config),
):
    """Add a book to the cart at its current (or member) price."""
    book = await books.find_book_by_id(body.book_id)
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")

    cart = carts.add_item(
        _current_cart(request, config),
        book,
        quantity=body.quantity,
        member=body.member,
        config=config.cart,
    )
    save_cart(response, cart, config)
    return _cart_response(cart)


@router.patch("/cart/items/{book_id}", response_model=CartResponse)
async def update_cart_item(
    book_id: int,
    body: UpdateQuantityRequest,
    request: Request,
    response: Response,
    books: BookRepository = Depends(get_book_repository),
    config: StoreConfig = Depends(get_store_config),
):
    """Set a line's quantity; 0 removes it."""
    book = await books.find_book_by_id(book_id)
    available = book.stock_quantity if book else 0

    cart = carts.update_quantity(
        _current_cart(request, config),
        book_id,
        body.quantity,
        available=available,
        config=config.cart,
    )
    save_cart(response, cart, config)
    return _cart_response(cart)


@router.delete("/cart/items/{book_id}", response_model=CartResponse)
async def remove_cart_item(
    book_id: int,
    request: Request,
    response: Response,
    config: StoreConfig = Depends(get_store_config),
):
    cart = carts.remove_item(_current_cart(request, config), book_id)
    save_cart(response, cart, config)
    return _cart_response(cart)


@router.delete("/cart")
async def delete_cart(
    response: Response,
    config: StoreConfig = Depends(get_store_config),
):
    clear_cart(response, config)
    return {"success": True}


# ============================================================================
# Checkout Endpoint
# ============================================================================

@router.post("/checkout/create-order")
async def create_order(
    params: CheckoutRequest,
    request: Request,
    store: SqlCheckoutStore = Depends(get_checkout_store),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    config: StoreConfig = Depends(get_store_config),
):
    """Create an order from the cart after the payment has been taken.

    Returns 200 {success, saleId, warnings?} once the order is committed.
    Otherwise {success: false, error} with the failure's status: 400 for
    domain failures, 500 for unexpected ones.
    """
    try:
        # Expired carts are passed on so checkout can report the expiry
        cart = get_cart(request, config, include_expired=True)
        result = await process_checkout(params, cart, store, gateway, config)
    except Exception as exc:
        logger.exception("checkout_route_error")
        error = str(exc) if config.debug else "Internal server error"
        return JSONResponse(status_code=500, content={"success": False, "error": error})

    if not result.success:
        return JSONResponse(status_code=result.status_code, content=result.to_dict())

    response = JSONResponse(status_code=200, content=result.to_dict())
    clear_cart(response, config)
    return response
