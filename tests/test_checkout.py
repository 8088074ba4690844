"""Test the order commit orchestrator against the in-memory store."""
import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest

from storefront.checkout import CreateOrderRequest, OrderCommitOrchestrator, OrderResult
from storefront.config import StoreConfig
from storefront.models.schemas import PaymentMethod
from tests.conftest import (
    NOW,
    FakeCheckoutStore,
    FakeDatabase,
    make_book,
    make_cart,
)


def order_request(cart, **kwargs) -> CreateOrderRequest:
    return CreateOrderRequest(
        cart=cart,
        payment_method=kwargs.pop("payment_method", PaymentMethod.CARD),
        square_transaction_id=kwargs.pop("square_transaction_id", "pay_123"),
        **kwargs,
    )


async def run(store, cart, config=None, now=NOW, **kwargs) -> OrderResult:
    orchestrator = OrderCommitOrchestrator(store, config, clock=lambda: now)
    return await orchestrator.create_order(order_request(cart, **kwargs))


@pytest.mark.asyncio
async def test_single_line_success(fake_db, store):
    result = await run(store, make_cart((1, 1, 2500)))

    assert result.success
    assert result.sale_id == 1
    assert result.warnings is None
    assert fake_db.stock(1) == 9
    assert fake_db.commits == 1

    sale = fake_db.sales[1]
    assert sale["subtotal"] == 2500
    assert sale["tax_amount"] == 250
    assert sale["total_amount"] == 2750
    assert sale["currency"] == "AUD"
    assert sale["status"] == "PENDING"
    assert sale["status_history"][0]["note"] == "Order placed"
    assert sale["receipt_number"] == "RCPT-20260314-0001"


@pytest.mark.asyncio
async def test_sale_items_written_before_sale():
    db = FakeDatabase(make_book(1), make_book(2, title="Emma"))
    result = await run(FakeCheckoutStore(db), make_cart((1, 1, 2500), (2, 2, 2500)))

    assert result.success
    assert db.events == ["sale_item", "sale_item", "sale"]
    assert all(item["sale_id"] == result.sale_id for item in db.sale_items.values())
    assert db.sales[result.sale_id]["item_ids"] == [1, 2]


@pytest.mark.asyncio
async def test_price_drift_is_a_warning():
    db = FakeDatabase(make_book(price=3000))
    result = await run(FakeCheckoutStore(db), make_cart((1, 1, 2500)))

    assert result.success
    assert len(result.warnings) == 1
    assert "Dune" in result.warnings[0]
    assert "Price" in result.warnings[0]
    # line priced at what the shopper agreed to
    assert db.sale_items[1]["unit_price"] == 2500


@pytest.mark.asyncio
async def test_price_drift_exactly_ten_percent_does_not_warn():
    db = FakeDatabase(make_book(price=2750))
    result = await run(FakeCheckoutStore(db), make_cart((1, 1, 2500)))
    assert result.success
    assert result.warnings is None


@pytest.mark.asyncio
async def test_member_line_compared_with_member_price():
    db = FakeDatabase(make_book(price=5000, member_price=2000))
    result = await run(FakeCheckoutStore(db), make_cart((1, 1, 2000, True)))
    assert result.success
    assert result.warnings is None
    assert db.sale_items[1]["price_type"] == "MEMBER"


@pytest.mark.asyncio
async def test_price_warning_uses_state_the_decrement_consumed():
    db = FakeDatabase(make_book(price=2500))
    changed = []

    def reprice_once(db, book_id):
        if not changed:
            changed.append(book_id)
            db.touch(book_id, sell_price=4000)

    db.before_update = reprice_once
    result = await run(FakeCheckoutStore(db), make_cart((1, 1, 2500)))

    assert result.success
    assert result.warnings and "Price" in result.warnings[0]
    assert db.update_attempts == 2


@pytest.mark.asyncio
async def test_insufficient_stock(store, fake_db):
    fake_db.touch(1, stock_quantity=0)
    result = await run(store, make_cart((1, 1, 2500)))

    assert not result.success
    assert "Insufficient stock" in result.error
    assert fake_db.sales == {}
    assert fake_db.update_attempts == 0


@pytest.mark.asyncio
async def test_stock_sold_out_between_read_and_decrement(store, fake_db):
    fake_db.before_update = lambda db, book_id: db.touch(book_id, stock_quantity=0)
    result = await run(store, make_cart((1, 1, 2500)))

    assert not result.success
    assert result.error == 'Insufficient stock for "Dune": 0 available, 1 requested'
    assert fake_db.update_attempts == 1


@pytest.mark.asyncio
async def test_version_churn_exhausts_three_attempts(store, fake_db):
    fake_db.before_update = lambda db, book_id: db.touch(book_id)
    result = await run(store, make_cart((1, 1, 2500)))

    assert not result.success
    assert "concurrent modifications" in result.error
    assert result.status_code == 409
    assert fake_db.update_attempts == 3
    assert fake_db.stock(1) == 10


@pytest.mark.asyncio
async def test_one_conflict_then_success(store, fake_db):
    conflicts = []

    def churn_once(db, book_id):
        if not conflicts:
            conflicts.append(book_id)
            db.touch(book_id)

    fake_db.before_update = churn_once
    result = await run(store, make_cart((1, 2, 2500)))

    assert result.success
    assert fake_db.update_attempts == 2
    assert fake_db.stock(1) == 8


@pytest.mark.asyncio
async def test_attempt_limit_is_configurable(store, fake_db):
    fake_db.before_update = lambda db, book_id: db.touch(book_id)
    config = StoreConfig(checkout=replace(StoreConfig().checkout, max_stock_attempts=5))
    result = await run(store, make_cart((1, 1, 2500)), config=config)

    assert not result.success
    assert fake_db.update_attempts == 5


@pytest.mark.asyncio
async def test_failed_second_line_rolls_back_first():
    db = FakeDatabase(make_book(1, stock=5), make_book(2, title="Emma", stock=5))

    def sell_out_emma(db, book_id):
        if book_id == 2:
            db.touch(2, stock_quantity=0)

    db.before_update = sell_out_emma
    store = FakeCheckoutStore(db)
    result = await run(store, make_cart((1, 2, 2500), (2, 1, 2500)))

    assert not result.success
    assert "Emma" in result.error
    assert db.stock(1) == 5
    assert store.rollbacks == 1
    assert db.sale_items == {}
    assert db.sales == {}


@pytest.mark.asyncio
async def test_persist_failure_rolls_back_everything(store, fake_db):
    fake_db.fail_on_create_sale = True
    result = await run(store, make_cart((1, 3, 2500)))

    assert result.to_dict() == {"success": False, "error": "Failed to create order"}
    assert result.status_code == 500
    assert fake_db.stock(1) == 10
    assert fake_db.sale_items == {}


@pytest.mark.asyncio
async def test_commit_failure_is_not_reported_as_success(store, fake_db):
    fake_db.fail_on_commit = True
    result = await run(store, make_cart((1, 2, 2500)))

    assert not result.success
    assert result.status_code == 500
    assert store.rollbacks == 1
    assert fake_db.stock(1) == 10
    assert fake_db.sales == {}
    assert fake_db.sale_items == {}


@pytest.mark.asyncio
async def test_insufficient_stock_is_a_client_error(store):
    result = await run(store, make_cart((1, 11, 2500)))
    assert result.status_code == 400

@pytest.mark.asyncio
async def test_debug_mode_surfaces_unexpected_error(store, fake_db):
    fake_db.fail_on_create_sale = True
    result = await run(store, make_cart((1, 1, 2500)), config=StoreConfig(debug=True))
    assert result.error == "database unavailable"


@pytest.mark.asyncio
async def test_expired_cart(store, fake_db):
    cart = make_cart((1, 1, 2500))
    result = await run(store, cart, now=cart.expires_at + timedelta(microseconds=1))

    assert not result.success
    assert result.error == "Cart has expired. Please add items again."
    assert result.status_code == 400
    assert fake_db.update_attempts == 0


@pytest.mark.asyncio
async def test_cart_expiring_right_now_is_still_valid(store):
    cart = make_cart((1, 1, 2500))
    result = await run(store, cart, now=cart.expires_at)
    assert result.success


@pytest.mark.asyncio
async def test_empty_cart(store):
    result = await run(store, make_cart())
    assert result.to_dict() == {"success": False, "error": "Cart is empty"}


@pytest.mark.asyncio
async def test_missing_book_dropped_with_warning(store, fake_db):
    result = await run(store, make_cart((1, 1, 2500), (99, 1, 1000)))

    assert result.success
    assert result.warnings == [
        "Book 99 is no longer available and was not included in your order"
    ]
    assert len(fake_db.sale_items) == 1
    assert fake_db.sales[1]["subtotal"] == 2500


@pytest.mark.asyncio
async def test_all_books_missing(store):
    result = await run(store, make_cart((98, 1, 1000), (99, 1, 1000)))
    assert result.error == "Books in cart no longer exist"


@pytest.mark.asyncio
async def test_book_deleted_during_reservation(store, fake_db):
    fake_db.before_update = lambda db, book_id: db.books.pop(book_id)
    result = await run(store, make_cart((1, 1, 2500)))
    assert not result.success
    assert "no longer available" in result.error


@pytest.mark.asyncio
async def test_customer_details_persisted(store, fake_db):
    result = await run(
        store,
        make_cart((1, 1, 2500)),
        payment_method=PaymentMethod.CASH,
        square_transaction_id="cash_1",
        customer_email="reader@example.com",
        customer_name="Sam Reader",
    )
    sale = fake_db.sales[result.sale_id]
    assert sale["payment_method"] == "CASH"
    assert sale["customer_email"] == "reader@example.com"
    assert sale["customer_name"] == "Sam Reader"
    assert sale["square_transaction_id"] == "cash_1"


def test_order_result_to_dict():
    assert OrderResult.ok(7).to_dict() == {"success": True, "saleId": 7}
    assert OrderResult.ok(7, ["w"]).to_dict() == {
        "success": True,
        "saleId": 7,
        "warnings": ["w"],
    }


@pytest.mark.asyncio
async def test_concurrent_checkouts_never_oversell():
    db = FakeDatabase(make_book(stock=5))

    results = await asyncio.gather(
        *(run(FakeCheckoutStore(db), make_cart((1, 1, 2500))) for _ in range(12))
    )

    sold = sum(1 for r in results if r.success)
    assert sold <= 5
    assert db.stock(1) >= 0
    assert db.stock(1) == 5 - sold
    assert len(db.sales) == sold
    for failed in (r for r in results if not r.success):
        assert "Insufficient stock" in failed.error or "concurrent" in failed.error


@pytest.mark.asyncio
async def test_concurrent_multi_line_checkouts_stay_consistent():
    db = FakeDatabase(make_book(1, stock=3), make_book(2, title="Emma", stock=3))

    results = await asyncio.gather(
        *(
            run(FakeCheckoutStore(db), make_cart((1, 1, 2500), (2, 1, 2500)))
            for _ in range(6)
        )
    )

    sold = sum(1 for r in results if r.success)
    assert sold <= 3
    assert db.stock(1) == 3 - sold
    assert db.stock(2) == 3 - sold
