"""Test cart snapshot mutations and validation."""
from datetime import timedelta

import pytest

from storefront.cart import CartSnapshot, add_item, new_cart, remove_item, update_quantity
from storefront.errors import CartValidationError
from tests.conftest import NOW, make_book, make_cart


def test_new_cart_expires_after_ttl():
    cart = new_cart(NOW)
    assert cart.is_empty
    assert cart.expires_at == NOW + timedelta(days=7)
    assert cart.currency == "AUD"


def test_add_item_prices_at_add_time():
    cart = add_item(new_cart(NOW), make_book(price=2500), quantity=2)
    assert cart.items[0].price_at_add == 2500
    assert cart.subtotal == 5000
    assert cart.item_count == 2


def test_add_item_member_price():
    book = make_book(price=2500, member_price=2000)
    cart = add_item(new_cart(NOW), book, member=True)
    assert cart.items[0].price_at_add == 2000
    assert cart.items[0].is_member_price


def test_member_without_member_price_pays_regular():
    cart = add_item(new_cart(NOW), make_book(price=2500), member=True)
    assert cart.items[0].price_at_add == 2500
    assert not cart.items[0].is_member_price


def test_add_item_merges_and_keeps_original_price():
    cart = add_item(new_cart(NOW), make_book(price=2500))
    cart = add_item(cart, make_book(price=3000), quantity=2)
    assert len(cart.items) == 1
    assert cart.items[0].quantity == 3
    assert cart.items[0].price_at_add == 2500


def test_add_item_rejects_more_than_stock():
    with pytest.raises(CartValidationError, match="Only 3 items available in stock"):
        add_item(new_cart(NOW), make_book(stock=3), quantity=4)


def test_merged_quantity_checked_against_stock():
    cart = add_item(new_cart(NOW), make_book(stock=3), quantity=2)
    with pytest.raises(CartValidationError, match="Only 3 items"):
        add_item(cart, make_book(stock=3), quantity=2)


def test_add_item_quantity_cap():
    with pytest.raises(CartValidationError, match="Maximum quantity per item is 99"):
        add_item(new_cart(NOW), make_book(stock=500), quantity=100)


def test_add_item_rejects_second_currency():
    cart = add_item(new_cart(NOW), make_book(currency="AUD"))
    with pytest.raises(CartValidationError, match="currency"):
        add_item(cart, make_book(book_id=2, currency="USD"))


def test_add_item_rejects_51st_line():
    cart = new_cart(NOW)
    for book_id in range(1, 51):
        cart = add_item(cart, make_book(book_id=book_id))
    with pytest.raises(CartValidationError, match="50 items"):
        add_item(cart, make_book(book_id=51))


def test_update_quantity():
    cart = make_cart((1, 1, 2500))
    cart = update_quantity(cart, 1, 4, available=10)
    assert cart.items[0].quantity == 4


def test_update_quantity_zero_removes():
    cart = make_cart((1, 1, 2500), (2, 1, 1000))
    cart = update_quantity(cart, 1, 0, available=10)
    assert [line.book_id for line in cart.items] == [2]


def test_update_quantity_missing_line():
    with pytest.raises(CartValidationError, match="Item not in cart"):
        update_quantity(make_cart((1, 1, 2500)), 9, 1, available=10)


def test_remove_item():
    cart = remove_item(make_cart((1, 1, 2500), (2, 1, 1000)), 2)
    assert [line.book_id for line in cart.items] == [1]


def test_expiry_boundary():
    cart = make_cart((1, 1, 2500))
    assert not cart.is_expired(cart.expires_at)
    assert cart.is_expired(cart.expires_at + timedelta(microseconds=1))


def test_expiry_must_follow_creation():
    with pytest.raises(CartValidationError):
        CartSnapshot(created_at=NOW, expires_at=NOW)


def test_from_dict_round_trip():
    cart = make_cart((1, 2, 2500), (2, 1, 999, True))
    restored = CartSnapshot.from_dict(cart.to_dict())
    assert restored == cart


def test_from_dict_rejects_bad_quantity():
    data = make_cart((1, 1, 2500)).to_dict()
    data["items"][0]["quantity"] = 0
    with pytest.raises(CartValidationError):
        CartSnapshot.from_dict(data)


def test_summary_totals():
    summary = make_cart((1, 2, 2500), (2, 1, 1000)).summary()
    assert summary["subtotal"] == 6000
    assert summary["item_count"] == 3
    assert summary["items"][0]["line_total"] == 5000
