from unittest.mock import MagicMock

import pytest
from pymongo.errors import PyMongoError

import checkout as checkout_module
from cart import SessionCart
from checkout import checkout, take_stock
from errors import (
    InsufficientStockError,
    NotFoundError,
    TransientStoreError,
    UnavailableError,
    ValidationError,
)
from schemas import CustomerInfo

ANA = CustomerInfo(name="Ana Lopez", email="  Ana@Mail.com ", phone="+919876543210")


def cart_of(*lines):
    return SessionCart({"cart": [{"product_id": pid, "quantity": qty} for pid, qty in lines]})


def test_scenario_a_target_sold_success(db, make_product, product_doc):
    pid = make_product(target_quantity=10, sold_quantity=8, campaign_price=100)
    cart = cart_of((pid, 2))

    result = checkout(db, cart, ANA)

    assert result.subtotal == 200.0
    assert result.shipping == 10.0
    assert result.amount == 210.0
    assert result.payment_id
    assert product_doc(pid)["sold_quantity"] == 10
    assert cart.is_empty()


def test_scenario_b_insufficient_stock(db, make_product, product_doc):
    pid = make_product(target_quantity=10, sold_quantity=8, campaign_price=100)
    cart = cart_of((pid, 3))

    with pytest.raises(InsufficientStockError) as exc:
        checkout(db, cart, ANA)

    assert exc.value.remaining == 2
    assert product_doc(pid)["sold_quantity"] == 8
    assert db["customer"].count_documents({}) == 0
    assert not cart.is_empty()


def test_scenario_c_inactive_campaign(db, make_campaign, make_product, product_doc):
    pid = make_product(campaign_id=make_campaign(status="completed"), target_quantity=10, sold_quantity=0)

    with pytest.raises(UnavailableError):
        checkout(db, cart_of((pid, 1)), ANA)

    assert product_doc(pid)["sold_quantity"] == 0
    assert db["customer"].count_documents({}) == 0


def test_scenario_d_sequential_last_unit(db, make_product, product_doc):
    pid = make_product(stock_quantity=1)
    first, second = cart_of((pid, 1)), cart_of((pid, 1))

    checkout(db, first, ANA)
    with pytest.raises(InsufficientStockError) as exc:
        checkout(db, second, CustomerInfo(name="Ravi", email="ravi@mail.com"))

    assert exc.value.remaining == 0
    assert product_doc(pid)["stock_quantity"] == 0


def test_empty_cart_touches_nothing():
    db = MagicMock()
    with pytest.raises(ValidationError, match="Cart is empty"):
        checkout(db, SessionCart({}), ANA)
    assert db.mock_calls == []


@pytest.mark.parametrize("info", [
    CustomerInfo(name="Ana"),
    CustomerInfo(email="ana@mail.com"),
    CustomerInfo(name="   ", email="ana@mail.com"),
    CustomerInfo(name="Ana", email="not-an-email"),
])
def test_contact_required(db, make_product, product_doc, info):
    pid = make_product(stock_quantity=5)
    with pytest.raises(ValidationError):
        checkout(db, cart_of((pid, 1)), info)
    assert product_doc(pid)["stock_quantity"] == 5


def test_missing_product_aborts_whole_checkout(db, make_product, product_doc):
    pid = make_product(stock_quantity=5)
    cart = cart_of((pid, 1), ("64b0000000000000000000ff", 1))
    with pytest.raises(NotFoundError):
        checkout(db, cart, ANA)
    assert product_doc(pid)["stock_quantity"] == 5


def test_counter_stock_and_ledger_accumulate(db, make_product, product_doc):
    pid = make_product(stock_quantity=10, campaign_price=20)

    checkout(db, cart_of((pid, 3)), ANA)
    checkout(db, cart_of((pid, 2)), CustomerInfo(name="Ana L.", email="ana@mail.com"))

    assert product_doc(pid)["stock_quantity"] == 5
    customer = db["customer"].find_one({"email": "ana@mail.com"})
    assert customer["name"] == "Ana L."
    assert customer["phone"] == "+919876543210"
    assert customer["total_purchases"] == 5
    # 60 + 3 shipping, then 40 + 2
    assert customer["total_spent"] == pytest.approx(105.0)
    assert customer["last_purchase_date"] is not None
    assert db["customer"].count_documents({}) == 1


def test_delivery_days(db, make_product):
    fast = make_product(stock_quantity=5, delivery_info={"estimated_days": 2})
    slow = make_product(stock_quantity=5, delivery_info={"estimated_days": 7})
    plain = make_product(stock_quantity=5)

    result = checkout(db, cart_of((fast, 1), (slow, 1)), ANA)
    assert result.delivery_days == 7
    assert "delivered in 7 days" in result.message

    assert checkout(db, cart_of((plain, 1)), ANA).delivery_days == 5


def test_explicit_lines_override_session_cart(db, make_product, product_doc):
    in_session = make_product(stock_quantity=5)
    in_body = make_product(stock_quantity=5)
    cart = cart_of((in_session, 1))

    checkout(db, cart, ANA, lines=[{"product_id": in_body, "quantity": 2}])

    assert product_doc(in_body)["stock_quantity"] == 3
    assert product_doc(in_session)["stock_quantity"] == 5
    assert cart.is_empty()


def test_take_stock_retries_on_fresh_data(db, make_product, product_doc):
    pid = make_product(target_quantity=10, sold_quantity=5)
    stale = product_doc(pid)
    db["product"].update_one({"_id": stale["_id"]}, {"$inc": {"sold_quantity": 1}})

    take_stock(db, stale, 2)

    assert product_doc(pid)["sold_quantity"] == 8


def test_take_stock_conflict_reports_fresh_remaining(db, make_product, product_doc):
    pid = make_product(target_quantity=10, sold_quantity=7)
    stale = product_doc(pid)
    db["product"].update_one({"_id": stale["_id"]}, {"$inc": {"sold_quantity": 2}})

    with pytest.raises(InsufficientStockError) as exc:
        take_stock(db, stale, 2)

    assert exc.value.remaining == 1
    assert product_doc(pid)["sold_quantity"] == 9


def test_commit_conflict_releases_earlier_lines(db, make_product, product_doc, monkeypatch):
    first = make_product(stock_quantity=5)
    contested = make_product(target_quantity=3, sold_quantity=0)
    real_take_stock = checkout_module.take_stock

    def racing_take_stock(database, product, qty):
        if str(product["_id"]) == contested:
            # another session buys the last units between validation and commit
            database["product"].update_one({"_id": product["_id"]}, {"$set": {"sold_quantity": 3}})
        return real_take_stock(database, product, qty)

    monkeypatch.setattr(checkout_module, "take_stock", racing_take_stock)
    cart = cart_of((first, 2), (contested, 1))

    with pytest.raises(InsufficientStockError) as exc:
        checkout(db, cart, ANA)

    assert exc.value.remaining == 0
    assert product_doc(first)["stock_quantity"] == 5
    assert product_doc(contested)["sold_quantity"] == 3
    assert db["customer"].count_documents({}) == 0
    assert not cart.is_empty()


def test_store_failure_keeps_earlier_writes(db, make_product, product_doc, monkeypatch):
    pid = make_product(stock_quantity=5)

    def broken_ledger(*args, **kwargs):
        raise PyMongoError("connection reset")

    monkeypatch.setattr(checkout_module, "record_purchase", broken_ledger)
    cart = cart_of((pid, 2))

    with pytest.raises(TransientStoreError):
        checkout(db, cart, ANA)

    assert product_doc(pid)["stock_quantity"] == 3
    assert not cart.is_empty()


def test_take_stock_ignores_other_sales_while_stock_remains(db, make_product, product_doc):
    pid = make_product(target_quantity=100, sold_quantity=0)
    stale = product_doc(pid)
    products = db["product"]

    def other_sale():
        products.update_one({"_id": stale["_id"]}, {"$inc": {"sold_quantity": 1}})

    class BusyProducts:
        # another customer buys one unit before every read and write we make
        def update_one(self, query, update):
            other_sale()
            return products.update_one(query, update)

        def find_one(self, query):
            other_sale()
            return products.find_one(query)

    take_stock({"product": BusyProducts()}, stale, 2)

    assert product_doc(pid)["sold_quantity"] == 3


def test_fractional_delivery_estimate_kept(db, make_product):
    pid = make_product(stock_quantity=5, delivery_info={"estimated_days": 3.5})
    result = checkout(db, cart_of((pid, 1)), ANA)
    assert result.delivery_days == 3.5
    assert "delivered in 3.5 days" in result.message
