from decimal import Decimal

import pytest

from poscore.extensions import db
from poscore.models import Product
from poscore.services import stock_service
from poscore.services.stock_service import InsufficientStockError, ProductNotFoundError

from conftest import make_product


def _stock(product_id):
    return db.session.query(Product.stock).filter(Product.id == product_id).scalar()


def test_decrement_returns_new_stock(db_session, product):
    assert stock_service.decrement_stock(product.id, 3) == Decimal("7")
    db_session.commit()
    assert Decimal(_stock(product.id)) == Decimal("7")


def test_decrement_to_exactly_zero_is_allowed(db_session, product):
    assert stock_service.decrement_stock(product.id, 10) == Decimal("0")


def test_decrement_beyond_stock_raises_and_changes_nothing(db_session, product):
    with pytest.raises(InsufficientStockError) as exc_info:
        stock_service.decrement_stock(product.id, 11)

    assert exc_info.value.product_id == product.id
    assert exc_info.value.requested == Decimal("11")
    assert exc_info.value.available == Decimal("10")
    assert Decimal(_stock(product.id)) == Decimal("10")


def test_increment_has_no_precondition(db_session, product):
    assert stock_service.increment_stock(product.id, Decimal("2.5")) == Decimal("12.5")


def test_unknown_product(db_session):
    with pytest.raises(ProductNotFoundError):
        stock_service.decrement_stock(999, 1)
    with pytest.raises(ProductNotFoundError):
        stock_service.increment_stock(999, 1)


def test_rollback_undoes_earlier_adjustments(db_session, product):
    stock_service.decrement_stock(product.id, 4)
    with pytest.raises(InsufficientStockError):
        stock_service.decrement_stock(product.id, 7)
    db_session.rollback()

    assert Decimal(_stock(product.id)) == Decimal("10")


def test_weight_stock_decrements_to_exactly_zero(db_session):
    saffron = make_product(db_session, "Saffron", "9.00", "0.3", sell_by="weight")

    for _ in range(3):
        stock_service.decrement_stock(saffron.id, Decimal("0.1"))
    db_session.commit()

    assert Decimal(_stock(saffron.id)) == Decimal("0")
    with pytest.raises(InsufficientStockError):
        stock_service.decrement_stock(saffron.id, Decimal("0.001"))


def test_weight_increments_stay_on_the_gram(db_session):
    saffron = make_product(db_session, "Saffron", "9.00", "0", sell_by="weight")

    for _ in range(10):
        stock_service.increment_stock(saffron.id, Decimal("0.1"))
    db_session.commit()

    assert stock_service.decrement_stock(saffron.id, Decimal("1")) == Decimal("0")
