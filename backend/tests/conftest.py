"""
Pytest fixtures for the POS core backend tests.

Provides test database setup, reference data (currencies, settings, users,
products) and the Flask test client.
"""

from decimal import Decimal

import pytest
from poscore import create_app
from poscore.extensions import db
from poscore.models import Product, User, BusinessSettings
from poscore.services import currency_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RATES_SOURCE_URL': None,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def currencies(db_session):
    """Default currency table (USD baseline)."""
    currency_service.seed_currencies()
    return currency_service.load_currency_table()


@pytest.fixture(scope='function')
def settings(db_session, currencies):
    """Business settings: USD base, 8% tax."""
    settings = BusinessSettings(id=1, business_name="Test Store", currency="USD", tax_rate=Decimal("0.08"))
    db_session.add(settings)
    db_session.commit()
    return settings


@pytest.fixture(scope='function')
def cashier(db_session):
    user = User(name="Casey Cashier", username="cashier", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def second_cashier(db_session):
    user = User(name="Robin Register", username="cashier2", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def product(db_session):
    """Unit-sold product priced 10.00 USD with 10 in stock."""
    product = Product(
        name="Notebook",
        category="Stationery",
        price={"USD": "10.00"},
        purchase_price={"USD": "4.00"},
        stock=Decimal("10"),
        sell_by="unit",
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def weighed_product(db_session):
    """Weight-sold product priced per kg."""
    product = Product(
        name="Apples",
        category="Produce",
        price={"USD": "3.00"},
        purchase_price={"USD": "1.20"},
        stock=Decimal("25.500"),
        sell_by="weight",
    )
    db_session.add(product)
    db_session.commit()
    return product


def make_product(db_session, name: str, price: str, stock: str, sell_by: str = "unit") -> Product:
    """Helper to add a product with a USD price."""
    product = Product(
        name=name,
        price={"USD": price},
        purchase_price={"USD": "1.00"},
        stock=Decimal(stock),
        sell_by=sell_by,
    )
    db_session.add(product)
    db_session.commit()
    return product


def sale_item(product: Product, quantity) -> dict:
    """Helper to build a sale line from a catalog product snapshot."""
    return {
        "id": product.id,
        "name": product.name,
        "quantity": quantity,
        "price": dict(product.price),
        "purchase_price": dict(product.purchase_price),
        "sell_by": product.sell_by,
    }


def actor_headers(user: User) -> dict:
    """Helper to create X-User-Id headers."""
    return {'X-User-Id': str(user.id)}
