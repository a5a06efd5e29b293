from __future__ import annotations

from ..extensions import db
from poscore.time_utils import to_utc_z
from poscore.validation import money_str


class Product(db.Model):
    """
    Product master data, as seen by the commerce core.

    Catalog CRUD lives outside this service; the core only reads price maps
    when a till does not supply a snapshot, and writes `stock` through the
    stock ledger.

    PRICE DESIGN DECISION:
    `price` and `purchase_price` are maps of currency code -> amount (stored as
    decimal strings). A product may carry an explicit price in several
    currencies; missing currencies are converted from the base currency.

    STOCK:
    - Non-negative at all times (CHECK constraint + conditional updates)
    - Unit-sold products use whole quantities; weight-sold use 3 decimals
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)

    price = db.Column(db.JSON, nullable=False, default=dict)
    purchase_price = db.Column(db.JSON, nullable=False, default=dict)

    stock = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    sell_by = db.Column(db.String(16), nullable=False, default="unit")  # unit, weight

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price": dict(self.price or {}),
            "purchase_price": dict(self.purchase_price or {}),
            "stock": money_str(self.stock),
            "sell_by": self.sell_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Currency(db.Model):
    """
    Exchange-rate table.

    `rate` is the multiplicative factor from one fixed baseline currency to
    this currency. The business base currency is an ordinary row; its rate is
    the divisor used to bring base amounts back to the baseline.

    `decimals` is the precision amounts in this currency are rounded to
    (0 for currencies without minor units).
    """
    __tablename__ = "currencies"

    code = db.Column(db.String(8), primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    symbol = db.Column(db.String(8), nullable=False)
    rate = db.Column(db.Numeric(18, 6), nullable=False)
    decimals = db.Column(db.Integer, nullable=False, default=2)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "name": self.name,
            "symbol": self.symbol,
            "rate": money_str(self.rate),
            "decimals": self.decimals,
            "updated_at": to_utc_z(self.updated_at),
        }


class BusinessSettings(db.Model):
    """Single-row business configuration consumed by the sale route."""
    __tablename__ = "business_settings"

    id = db.Column(db.Integer, primary_key=True)
    business_name = db.Column(db.String(255), nullable=False, default="My Store")

    # Fraction, e.g. 0.08 for 8%
    tax_rate = db.Column(db.Numeric(6, 4), nullable=False, default=0)

    currency = db.Column(db.String(8), nullable=False, default="USD")
    default_display_currency = db.Column(db.String(8), nullable=True)
    currency_rates_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_name": self.business_name,
            "tax_rate": money_str(self.tax_rate),
            "currency": self.currency,
            "default_display_currency": self.default_display_currency or self.currency,
            "currency_rates_updated_at": to_utc_z(self.currency_rates_updated_at),
        }


class User(db.Model):
    """
    Actor identity.

    Only used for attribution (cashier names on orders, audit entries).
    Credentials and roles are managed elsewhere.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "is_active": self.is_active,
        }
