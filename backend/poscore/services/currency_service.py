# Overview: Currency resolver; pure conversion over the exchange-rate table plus wholesale rate refresh.

"""
Currency Resolver

WHY: Prices live in per-product currency maps and totals are stored in the
business base currency, but the till may display any currency. Every
component that turns a stored amount into a caller-facing one goes through
these functions.

CONVERSION MODEL:
- Every Currency.rate is relative to one fixed baseline currency.
- amount_in_target = amount_in_source / rate(source) * rate(target)
- If the source currency *is* the baseline its rate is 1 and the division is a no-op.
- An unknown currency code leaves the amount unconverted (display never blocks a sale).

PRECISION:
- Currency.decimals travels with the rate; quantize() rounds half-up to it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from types import MappingProxyType
from typing import Mapping, Optional

from flask import current_app

from ..extensions import db
from ..models import Currency, BusinessSettings
from poscore.time_utils import utcnow
from .concurrency import run_with_retry
from poscore.validation import ValidationError, parse_decimal

logger = logging.getLogger(__name__)


DEFAULT_CURRENCIES = [
    {"code": "USD", "name": "US Dollar", "symbol": "$", "rate": "1", "decimals": 2},
    {"code": "EUR", "name": "Euro", "symbol": "€", "rate": "0.93", "decimals": 2},
    {"code": "MXN", "name": "Mexican Peso", "symbol": "$", "rate": "18.10", "decimals": 2},
    {"code": "CLP", "name": "Chilean Peso", "symbol": "CLP", "rate": "930.00", "decimals": 0},
    {"code": "Bs", "name": "Venezuelan Bolívar", "symbol": "Bs", "rate": "36.42", "decimals": 2},
]


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    symbol: str
    rate: Decimal
    decimals: int = 2


CurrencyTable = Mapping[str, CurrencyInfo]


# =============================================================================
# PURE RESOLUTION
# =============================================================================

def build_table(rows) -> CurrencyTable:
    """Build an immutable currency table from Currency rows or dicts."""
    table = {}
    for row in rows:
        if isinstance(row, Mapping):
            info = CurrencyInfo(
                code=row["code"],
                symbol=row.get("symbol", row["code"]),
                rate=Decimal(str(row["rate"])),
                decimals=int(row.get("decimals", 2)),
            )
        else:
            info = CurrencyInfo(
                code=row.code,
                symbol=row.symbol,
                rate=Decimal(row.rate),
                decimals=row.decimals,
            )
        table[info.code] = info
    return MappingProxyType(table)


def _rate(code: str, table: CurrencyTable) -> Optional[Decimal]:
    info = table.get(code)
    if info is None or info.rate <= 0:
        return None
    return info.rate


def convert(amount, from_code: str, to_code: str, table: CurrencyTable) -> Decimal:
    """
    Convert an amount between two currencies through the shared baseline.

    Unknown codes on either side return the amount unchanged.
    """
    amount = Decimal(amount)
    if from_code == to_code:
        return amount

    from_rate = _rate(from_code, table)
    to_rate = _rate(to_code, table)
    if from_rate is None or to_rate is None:
        logger.debug("Unknown currency in %s->%s conversion; leaving amount unconverted", from_code, to_code)
        return amount

    amount_in_baseline = amount / from_rate
    return amount_in_baseline * to_rate


def price_entry(price_map: Mapping | None, code: str) -> Optional[Decimal]:
    """Explicit price for a currency in a product price map, if present."""
    if not price_map or code not in price_map:
        return None
    value = price_map[code]
    if value is None:
        return None
    return parse_decimal(value, f"price[{code}]")


def resolve_price(
    price_map: Mapping | None,
    currency_code: str,
    base_code: str,
    table: CurrencyTable,
) -> Optional[Decimal]:
    """
    Price of a product in `currency_code`.

    An explicit entry is returned unconverted (sellers may set a non-market
    price in a given currency). Otherwise the base-currency entry is
    converted. Returns None when the map has neither.
    """
    explicit = price_entry(price_map, currency_code)
    if explicit is not None:
        return explicit

    base_amount = price_entry(price_map, base_code)
    if base_amount is None:
        return None
    return convert(base_amount, base_code, currency_code, table)


def precision(code: str, table: CurrencyTable) -> int:
    """Decimal places used by a currency (2 when the code is unknown)."""
    info = table.get(code)
    return info.decimals if info else 2


def quantize(amount, code: str, table: CurrencyTable) -> Decimal:
    """Round an amount half-up to the currency's precision."""
    places = precision(code, table)
    return Decimal(amount).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def to_display(amount_in_base, display_code: str, base_code: str, table: CurrencyTable) -> dict:
    """
    Convert a stored base-currency amount for presentation.

    Falls back to the base currency when the display code is unknown.
    """
    code = display_code if display_code in table else base_code
    converted = convert(amount_in_base, base_code, code, table)
    info = table.get(code)
    return {
        "currency": code,
        "symbol": info.symbol if info else code,
        "decimals": precision(code, table),
        "amount": quantize(converted, code, table),
    }


# =============================================================================
# RATE TABLE PERSISTENCE
# =============================================================================

def load_currency_table() -> CurrencyTable:
    """Read the currencies table into an immutable mapping."""
    return build_table(db.session.query(Currency).order_by(Currency.code).all())


def list_currencies() -> list[Currency]:
    return db.session.query(Currency).order_by(Currency.code).all()


def _validate_currency_payload(entry) -> dict:
    if not isinstance(entry, Mapping):
        raise ValidationError("Each currency must be an object")

    code = entry.get("code")
    if not code or not isinstance(code, str):
        raise ValidationError("Currency code is required")

    rate = parse_decimal(entry.get("rate"), f"rate for {code}")
    if rate <= 0:
        raise ValidationError(f"rate for {code} must be positive")

    decimals = entry.get("decimals", 2)
    if isinstance(decimals, bool) or not isinstance(decimals, int) or not 0 <= decimals <= 4:
        raise ValidationError(f"decimals for {code} must be an integer between 0 and 4")

    return {
        "code": code.strip(),
        "name": entry.get("name") or code,
        "symbol": entry.get("symbol") or code,
        "rate": rate,
        "decimals": decimals,
    }


def replace_rates(currencies) -> list[Currency]:
    """
    Upsert every currency in one transaction.

    Rates are refreshed wholesale: the whole payload is validated before any
    row is written, so the table is never partially migrated.
    """
    if not isinstance(currencies, list) or not currencies:
        raise ValidationError("Request body must be a non-empty list of currencies")

    cleaned = [_validate_currency_payload(entry) for entry in currencies]

    def _op():
        for entry in cleaned:
            currency = db.session.get(Currency, entry["code"])
            if currency is None:
                currency = Currency(code=entry["code"])
                db.session.add(currency)
            currency.name = entry["name"]
            currency.symbol = entry["symbol"]
            currency.rate = entry["rate"]
            currency.decimals = entry["decimals"]

        settings = get_business_settings()
        settings.currency_rates_updated_at = utcnow()

        db.session.commit()
        logger.info("Replaced rates for %d currencies", len(cleaned))
        return list_currencies()

    return run_with_retry(_op)


def refresh_rates_from_source(rate_source) -> tuple[list[Currency], bool]:
    """
    Pull rates from the configured source and apply them wholesale.

    Returns (currencies, refreshed). A disabled source only stamps the
    refresh time, leaving stored rates untouched.
    """
    rates = rate_source.fetch_rates()
    if not rates:
        settings = get_business_settings()
        settings.currency_rates_updated_at = utcnow()
        db.session.commit()
        return list_currencies(), False

    existing = {c.code: c for c in list_currencies()}
    payload = []
    for code, current in existing.items():
        if code not in rates:
            continue
        payload.append({
            "code": code,
            "name": current.name,
            "symbol": current.symbol,
            "rate": rates[code],
            "decimals": current.decimals,
        })

    if not payload:
        logger.warning("Rate source returned no known currency codes")
        return list_currencies(), False

    return replace_rates(payload), True


def seed_currencies() -> int:
    """Insert the default currencies that are missing. Returns number created."""
    created = 0
    for entry in DEFAULT_CURRENCIES:
        if db.session.get(Currency, entry["code"]) is None:
            db.session.add(Currency(
                code=entry["code"],
                name=entry["name"],
                symbol=entry["symbol"],
                rate=Decimal(entry["rate"]),
                decimals=entry["decimals"],
            ))
            created += 1
    db.session.commit()
    return created


def get_business_settings() -> BusinessSettings:
    """Return the single settings row, creating it with defaults if needed."""
    settings = db.session.get(BusinessSettings, 1)
    if settings is None:
        settings = BusinessSettings(
            id=1,
            currency=current_app.config.get("DEFAULT_BASE_CURRENCY", "USD"),
            tax_rate=Decimal("0"),
        )
        db.session.add(settings)
        db.session.flush()
    return settings
