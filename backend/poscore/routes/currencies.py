# Overview: Flask API routes for currencies and exchange rates; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..extensions import db
from ..services import audit_service, currency_service
from ..services.rate_source import RateSourceError
from ..time_utils import to_utc_z
from ..validation import ValidationError, money_str, parse_decimal
from .errors import error_response, internal_error


currencies_bp = Blueprint("currencies", __name__, url_prefix="/api/currencies")


def _currencies_body(currencies) -> dict:
    settings = currency_service.get_business_settings()
    updated_at = settings.currency_rates_updated_at
    return {
        "currencies": [c.to_dict() for c in currencies],
        "base_currency": settings.currency,
        "rates_updated_at": to_utc_z(updated_at) if updated_at else None,
    }


@currencies_bp.get("")
@currencies_bp.get("/")
def list_currencies_route():
    body = _currencies_body(currency_service.list_currencies())
    # Settings row may have just been created with defaults
    db.session.commit()
    return jsonify(body), 200


@currencies_bp.put("")
@currencies_bp.put("/")
@require_actor
def replace_currencies_route():
    """
    Replace exchange rates wholesale.

    Request body: a list of currencies, or {"currencies": [...]}
    [
        {"code": "EUR", "name": "Euro", "symbol": "€", "rate": "0.93", "decimals": 2}
    ]
    """
    try:
        data = request.get_json(silent=True)
        if isinstance(data, dict):
            data = data.get("currencies")

        currencies = currency_service.replace_rates(data)

        audit_service.append(
            g.current_user,
            audit_service.ACTION_UPDATE_CURRENCIES,
            f"Updated rates for {len(data)} currencies",
            entity_type="currency",
        )
        return jsonify(_currencies_body(currencies)), 200

    except ValidationError as e:
        return error_response(str(e), "VALIDATION_ERROR", 400)
    except Exception:
        current_app.logger.exception("Failed to update currencies")
        return internal_error()


@currencies_bp.post("/fetch-rates")
@require_actor
def fetch_rates_route():
    """Refresh rates from the configured rate source."""
    rate_source = current_app.extensions["rate_source"]
    try:
        currencies, refreshed = currency_service.refresh_rates_from_source(rate_source)

        if refreshed:
            audit_service.append(
                g.current_user,
                audit_service.ACTION_UPDATE_CURRENCIES,
                "Refreshed exchange rates from rate source",
                entity_type="currency",
            )

        body = _currencies_body(currencies)
        body["refreshed"] = refreshed
        body["source_enabled"] = rate_source.enabled
        return jsonify(body), 200

    except RateSourceError as e:
        current_app.logger.warning("Rate refresh failed: %s", e)
        return error_response(str(e), "RATE_SOURCE_ERROR", 502)
    except ValidationError as e:
        return error_response(str(e), "VALIDATION_ERROR", 400)
    except Exception:
        current_app.logger.exception("Failed to refresh exchange rates")
        return internal_error()


@currencies_bp.get("/convert")
def convert_route():
    """
    Convert an amount between currencies.

    Query: ?amount=10&from=USD&to=EUR
    """
    try:
        amount = parse_decimal(request.args.get("amount"), "amount", allow_negative=True)
        from_code = request.args.get("from")
        to_code = request.args.get("to")
        if not from_code or not to_code:
            return error_response("from and to are required", "VALIDATION_ERROR", 400)

        table = currency_service.load_currency_table()
        converted = currency_service.convert(amount, from_code, to_code, table)
        return jsonify({
            "amount": money_str(amount),
            "from": from_code,
            "to": to_code,
            "converted": money_str(currency_service.quantize(converted, to_code, table)),
            "decimals": currency_service.precision(to_code, table),
        }), 200

    except ValidationError as e:
        return error_response(str(e), "VALIDATION_ERROR", 400)
