# Overview: JSON error bodies shared by the API blueprints.

from flask import jsonify

from ..validation import money_str


def error_response(message: str, code: str, status: int, **details):
    """
    Build an error response: {"error": message, "code": CODE, ...details}.

    Decimal details are serialized as strings like every other amount.
    """
    body = {"error": message, "code": code}
    for key, value in details.items():
        body[key] = money_str(value) if hasattr(value, "as_tuple") else value
    return jsonify(body), status


def internal_error():
    return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500
