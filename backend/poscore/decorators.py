# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


def require_actor(f):
    """
    Resolve the acting user for a mutating route.

    Identity is issued by an upstream collaborator; this core only trusts
    the X-User-Id header and checks it names an active user.

    Sets g.current_user to the User. Returns 401 if the header is missing,
    malformed, or names an unknown or inactive user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_user_id = request.headers.get("X-User-Id")
        if not raw_user_id:
            return jsonify({"error": "X-User-Id header required", "code": "UNAUTHENTICATED"}), 401

        try:
            user_id = int(raw_user_id)
        except ValueError:
            return jsonify({"error": "X-User-Id must be an integer", "code": "UNAUTHENTICATED"}), 401

        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            return jsonify({"error": "Unknown or inactive user", "code": "UNAUTHENTICATED"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function
