# backend/poscore/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)

    # Overrides must land before extensions bind the engine
    if test_config:
        app.config.update(test_config)

    logging.getLogger("poscore").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Exchange-rate collaborator; disabled unless RATES_SOURCE_URL is set
    from .services.rate_source import build_rate_source
    app.extensions["rate_source"] = build_rate_source(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.orders import orders_bp
    from .routes.purchase_orders import purchase_orders_bp
    from .routes.sessions import sessions_bp
    from .routes.currencies import currencies_bp
    from .routes.audit import audit_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(currencies_bp)
    app.register_blueprint(audit_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
