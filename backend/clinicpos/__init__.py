# backend/clinicpos/__init__.py
from __future__ import annotations

from flask import Flask

from .config import Config
from .extensions import db, migrate



def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.catalog import catalog_bp
    from .routes.discounts import discounts_bp
    from .routes.quotes import quotes_bp
    from .routes.orders import orders_bp
    from .routes.sales import sales_bp
    from .routes.payments import payments_bp
    from .routes.inventory import inventory_bp
    from .routes.laboratory import laboratory_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(discounts_bp)
    app.register_blueprint(quotes_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(laboratory_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
