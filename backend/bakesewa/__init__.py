# backend/bakesewa/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # Service loggers live under the package logger
    logging.getLogger(__name__).setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401
    from .models import register_audit_immutability
    register_audit_immutability()

    from .services.security_monitor import SecurityMonitor
    from .services.unit_service import UnitCatalog
    app.extensions["unit_catalog"] = UnitCatalog(ttl_seconds=app.config["UNIT_CACHE_TTL_SECONDS"])
    app.extensions["security_monitor"] = SecurityMonitor()

    # Register blueprints
    from .routes.system import system_bp
    from .routes.units import units_bp
    from .routes.inventory import inventory_bp
    from .routes.products import products_bp
    from .routes.audit import audit_bp, auth_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(units_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(auth_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
