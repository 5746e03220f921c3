# backend/tubex/__init__.py
import logging

from flask import Flask, jsonify

from .config import Config
from .errors import RateLimited, TubexError
from .extensions import db, migrate


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(TubexError)
    def handle_tubex_error(exc: TubexError):
        db.session.rollback()
        response = jsonify(exc.to_dict())
        response.status_code = exc.status_code
        if isinstance(exc, RateLimited) and "retry_after" in exc.details:
            response.headers["Retry-After"] = str(exc.details["retry_after"])
        return response

    @app.errorhandler(500)
    def handle_internal_error(exc):
        db.session.rollback()
        app.logger.exception("Unhandled error")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # app.logger is the "tubex" logger, parent of every module logger in the package
    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.store import Repositories
    from .services.tenant_service import TenantGuard
    app.extensions["tubex.guard"] = TenantGuard(Repositories.for_session())

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.inventory import inventory_bp
    from .routes.transfers import transfers_bp
    from .routes.warehouses import warehouses_bp
    from .routes.products import products_bp
    from .routes.orders import orders_bp
    from .routes.integrity import integrity_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(warehouses_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(integrity_bp)

    _register_error_handlers(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
