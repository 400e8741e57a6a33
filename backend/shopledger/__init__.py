# backend/shopledger/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .errors import LedgerError
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.admin import admin_bp
    from .routes.inventory import inventory_bp
    from .routes.billing import billing_bp
    from .routes.manager import manager_bp
    from .routes.public import public_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(manager_bp)
    app.register_blueprint(public_bp)

    @app.errorhandler(LedgerError)
    def handle_ledger_error(exc: LedgerError):
        return exc.to_dict(), exc.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        # Flask's own HTTP errors (404, 405, ...) keep their status
        if hasattr(exc, "code") and hasattr(exc, "get_response"):
            return {"error": exc.description}, exc.code
        db.session.rollback()
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return {"error": "Internal server error"}, 500

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
