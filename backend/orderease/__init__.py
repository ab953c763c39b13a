# backend/orderease/__init__.py
import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .config import Config, DATABASE_LOG_LEVELS, validate_config
from .errors import OrderEaseError
from .extensions import db, migrate
from .services import snowflake_service


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
    if app.config.get("TESTING") and "SCHEDULER_ENABLED" not in (config_overrides or {}):
        app.config["SCHEDULER_ENABLED"] = False
    validate_config(app.config)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    logging.getLogger("sqlalchemy.engine").setLevel(
        DATABASE_LOG_LEVELS[app.config["DATABASE_LOG_LEVEL"]]
    )

    snowflake_service.init_generator(app.config["SNOWFLAKE_NODE_ID"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints under the configured base path
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.shops import shops_bp
    from .routes.temp_tokens import temp_tokens_bp
    from .routes.products import products_bp
    from .routes.tags import tags_bp
    from .routes.orders import orders_bp
    from .routes.users import users_bp
    from .routes.front import front_bp

    base_path = app.config["SERVER_BASE_PATH"]
    for bp in (
        system_bp,
        auth_bp,
        shops_bp,
        temp_tokens_bp,
        products_bp,
        tags_bp,
        orders_bp,
        users_bp,
        front_bp,
    ):
        app.register_blueprint(bp, url_prefix=f"{base_path}{bp.url_prefix or ''}")

    register_error_handlers(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config["SCHEDULER_ENABLED"]:
        from .services.tasks import start_background_jobs
        start_background_jobs(app)

    return app


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(OrderEaseError)
    def handle_domain_error(exc: OrderEaseError):
        if exc.status_code >= 500:
            app.logger.error("Request failed: %s", exc, exc_info=exc.__cause__ or exc)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"error": exc.description or exc.name}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        db.session.rollback()
        app.logger.exception("Unhandled error")
        return jsonify({"error": "Internal server error"}), 500
