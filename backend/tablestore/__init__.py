# backend/tablestore/__init__.py
from flask import Flask, jsonify, request

from .config import Config
from .errors import AppError
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    with app.app_context():
        if db.engine.dialect.name == "sqlite":
            _enable_sqlite_savepoints(db.engine)

    # Shared handles; services are built per request in providers.py
    from .column_types import build_registry
    from .services.cache_service import TTLCache

    app.extensions["column_types"] = build_registry(app.config["COLUMN_TYPE_PLUGINS"])
    app.extensions["tablestore_cache"] = TTLCache(default_ttl=app.config["CACHE_DEFAULT_TTL"])

    # Register blueprints
    from .routes.system import system_bp
    from .routes.tables import tables_bp
    from .routes.public import public_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp
    from .routes.rentals import rentals_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(tables_bp)
    app.register_blueprint(public_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(rentals_bp)

    @app.errorhandler(AppError)
    def handle_app_error(e: AppError):
        db.session.rollback()
        if e.status_code >= 500:
            app.logger.error("Request failed: %s", e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = set(app.config.get("CORS_ORIGINS") or ())
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = (
                "Content-Type, X-User-Id, X-User-Email, X-User-Admin, X-Table-Access"
            )
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def _enable_sqlite_savepoints(engine) -> None:
    """
    pysqlite defers BEGIN until the first DML statement, so a SAVEPOINT can end
    up as the outermost transaction and its RELEASE commits. Emit BEGIN ourselves.
    """
    from sqlalchemy import event

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")
