"""
Driver Training Admin Console
Flask Application Factory.

Usage:
    from coursedesk import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, request, send_from_directory
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import SQLAlchemyError

from coursedesk.config import config
from coursedesk.middleware.jwt_auth import init_jwt_middleware
from coursedesk.middleware.logging_config import configure_logging
from coursedesk.middleware.rate_limiter import init_rate_limits
from coursedesk.middleware.security_headers import init_security_headers
from coursedesk.middleware.timing import init_request_timing
from coursedesk.models import db

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)

# Mutating endpoints that accept non-JSON bodies (CSV / multipart uploads)
_RAW_BODY_SUFFIXES = ("/students/import", "/closure/wizard/file")


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Middleware ───────────────────────────────────────────────────────
    init_security_headers(app)
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            abort(413, description="Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            if request.path.endswith(_RAW_BODY_SUFFIXES):
                return None
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")
        return None

    # ── Models (registered on db.metadata) ───────────────────────────────
    from coursedesk.models import account as _account_models    # noqa: F401
    from coursedesk.models import client as _client_models      # noqa: F401
    from coursedesk.models import closure as _closure_models    # noqa: F401
    from coursedesk.models import course as _course_models      # noqa: F401
    from coursedesk.models import student as _student_models    # noqa: F401
    from coursedesk.models import vehicle as _vehicle_models    # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except SQLAlchemyError as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from coursedesk.blueprints.clients_bp import clients_bp
    from coursedesk.blueprints.closure_bp import closure_bp
    from coursedesk.blueprints.courses_bp import courses_bp
    from coursedesk.blueprints.enrollment_bp import enrollment_bp
    from coursedesk.blueprints.health_bp import health_bp
    from coursedesk.blueprints.students_bp import students_bp
    from coursedesk.blueprints.vehicles_bp import vehicles_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(clients_bp)
    app.register_blueprint(courses_bp)
    app.register_blueprint(enrollment_bp)
    app.register_blueprint(students_bp)
    app.register_blueprint(vehicles_bp)
    app.register_blueprint(closure_bp)

    # ── Uploaded closure archives (local blob store) ─────────────────────
    @app.route(f"{app.config['UPLOAD_BASE_URL'].rstrip('/')}/<path:filename>")
    def uploaded_file(filename):
        return send_from_directory(app.config["UPLOAD_FOLDER"], filename, as_attachment=True)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith("/api/"):
            return {"error": "Not found", "path": request.path}, 404
        return {"error": "Not found"}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(415)
    def unsupported_media(e):
        return {"error": e.description}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
