"""
TeamFlow
Flask Application Factory.

Usage:
    from teamflow import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from teamflow.auth import USER_HEADER, init_auth
from teamflow.config import config
from teamflow.middleware.logging_config import configure_logging
from teamflow.middleware.timing import init_request_timing
from teamflow.models import db
from teamflow.services.notification import NOTIFIER_KEY, LoggingNotifier

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _rate_limit_key() -> str:
    """Bucket by caller identity, falling back to client address."""
    return request.headers.get(USER_HEADER) or get_remote_address()


migrate = Migrate()
limiter = Limiter(
    key_func=_rate_limit_key,
    default_limits=[],                     # no global limit; routes opt in
)


def create_app(config_name=None, notifier=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        notifier:    Optional notification sink (see services.notification).
                     Defaults to a LoggingNotifier.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

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

    app.extensions[NOTIFIER_KEY] = notifier or LoggingNotifier()

    # ── Request timing, then identity ────────────────────────────────────
    init_request_timing(app)
    init_auth(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from teamflow.models import team as _team_models                    # noqa: F401
    from teamflow.models import collaboration as _collaboration_models  # noqa: F401
    from teamflow.models import activity as _activity_models            # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if app.config.get("AUTO_CREATE_TABLES", True):
        with app.app_context():
            db.create_all()
            app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from teamflow.blueprints import register_error_handlers
    from teamflow.blueprints.activity_bp import activity_bp
    from teamflow.blueprints.approval_bp import approval_bp
    from teamflow.blueprints.assignment_bp import assignment_bp
    from teamflow.blueprints.comment_bp import comment_bp
    from teamflow.blueprints.health_bp import health_bp
    from teamflow.blueprints.team_bp import team_bp

    app.register_blueprint(team_bp)
    app.register_blueprint(assignment_bp)
    app.register_blueprint(approval_bp)
    app.register_blueprint(activity_bp)
    app.register_blueprint(comment_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    register_error_handlers(app)

    logger.info("TeamFlow app created (config=%s)", config_name)
    return app
