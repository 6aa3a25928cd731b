"""CatNest application factory and bootstrap."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from flask import Flask

from catnest.config import config_by_name
from catnest.extensions import init_extensions

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def create_app(config_name: Optional[str] = None) -> Flask:
    """Create and configure the CatNest Flask application."""
    env_name = (config_name or os.environ.get("APP_ENV") or "development").lower()
    instance_root = PROJECT_ROOT / "instance"
    instance_root.mkdir(parents=True, exist_ok=True)

    app = Flask(__name__, instance_path=str(instance_root), instance_relative_config=True)
    app.config.from_object(config_by_name.get(env_name, config_by_name["development"]))
    _resolve_database_uri(app)

    init_extensions(app)
    _register_blueprints(app)
    _register_error_handlers(app)

    @app.get("/health")
    def health():
        """Liveness probe; also reports open realtime subscriptions."""
        return {"ok": True, "subscribers": app.extensions["change_feed"].subscriber_count}, 200

    from catnest.scripts.watch_stream import register_commands

    register_commands(app)

    return app


def _resolve_database_uri(app: Flask) -> None:
    """Anchor relative sqlite files at the project root; strip sqlite-only connect args elsewhere."""
    uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if uri.startswith("sqlite:///") and not uri.startswith("sqlite:////"):
        db_file = PROJECT_ROOT / uri[len("sqlite:///"):]
        db_file.parent.mkdir(parents=True, exist_ok=True)
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{db_file}"
        return
    if uri.startswith("sqlite:"):
        return

    options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
    connect_args = dict(options.get("connect_args") or {})
    connect_args.pop("check_same_thread", None)
    timeout = connect_args.pop("timeout", None)
    if timeout is not None and uri.startswith("postgresql"):
        connect_args.setdefault("connect_timeout", timeout)
    if connect_args:
        options["connect_args"] = connect_args
    else:
        options.pop("connect_args", None)
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = options


def _register_blueprints(app: Flask) -> None:
    """Lazy import and register all controllers."""
    from catnest.core.auth.api_v1 import api_v1_auth_bp
    from catnest.core.realtime.stream_api import realtime_api_bp
    from catnest.domains.comments.controllers.comment_api import comment_api_bp
    from catnest.domains.notifications.controllers.notification_api import (
        notification_api_bp,
    )
    from catnest.domains.support.controllers.support_api import support_api_bp

    app.register_blueprint(api_v1_auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(support_api_bp, url_prefix="/api/v1/support")
    app.register_blueprint(notification_api_bp, url_prefix="/api/v1/notifications")
    app.register_blueprint(comment_api_bp, url_prefix="/api/v1")
    if app.config.get("REALTIME_ENABLED", True):
        app.register_blueprint(realtime_api_bp, url_prefix="/api/v1/realtime")


def _register_error_handlers(app: Flask) -> None:
    """Basic JSON error responses."""
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return {"ok": False, "error": exc.description}, exc.code

    @app.errorhandler(Exception)
    def _generic_error(exc: Exception):
        app.logger.exception("Unhandled error: %s", exc)
        # In debug/testing, surface the exception message to speed up diagnosis
        if app.debug or app.testing:
            return {"ok": False, "error": str(exc)}, 500
        return {"ok": False, "error": "unexpected_error"}, 500
