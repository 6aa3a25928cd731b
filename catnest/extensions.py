"""Flask extensions shared across CatNest blueprints and services."""

from pathlib import Path

from flask import jsonify
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

from catnest.core.realtime.change_feed import ChangeFeedBus

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


# Rows stay readable after commit; services echo them straight into the feed.
db = SQLAlchemy(session_options={"expire_on_commit": False})
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address, enabled=True, default_limits=["600 per hour"])


@jwt.unauthorized_loader
def _missing_token(reason: str):
    return jsonify({"ok": False, "error": "unauthorized"}), 401


@jwt.invalid_token_loader
def _invalid_token(reason: str):
    return jsonify({"ok": False, "error": "invalid_token"}), 401


@jwt.expired_token_loader
def _expired_token(jwt_header, jwt_payload):
    return jsonify({"ok": False, "error": "token_expired"}), 401


def init_extensions(app) -> None:
    """Bind extensions to ``app`` and give it its own change feed."""
    db.init_app(app)
    migrate.init_app(app, db, directory=str(MIGRATIONS_DIR))
    jwt.init_app(app)

    limiter.enabled = app.config.get("RATELIMIT_ENABLED", True)
    limiter.default_limits = [app.config.get("RATELIMIT_DEFAULT", "600 per hour")]
    limiter.storage_uri = app.config.get("RATELIMIT_STORAGE_URI", "memory://")
    limiter.init_app(app)

    app.extensions["change_feed"] = ChangeFeedBus()
