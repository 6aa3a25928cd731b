import sys
from pathlib import Path
from urllib.parse import urlsplit

import logging
import os

import pytest
import requests
import sqlalchemy as sa
from requests.structures import CaseInsensitiveDict
from sqlalchemy.orm import scoped_session, sessionmaker
from alembic import command
from alembic.config import Config as AlembicConfig
from flask_jwt_extended import create_access_token

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from catnest import create_app
from catnest.extensions import db
from catnest.core.users.models import ROLE_ADMIN, User
from catnest.domains.comments import models as comment_models
from catnest.domains.notifications import models as notification_models
from catnest.domains.support import models as support_models


# ==================== Pytest Markers ====================
def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (database, API)")
    config.addinivalue_line("markers", "slow: Slow running tests")


def _alembic_config() -> AlembicConfig:
    cfg = AlembicConfig(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "catnest" / "migrations"))
    cfg.set_main_option("catnest_env", "testing")
    db_url = os.environ.get("TEST_DATABASE_URL") or "sqlite:///instance/test.db"
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


@pytest.fixture(scope="session", autouse=True)
def migrated_db():
    """Apply migrations once per session to mirror production schema."""
    cfg = _alembic_config()
    command.upgrade(cfg, "head")
    # env.py's fileConfig() disables loggers imported during collection; re-enable ours for caplog.
    for name, lg in logging.root.manager.loggerDict.items():
        if name.startswith("catnest") and isinstance(lg, logging.Logger):
            lg.disabled = False
    yield
    try:
        command.downgrade(cfg, "base")
    except Exception:
        # Downgrade is optional for local/CI runs; ignore failures to avoid hiding test results.
        pass


@pytest.fixture()
def app(migrated_db):
    """
    Create a per-test app with an isolated database transaction.

    Each test runs in its own transaction + savepoint so committed rows roll
    back afterwards (device ids stay unique across tests).
    """
    app = create_app("testing")
    ctx = app.app_context()
    ctx.push()

    connection = db.engine.connect()
    if connection.dialect.name == "sqlite":
        # pysqlite's legacy transaction handling lets RELEASE SAVEPOINT commit for real;
        # take over BEGIN so the outer transaction (and its rollback) actually holds.
        connection.connection.driver_connection.isolation_level = None
        sa.event.listen(connection, "begin", lambda conn: conn.exec_driver_sql("BEGIN"))
    transaction = connection.begin()

    session_factory = scoped_session(sessionmaker(bind=connection, expire_on_commit=False))
    db.session = session_factory
    session = session_factory()
    session.begin_nested()

    @sa.event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess, trans):
        if trans.nested and not trans._parent.nested:
            sess.begin_nested()

    try:
        yield app
    finally:
        sa.event.remove(session, "after_transaction_end", restart_savepoint)
        session_factory.remove()
        transaction.rollback()
        connection.close()
        ctx.pop()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    """Factory creating committed users: ``make_user("device-0001", role="admin")``."""

    def _make(device_id: str, nickname: str | None = None, role: str = "user") -> User:
        user = User(device_id=device_id, nickname=nickname or device_id[:16], role=role)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture()
def user(make_user):
    return make_user("device-user-0001", nickname="Mia")


@pytest.fixture()
def admin(make_user):
    return make_user("device-admin-0001", nickname="Support", role=ROLE_ADMIN)


@pytest.fixture()
def auth_headers(app):
    """``auth_headers(user)`` -> Authorization header carrying the user's roles."""

    def _headers(user: User) -> dict:
        with app.app_context():
            token = create_access_token(identity=str(user.id), additional_claims={"roles": user.role_codes})
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ==================== requests -> Flask test client ====================
class FlaskRequestsBridge:
    """Stands in for ``requests.Session`` and serves calls from the Flask test client."""

    def __init__(self, test_client):
        self.test_client = test_client
        self.calls: list[tuple[str, str]] = []
        self.fail_next: Exception | None = None

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        path = urlsplit(url).path
        self.calls.append((method, path))
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc
        kwargs = {"method": method, "query_string": params, "headers": headers}
        if json is not None:
            kwargs["json"] = json
        flask_response = self.test_client.open(path, **kwargs)

        response = requests.Response()
        response.status_code = flask_response.status_code
        response._content = flask_response.get_data()
        response.headers = CaseInsensitiveDict(dict(flask_response.headers))
        response.url = url
        response.encoding = "utf-8"
        return response


@pytest.fixture()
def bridge(client):
    return FlaskRequestsBridge(client)


# ==================== Sync doubles ====================
class FakeFeed:
    """Change feed double; tests push inserts and statuses by hand."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.subscriptions = []
        self.released = []
        self.on_insert = None
        self.on_status = None

    def subscribe(self, table, column, value, on_insert, on_status):
        if self.fail:
            raise ConnectionError("no route")
        self.subscriptions.append((table, column, value))
        self.on_insert = on_insert
        self.on_status = on_status
        return len(self.subscriptions)

    def unsubscribe(self, handle):
        self.released.append(handle)


@pytest.fixture()
def fake_feed():
    return FakeFeed()
