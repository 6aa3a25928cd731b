"""Alembic environment: schema for users, support chat, notifications and comments."""

from __future__ import annotations

import logging
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import engine_from_config, pool

sys.path.append(str(Path(__file__).resolve().parents[2]))

from catnest import create_app  # noqa: E402
from catnest.extensions import db  # noqa: E402

# Importing the model modules registers their tables on db.metadata.
from catnest.core.users import models as user_models  # noqa: F401,E402
from catnest.domains.comments import models as comment_models  # noqa: F401,E402
from catnest.domains.notifications import models as notification_models  # noqa: F401,E402
from catnest.domains.support import models as support_models  # noqa: F401,E402

config = context.config
if config.config_file_name and config.get_section("loggers"):
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")


def _database_url() -> str:
    """URL of the app built for ``-x env=...`` (or the ini's ``catnest_env``)."""
    env_name = context.get_x_argument(as_dictionary=True).get("env") or config.get_main_option(
        "catnest_env", "development"
    )
    app = create_app(env_name)
    url = app.config["SQLALCHEMY_DATABASE_URI"]
    logger.info("Migrating %s database", env_name)
    return url


def run_migrations_offline() -> None:
    context.configure(
        url=_database_url(),
        target_metadata=db.metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = dict(config.get_section(config.config_ini_section) or {})
    section["sqlalchemy.url"] = _database_url()
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with engine.connect() as connection:
        # SQLite cannot ALTER most constraints in place.
        context.configure(
            connection=connection,
            target_metadata=db.metadata,
            render_as_batch=connection.dialect.name == "sqlite",
            compare_type=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
