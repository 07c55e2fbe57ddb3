"""
backend/migrations/env.py — Alembic environment.

The database URL comes from DATABASE_URL (TEST_DATABASE_URL when TEST_RUN
is set), read from the environment or backend/.env.
"""

from __future__ import annotations

import os
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

_BACKEND_DIR = Path(__file__).resolve().parent.parent
load_dotenv(_BACKEND_DIR / ".env")

# The repository root holds the `backend` package.
sys.path.insert(0, str(_BACKEND_DIR.parent))

from backend.app.extensions import db  # noqa: E402
from backend.app.models import bill, item, participant, refresh_token, user  # noqa: E402,F401

target_metadata = db.metadata

_url_var = "TEST_DATABASE_URL" if os.getenv("TEST_RUN") else "DATABASE_URL"
db_url = os.environ[_url_var]

config = context.config
config.set_main_option("sqlalchemy.url", db_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def run_migrations_offline() -> None:
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
