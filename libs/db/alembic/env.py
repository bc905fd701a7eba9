# ruff: noqa: I001
"""
Alembic environment for the `db` library.

Migrations here only manage the tables owned by the intake core (`nl_*`).
The host application keeps its own tables in the same database; autogenerate
ignores them so a revision never proposes dropping them.

`DATABASE_URL` (a workspace `.env` is honored) wins over `sqlalchemy.url` in
`alembic.ini`. SQLite URLs run in batch mode so ALTERs work on dev databases.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from dotenv import find_dotenv, load_dotenv
from sqlalchemy import engine_from_config, pool

import db as _db_pkg

OWNED_TABLE_PREFIX = "nl_"

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _resolve_url() -> str:
    # Finds /repo/.env from the repo root or from inside libs/db.
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set. Provide it via environment or set "
            "'sqlalchemy.url' in alembic.ini."
        )
    return url


def _include_name(name, type_, parent_names) -> bool:
    if type_ == "table":
        return bool(name) and name.startswith(OWNED_TABLE_PREFIX)
    return True


db_url = _resolve_url()
config.set_main_option("sqlalchemy.url", db_url)

target_metadata = _db_pkg.metadata


def _configure_kwargs() -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "include_name": _include_name,
        "render_as_batch": db_url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Emit SQL to stdout without connecting."""
    context.configure(url=db_url, literal_binds=True, **_configure_kwargs())

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live connection."""
    section = dict(config.get_section(config.config_ini_section) or {})
    section["sqlalchemy.url"] = db_url
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs())
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
