# ruff: noqa: I001
"""Alembic environment for the ledger schema (`db.metadata`).

`DATABASE_URL` (a `.env` found from the working directory is loaded first)
takes precedence over `sqlalchemy.url` in `alembic.ini`. Offline mode emits
SQL; online mode runs against a NullPool connection.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from dotenv import find_dotenv, load_dotenv
from sqlalchemy import engine_from_config, pool

import db

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _database_url() -> str:
    found = find_dotenv(usecwd=True)
    if found:
        load_dotenv(dotenv_path=found, override=False)
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("DATABASE_URL is not set (nor sqlalchemy.url in alembic.ini)")
    return url


def _configure(**kwargs) -> None:
    context.configure(target_metadata=db.metadata, compare_type=True, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


def main() -> None:
    url = _database_url()
    if context.is_offline_mode():
        _configure(url=url, literal_binds=True)
        return
    section = dict(config.get_section(config.config_ini_section) or {})
    section["sqlalchemy.url"] = url
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with engine.connect() as connection:
        _configure(connection=connection)


main()
