from pathlib import Path

from alembic import command
from alembic.config import Config
from db import metadata
from db.client import get_engine
from sqlalchemy import inspect

_ALEMBIC_DIR = Path(__file__).resolve().parents[1] / "libs" / "db" / "alembic"


def _config() -> Config:
    # No ini file: keeps alembic from reconfiguring logging mid-suite
    cfg = Config()
    cfg.set_main_option("script_location", str(_ALEMBIC_DIR))
    return cfg


def test_migrations_create_the_orm_schema_and_downgrade_cleanly(tmp_path, monkeypatch):
    url = f"sqlite+pysqlite:///{tmp_path / 'migrated.sqlite3'}"
    monkeypatch.setenv("DATABASE_URL", url)
    cfg = _config()

    command.upgrade(cfg, "head")
    inspector = inspect(get_engine(database_url=url))
    for table in metadata.sorted_tables:
        got = {c["name"] for c in inspector.get_columns(table.name)}
        assert got == {c.name for c in table.columns}, table.name

    command.downgrade(cfg, "base")
    remaining = set(inspect(get_engine(database_url=url)).get_table_names())
    assert remaining.isdisjoint({t.name for t in metadata.sorted_tables})
