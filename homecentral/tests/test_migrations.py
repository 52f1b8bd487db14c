from pathlib import Path

from sqlalchemy import create_engine, inspect

from homecentral.config import get_settings
from homecentral.db import Base, dispose_engine
from homecentral.db import models  # noqa: F401
from homecentral.scripts import run_migrations


def _use_db(tmp_path: Path, monkeypatch) -> str:
    db_url = f"sqlite:///{(tmp_path / 'migrations.db').as_posix()}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("DATABASE_URL_POSTGRES", "")
    get_settings.cache_clear()
    dispose_engine()
    return db_url


def test_upgrade_creates_every_model_table(tmp_path, monkeypatch):
    db_url = _use_db(tmp_path, monkeypatch)

    run_migrations.upgrade()

    engine = create_engine(db_url)
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names())
        assert set(Base.metadata.tables) <= tables
        assert "alembic_version" in tables

        for name in ("tool_instances", "project_invites", "tool_share_tokens", "content"):
            migrated = {col["name"] for col in inspector.get_columns(name)}
            declared = {col.name for col in Base.metadata.tables[name].columns}
            assert migrated == declared, name
    finally:
        engine.dispose()


def test_downgrade_to_base_drops_tables(tmp_path, monkeypatch):
    db_url = _use_db(tmp_path, monkeypatch)

    run_migrations.upgrade()
    run_migrations.downgrade("base")

    engine = create_engine(db_url)
    try:
        assert set(inspect(engine).get_table_names()) <= {"alembic_version"}
    finally:
        engine.dispose()
