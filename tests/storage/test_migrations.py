"""Tests for the Alembic migration environment."""

from __future__ import annotations

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from polymarket_whale_tracker.config import clear_settings_cache

ALEMBIC_DIR = Path(__file__).resolve().parents[2] / "alembic"


@pytest.fixture
def alembic_config(monkeypatch, tmp_path):
    """Alembic config pointed at a scratch SQLite file through DATABASE_URL."""
    db_path = tmp_path / "migrated.db"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{db_path}")
    clear_settings_cache()

    cfg = Config()
    cfg.set_main_option("script_location", str(ALEMBIC_DIR))
    # Must be replaced by DATABASE_URL; nothing listens here.
    cfg.set_main_option("sqlalchemy.url", "postgresql+asyncpg://unused:5432/none")
    yield cfg, db_path
    clear_settings_cache()


def test_upgrade_uses_database_url_from_settings(alembic_config) -> None:
    cfg, db_path = alembic_config

    command.upgrade(cfg, "head")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert {"whale_trades", "whale_alerts", "alembic_version"} <= tables


def test_downgrade_drops_tables(alembic_config) -> None:
    cfg, db_path = alembic_config

    command.upgrade(cfg, "head")
    command.downgrade(cfg, "base")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert "whale_trades" not in tables
    assert "whale_alerts" not in tables


def test_offline_mode_is_rejected(alembic_config) -> None:
    cfg, _ = alembic_config

    with pytest.raises(RuntimeError, match="Offline"):
        command.upgrade(cfg, "head", sql=True)
