"""
Unit tests for configuration helpers and engine initialisation.
"""

import pytest
from sqlalchemy import text

from masterdash.config import configure_logging, get_env
from masterdash.database import create_pooled_engine, init_engine


# ── Tests: get_env ───────────────────────────────────────────────────

def test_get_env_ok(monkeypatch):
    monkeypatch.setenv("X", "123")
    assert get_env("X") == "123"


def test_get_env_missing_exits(monkeypatch, capsys):
    monkeypatch.delenv("MISSING_ENV", raising=False)
    with pytest.raises(SystemExit) as e:
        get_env("MISSING_ENV")
    assert e.value.code == 1
    assert "MISSING_ENV" in capsys.readouterr().err


# ── Tests: engines ───────────────────────────────────────────────────

def test_create_pooled_engine_bounds_pool(tmp_path):
    engine = create_pooled_engine(f"sqlite:///{tmp_path / 'dw.db'}", pool_size=3, pool_timeout=7)
    try:
        assert engine.pool.size() == 3
        assert engine.pool.timeout() == 7
        with engine.connect() as conn:
            assert conn.execute(text("SELECT 1")).scalar() == 1
        assert engine.pool.checkedout() == 0
    finally:
        engine.dispose()


def test_create_pooled_engine_in_memory():
    engine = create_pooled_engine("sqlite://")
    with engine.connect() as conn:
        assert conn.execute(text("SELECT 2")).scalar() == 2
    engine.dispose()


def test_init_engine_ok(monkeypatch, tmp_path):
    monkeypatch.setenv("DW_DB_URI", f"sqlite:///{tmp_path / 'dw.db'}")
    engine = init_engine("DW_DB_URI")
    assert engine.dialect.name == "sqlite"
    engine.dispose()


def test_init_engine_unreachable_exits(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("DW_DB_URI", f"sqlite:///{tmp_path / 'missing' / 'dw.db'}")
    with pytest.raises(SystemExit) as e:
        init_engine("DW_DB_URI")
    assert e.value.code == 1
    assert "could not connect to DW_DB_URI" in capsys.readouterr().err


# ── Tests: logging ───────────────────────────────────────────────────

def test_configure_logging_accepts_default_and_explicit_level():
    configure_logging()
    configure_logging("debug")
