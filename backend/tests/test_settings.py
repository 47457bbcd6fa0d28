"""
Test configuration, engine construction and logging setup.
"""
import logging
import os

# Set environment variables before importing solarflow modules
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from solarflow.config import Settings
from solarflow.database import _connect_args, build_engine
from solarflow.logging_config import configure_logging


def test_defaults(monkeypatch):
    for name in ("MATERIAL_LEAD_TIME_HOURS", "STATEMENT_TIMEOUT_MS", "LOG_LEVEL", "SQL_ECHO"):
        monkeypatch.delenv(name, raising=False)

    config = Settings(_env_file=None)

    assert config.material_lead_time_hours == 48
    assert config.statement_timeout_ms == 0
    assert config.log_level == "INFO"
    assert config.sql_echo is False


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://solar:pw@db:5432/solarflow")
    monkeypatch.setenv("MATERIAL_LEAD_TIME_HOURS", "72")
    monkeypatch.setenv("STATEMENT_TIMEOUT_MS", "5000")
    monkeypatch.setenv("SQL_ECHO", "true")

    config = Settings(_env_file=None)

    assert config.database_url == "postgresql://solar:pw@db:5432/solarflow"
    assert config.material_lead_time_hours == 72
    assert config.statement_timeout_ms == 5000
    assert config.sql_echo is True


def test_connect_args_per_backend():
    assert _connect_args("sqlite:///:memory:", 5000) == {"check_same_thread": False}
    assert _connect_args("postgresql://h/db", 5000) == {"options": "-c statement_timeout=5000"}
    assert _connect_args("postgresql://h/db", 0) == {}


def test_build_engine_sqlite():
    engine = build_engine("sqlite:///:memory:", echo=False)

    assert engine.dialect.name == "sqlite"
    engine.dispose()


def test_configure_logging_keeps_sql_quiet():
    configure_logging("DEBUG")

    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
