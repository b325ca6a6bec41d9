"""Tests for database configuration."""

import logging
from pathlib import Path

import pytest

from metacrud.config import DatabaseConfig, create_db_engine


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove configuration variables from the environment."""
    for name in ("DATABASE_URL", "METACRUD_DB_PATH", "METACRUD_SHOW_SQL", "METACRUD_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


class TestFromEnv:
    """Tests for environment resolution."""

    def test_database_url_wins(self, monkeypatch):
        """DATABASE_URL takes precedence."""
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@localhost/app")
        monkeypatch.setenv("METACRUD_DB_PATH", "/tmp/ignored.db")
        assert DatabaseConfig.from_env().url == "postgresql://u:p@localhost/app"

    def test_db_path(self, monkeypatch):
        """METACRUD_DB_PATH becomes a SQLite URL."""
        monkeypatch.setenv("METACRUD_DB_PATH", "/tmp/app.db")
        assert DatabaseConfig.from_env().url == "sqlite:////tmp/app.db"

    def test_base_path(self):
        """A base path puts the database under data/."""
        config = DatabaseConfig.from_env(Path("/srv/app"))
        assert config.url == "sqlite:////srv/app/data/metacrud.db"

    def test_default(self):
        """Defaults apply with an empty environment."""
        config = DatabaseConfig.from_env()
        assert config.url == "sqlite:///metacrud.db"
        assert config.show_sql is False
        assert config.log_level == "error"

    def test_show_sql_and_log_level(self, monkeypatch):
        """SQL echo and log level come from the environment."""
        monkeypatch.setenv("METACRUD_SHOW_SQL", "true")
        monkeypatch.setenv("METACRUD_LOG_LEVEL", "DEBUG")
        config = DatabaseConfig.from_env()
        assert config.show_sql is True
        assert config.log_level == "debug"

    def test_unknown_log_level(self, monkeypatch):
        """Unknown levels fall back to error."""
        monkeypatch.setenv("METACRUD_LOG_LEVEL", "verbose")
        assert DatabaseConfig.from_env().log_level == "error"


class TestUrls:
    """Tests for URL helpers."""

    def test_dialect_flags(self):
        """Dialect flags follow the URL scheme."""
        assert DatabaseConfig("sqlite:///x.db").is_sqlite
        assert DatabaseConfig("postgresql://localhost/x").is_postgresql
        assert DatabaseConfig("mysql+pymysql://localhost/x").is_mysql

    def test_psycopg_driver_forced(self):
        """Plain postgresql URLs use psycopg."""
        config = DatabaseConfig("postgresql://localhost/x")
        assert config.sqlalchemy_url == "postgresql+psycopg://localhost/x"

    def test_explicit_driver_kept(self):
        """Explicit drivers are left alone."""
        config = DatabaseConfig("postgresql+psycopg://localhost/x")
        assert config.sqlalchemy_url == "postgresql+psycopg://localhost/x"


class TestCreateDbEngine:
    """Tests for engine construction."""

    def test_sqlite_engine(self):
        """The SQLAlchemy logger level follows the config."""
        engine = create_db_engine(DatabaseConfig("sqlite://", log_level="warning"))
        assert engine.dialect.name == "sqlite"
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        engine.dispose()

    def test_echo(self):
        """show_sql turns on statement echo."""
        engine = create_db_engine(DatabaseConfig("sqlite://", show_sql=True))
        assert engine.echo is True
        engine.dispose()
