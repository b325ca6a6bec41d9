"""Database configuration and engine factory."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

# METACRUD_LOG_LEVEL values mapped to levels of the sqlalchemy.engine logger
LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": logging.CRITICAL + 1,
}

_TRUE_VALUES = ("1", "true", "yes")


@dataclass
class DatabaseConfig:
    """Database connection configuration.

    Supports sqlite:///, postgresql:// and mysql:// URL schemes.
    """

    url: str
    show_sql: bool = False
    log_level: str = "error"

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> DatabaseConfig:
        """Create config from environment variables.

        Resolution order:
        1. DATABASE_URL env var (standard)
        2. METACRUD_DB_PATH env var (converted to sqlite:/// URL)
        3. Default: sqlite:///{base_path}/data/metacrud.db
        4. Default: sqlite:///metacrud.db
        """
        show_sql = os.environ.get("METACRUD_SHOW_SQL", "").lower() in _TRUE_VALUES
        log_level = os.environ.get("METACRUD_LOG_LEVEL", "error").lower()
        if log_level not in LOG_LEVELS:
            log_level = "error"

        url = os.environ.get("DATABASE_URL")
        if not url:
            db_path = os.environ.get("METACRUD_DB_PATH")
            if db_path:
                url = f"sqlite:///{db_path}"
            elif base_path:
                url = f"sqlite:///{base_path / 'data' / 'metacrud.db'}"
            else:
                url = "sqlite:///metacrud.db"

        return cls(url=url, show_sql=show_sql, log_level=log_level)

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_postgresql(self) -> bool:
        return self.url.startswith("postgresql")

    @property
    def is_mysql(self) -> bool:
        return self.url.startswith("mysql")

    @property
    def sqlalchemy_url(self) -> str:
        """URL suitable for SQLAlchemy engine creation.

        Ensures postgresql:// URLs use the psycopg (v3) driver since
        the project depends on psycopg[binary], not psycopg2.
        """
        if self.url.startswith("postgresql://"):
            return self.url.replace("postgresql://", "postgresql+psycopg://", 1)
        return self.url


def create_db_engine(config: DatabaseConfig) -> Engine:
    """Create a SQLAlchemy engine for the configured database."""
    logging.getLogger("sqlalchemy.engine").setLevel(LOG_LEVELS.get(config.log_level, logging.ERROR))
    return create_engine(config.sqlalchemy_url, echo=config.show_sql)
