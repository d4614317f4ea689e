"""Pytest configuration and shared fixtures for db-connect-session tests"""

import json
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest

from db_connect_session.core import DatabaseContext, Session
from db_connect_session.models.config import ContextConfig


def sqlite_entry(path: Path) -> dict[str, Any]:
    """Credential entry for a SQLite file (host/user/pass are required but unused)."""
    return {"host": "localhost", "user": "", "pass": "", "db": str(path)}


# ==================== Configuration Fixtures ====================


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path of the main test database file"""
    return tmp_path / "main.db"


@pytest.fixture
def credentials_document(tmp_path: Path, db_path: Path) -> dict[str, Any]:
    """Credentials document with SQLite connections and one MySQL entry"""
    return {
        "sqlite": {
            "default": sqlite_entry(db_path),
            "main": sqlite_entry(db_path),
            "other": sqlite_entry(tmp_path / "other.db"),
        },
        "sql": {
            "default": {
                "host": "db.internal",
                "user": "app",
                "pass": "secret",
                "db": "shop",
            },
        },
    }


@pytest.fixture
def credentials_file(tmp_path: Path, credentials_document: dict[str, Any]) -> Path:
    """Credentials document written to disk"""
    path = tmp_path / "db_credentials.json"
    path.write_text(json.dumps(credentials_document))
    return path


@pytest.fixture
def sqlite_config(credentials_file: Path) -> ContextConfig:
    """Context configuration defaulting to the SQLite credentials"""
    return ContextConfig(
        credentials_path=str(credentials_file),
        default_backend_kind="sqlite",
    )


# ==================== Context & Session Fixtures ====================


@pytest.fixture
def context(sqlite_config: ContextConfig) -> Iterator[DatabaseContext]:
    """Database context with credentials loaded and proper cleanup"""
    ctx = DatabaseContext.from_config(sqlite_config)
    try:
        yield ctx
    finally:
        ctx.close()


@pytest.fixture
def session(context: DatabaseContext) -> Session:
    """Session on the main connection with an ``items`` table"""
    db = context.session("main")
    db.query(
        "CREATE TABLE items ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "x INTEGER NOT NULL, "
        "label TEXT)"
    )
    return db


@pytest.fixture
def count_items() -> Callable[[Session], int]:
    """Counts the rows in the items table through a session"""

    def _count(db: Session) -> int:
        return db.execute("SELECT COUNT(*) AS n FROM items", single_row=True).row["n"]

    return _count


# ==================== Pytest Configuration ====================


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "sqlite: tests against a SQLite file database")
    config.addinivalue_line(
        "markers", "integration: tests that open real database connections"
    )
