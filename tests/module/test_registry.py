"""Module Tests for ConnectionRegistry and DatabaseContext

Validates:
- Handle reuse per (backend kind, name)
- Overrides applied without touching stored credentials
- Handshake failures surfaced as ConnectionError
- Closing handles
"""

from pathlib import Path

import pytest

from db_connect_session.core import ConnectionRegistry, DatabaseContext, Session
from db_connect_session.exceptions import ConnectionError
from db_connect_session.models.config import ConnectionParams, CredentialOverrides

pytestmark = [pytest.mark.sqlite, pytest.mark.integration]


def sqlite_params(path: Path) -> ConnectionParams:
    return ConnectionParams(host="localhost", user="", password="", database=str(path))


class TestRegistryReuse:
    """The same (kind, name) always yields the same handle."""

    def test_same_handle(self, tmp_path: Path):
        registry = ConnectionRegistry()
        try:
            first = registry.get_or_create("sqlite", "a", sqlite_params(tmp_path / "a.db"))
            second = registry.get_or_create("sqlite", "a", sqlite_params(tmp_path / "a.db"))

            assert first is second
            assert ("sqlite", "a") in registry
            assert len(registry) == 1
        finally:
            registry.close_all()

    def test_distinct_names_distinct_handles(self, tmp_path: Path):
        registry = ConnectionRegistry()
        try:
            a = registry.get_or_create("sqlite", "a", sqlite_params(tmp_path / "a.db"))
            b = registry.get_or_create("sqlite", "b", sqlite_params(tmp_path / "b.db"))

            assert a is not b
            assert len(registry) == 2
        finally:
            registry.close_all()

    def test_overrides_ignored_once_cached(self, tmp_path: Path):
        registry = ConnectionRegistry()
        try:
            first = registry.get_or_create("sqlite", "a", sqlite_params(tmp_path / "a.db"))
            again = registry.get_or_create(
                "sqlite",
                "a",
                sqlite_params(tmp_path / "a.db"),
                CredentialOverrides(database=str(tmp_path / "z.db")),
            )

            assert again is first
            assert not (tmp_path / "z.db").exists()
        finally:
            registry.close_all()


class TestRegistryFailures:
    """Connection failures."""

    def test_handshake_failure(self, tmp_path: Path):
        registry = ConnectionRegistry()
        params = sqlite_params(tmp_path / "missing_dir" / "a.db")

        with pytest.raises(ConnectionError, match="Could not connect"):
            registry.get_or_create("sqlite", "broken", params)

        assert len(registry) == 0

    def test_unsupported_kind(self, tmp_path: Path):
        registry = ConnectionRegistry()

        with pytest.raises(ConnectionError, match="Unsupported backend kind"):
            registry.get_or_create("oracle", "a", sqlite_params(tmp_path / "a.db"))


class TestRegistryClose:
    """Closing handles."""

    def test_close_one(self, tmp_path: Path):
        registry = ConnectionRegistry()
        handle = registry.get_or_create("sqlite", "a", sqlite_params(tmp_path / "a.db"))

        assert registry.close("sqlite", "a") is True
        assert handle.closed
        assert registry.get("sqlite", "a") is None
        assert registry.close("sqlite", "a") is False

    def test_close_all_then_reconnect(self, tmp_path: Path):
        registry = ConnectionRegistry()
        params = sqlite_params(tmp_path / "a.db")
        first = registry.get_or_create("sqlite", "a", params)

        registry.close_all()
        assert len(registry) == 0

        second = registry.get_or_create("sqlite", "a", params)
        try:
            assert second is not first
            assert not second.closed
        finally:
            registry.close_all()


class TestContextSessions:
    """Sessions built through a context."""

    def test_sessions_share_handle(self, context: DatabaseContext):
        first = context.session("main")
        second = Session(context, "main")

        assert first.handle is second.handle

    def test_default_name(self, context: DatabaseContext):
        db = context.session()

        assert db.name == "default"
        assert db.backend_kind == "sqlite"

    def test_unknown_name(self, context: DatabaseContext):
        with pytest.raises(ConnectionError, match="Invalid database"):
            context.session("nope")

    def test_unknown_backend_kind_has_no_credentials(self, context: DatabaseContext):
        with pytest.raises(ConnectionError):
            context.session("main", backend_kind="postgresql")

    def test_adhoc_credentials(self, context: DatabaseContext, tmp_path: Path):
        entry = {"host": "localhost", "user": "", "pass": "", "db": str(tmp_path / "adhoc.db")}

        first = context.session(entry)
        second = context.session(dict(entry))

        assert first.handle is second.handle
        assert first.name == f"@localhost/{tmp_path / 'adhoc.db'}"

    def test_adhoc_incomplete_credentials(self, context: DatabaseContext):
        with pytest.raises(ConnectionError):
            context.session({"host": "localhost", "user": ""})

    def test_overrides_applied(self, context: DatabaseContext, tmp_path: Path):
        target = tmp_path / "override.db"

        db = context.session("other", overrides={"db": str(target)})
        db.query("CREATE TABLE t (x INTEGER)")

        assert target.exists()
        assert context.credentials.lookup("sqlite", "other").database == str(
            tmp_path / "other.db"
        )

    def test_close_context(self, context: DatabaseContext):
        db = context.session("main")
        db.start_transaction("key")

        context.close()

        assert db.handle.closed
        assert len(context.registry) == 0
        assert context.locks.is_held("main") is None

    def test_from_env(self, monkeypatch, credentials_file: Path):
        monkeypatch.setenv("DB_CREDENTIALS_PATH", str(credentials_file))
        monkeypatch.setenv("DB_BACKEND_KIND", "sqlite")

        with DatabaseContext.from_env() as ctx:
            assert ctx.credentials.lookup("sqlite", "main") is not None
            assert ctx.session().name == "default"
