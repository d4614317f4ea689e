"""Module Tests for Session transactions

Validates:
- Starting, committing and rolling back transactions
- Commit keys protecting a shared transaction
- Forced rollback of stale unkeyed transactions
- Forced rollback when a statement fails inside a transaction
- Commit keys and sessions after their connection is closed
"""

import pytest

from db_connect_session.core import DatabaseContext, Session
from db_connect_session.exceptions import (
    ConnectionError,
    ExecutionError,
    RollbackError,
)

pytestmark = [pytest.mark.sqlite, pytest.mark.integration]


class TestTransactionBasics:
    """Start, commit, rollback without keys."""

    def test_start_without_lock(self, session: Session):
        assert session.in_transaction is False
        assert session.start_transaction() is True
        assert session.in_transaction is True
        assert session.commit_key is None

    def test_commit_persists(self, session: Session, count_items):
        session.start_transaction()
        session.query("INSERT INTO items (x) VALUES (?)", [1])

        assert session.commit() is True
        assert session.in_transaction is False
        assert count_items(session) == 1

    def test_rollback_discards(self, session: Session, count_items):
        session.start_transaction()
        session.query("INSERT INTO items (x) VALUES (?)", [1])

        assert session.rollback() is True
        assert session.in_transaction is False
        assert count_items(session) == 0

    def test_commit_and_rollback_without_transaction_are_noops(self, session: Session):
        assert session.commit() is False
        assert session.rollback() is False

    def test_statements_outside_transaction_autocommit(
        self, session: Session, count_items
    ):
        session.query("INSERT INTO items (x) VALUES (?)", [1])

        assert session.in_transaction is False
        assert session.rollback() is False
        assert count_items(session) == 1

    def test_stale_unkeyed_transaction_rolled_back(self, session: Session, count_items):
        session.start_transaction()
        session.query("INSERT INTO items (x) VALUES (?)", [1])

        assert session.start_transaction() is True
        assert count_items(session) == 0

        session.query("INSERT INTO items (x) VALUES (?)", [2])
        session.commit()
        assert count_items(session) == 1


class TestCommitKeys:
    """A recorded key guards commit and rollback."""

    def test_key_required_to_commit(self, session: Session, count_items):
        session.start_transaction("owner")
        session.query("INSERT INTO items (x) VALUES (?)", [1])

        assert session.commit() is False
        assert session.commit("intruder") is False
        assert session.in_transaction is True

        assert session.commit("owner") is True
        assert session.in_transaction is False
        assert session.commit_key is None
        assert count_items(session) == 1

    def test_key_required_to_rollback(self, session: Session, count_items):
        session.start_transaction("owner")
        session.query("INSERT INTO items (x) VALUES (?)", [1])

        assert session.rollback() is False
        assert session.in_transaction is True

        assert session.rollback(key="owner") is True
        assert count_items(session) == 0

    def test_second_session_cannot_finalize(
        self, context: DatabaseContext, session: Session, count_items
    ):
        session.start_transaction("owner")
        session.query("INSERT INTO items (x) VALUES (?)", [1])

        other = context.session("main")
        assert other.in_transaction is True

        # A keyed transaction is joined, not replaced
        assert other.start_transaction("other-key") is True
        assert other.commit_key == "owner"
        assert other.commit("other-key") is False
        assert other.rollback(key="other-key") is False
        assert session.in_transaction is True

        assert other.commit("owner") is True
        assert session.in_transaction is False
        assert count_items(session) == 1

    def test_keyed_transaction_not_rolled_back_by_restart(
        self, session: Session, count_items
    ):
        session.start_transaction("owner")
        session.query("INSERT INTO items (x) VALUES (?)", [1])

        assert session.start_transaction() is True
        session.commit("owner")
        assert count_items(session) == 1

    def test_new_key_after_commit(self, session: Session):
        session.start_transaction("first")
        session.commit("first")

        session.start_transaction("second")
        assert session.commit_key == "second"
        assert session.commit("first") is False
        assert session.commit("second") is True


class TestForcedRollback:
    """A failing statement inside a transaction rolls it back."""

    def test_failure_in_keyed_transaction(self, session: Session, count_items):
        session.start_transaction("owner")
        session.query("INSERT INTO items (x) VALUES (?)", [1])

        with pytest.raises(RollbackError) as exc_info:
            session.query("SELECT * FROM missing_table")

        error = exc_info.value
        assert isinstance(error.original, ExecutionError)
        assert error.message.startswith("Forced rollback: Could not SELECT")
        assert error.execution is not None
        assert error.execution.get_statement() == "SELECT * FROM missing_table"
        assert error.execution.get_error() is error.original

        assert session.in_transaction is False
        assert session.commit_key is None
        assert count_items(session) == 0

    def test_failure_outside_transaction(self, session: Session):
        with pytest.raises(ExecutionError) as exc_info:
            session.query("SELECT * FROM missing_table")

        assert not isinstance(exc_info.value, RollbackError)
        assert session.in_transaction is False

    def test_rollback_with_error_outside_transaction_is_noop(self, session: Session):
        assert session.rollback(ExecutionError("boom")) is False

    def test_forced_rollback_ignores_key(self, session: Session):
        session.start_transaction("owner")

        with pytest.raises(RollbackError):
            session.rollback(ExecutionError("boom"))

        assert session.in_transaction is False


class TestTransactionContextManager:
    """Session.transaction() block helper."""

    def test_commits_on_success(self, session: Session, count_items):
        with session.transaction("block") as db:
            db.query("INSERT INTO items (x) VALUES (?)", [1])
            assert db.in_transaction

        assert session.in_transaction is False
        assert count_items(session) == 1

    def test_rolls_back_on_exception(self, session: Session, count_items):
        with pytest.raises(ValueError):
            with session.transaction("block") as db:
                db.query("INSERT INTO items (x) VALUES (?)", [1])
                raise ValueError("abort")

        assert session.in_transaction is False
        assert count_items(session) == 0

    def test_statement_failure_propagates_rollback_error(
        self, session: Session, count_items
    ):
        with pytest.raises(RollbackError):
            with session.transaction() as db:
                db.query("INSERT INTO items (x) VALUES (?)", [1])
                db.query("INSERT INTO items (x) VALUES (?)", [None])

        assert count_items(session) == 0


class TestClosedConnection:
    """Commit keys and sessions outliving their connection."""

    def test_stale_key_dropped_by_next_transaction(
        self, context: DatabaseContext, session: Session, count_items
    ):
        session.start_transaction("owner")
        context.registry.close("sqlite", "main")
        assert context.locks.is_held("main") == "owner"

        fresh = context.session("main")
        assert fresh.in_transaction is False
        assert fresh.start_transaction("new") is True
        assert fresh.commit_key == "new"

        fresh.query("INSERT INTO items (x) VALUES (?)", [1])
        assert fresh.commit("new") is True
        assert count_items(fresh) == 1

    def test_close_connection_drops_key(
        self, context: DatabaseContext, session: Session
    ):
        session.start_transaction("owner")

        assert context.close_connection("sqlite", "main") is True
        assert session.handle.closed
        assert context.locks.is_held("main") is None
        assert context.close_connection("sqlite", "main") is False

    def test_query_on_closed_handle(self, context: DatabaseContext, session: Session):
        context.close_connection("sqlite", "main")

        with pytest.raises(ConnectionError, match="is closed"):
            session.query("SELECT 1")
        with pytest.raises(ConnectionError, match="is closed"):
            session.start_transaction()
