"""Live backend connection wrapping a SQLAlchemy Connection."""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from sqlalchemy import Connection, CursorResult, Engine, text
from sqlalchemy.engine import RootTransaction
from sqlalchemy.exc import SQLAlchemyError

from db_connect_session.exceptions import ConnectionError

logger = logging.getLogger(__name__)

Params = Union[Sequence[Any], Mapping[str, Any]]


class PreparedStatement:
    """Statement text ready to be executed with successive parameter sets.

    Sequence parameters bind positionally in the driver's own paramstyle
    (``?`` for sqlite, ``%s`` for pymysql and psycopg2). Mapping parameters
    bind by name through SQLAlchemy (``:name``).
    """

    def __init__(self, statement: str):
        self.statement = statement
        self.clause = text(statement)

    def __repr__(self) -> str:
        return f"PreparedStatement({self.statement!r})"


@dataclass
class CursorOutcome:
    """Everything read back from the cursor of one statement."""

    rows: Optional[list[dict[str, Any]]] = None
    last_insert_id: Optional[int] = None
    row_count: int = -1
    returns_rows: bool = field(default=False)

    def fetch_all(self) -> list[dict[str, Any]]:
        """All buffered rows (empty when the statement returned none)."""
        return list(self.rows or [])

    def fetch_one(self) -> Optional[dict[str, Any]]:
        """First buffered row, or None."""
        return self.rows[0] if self.rows else None


class ConnectionHandle:
    """One live connection shared by every Session using the same name.

    Outside an explicit transaction each statement is committed as soon as it
    has run, the way a driver in autocommit mode behaves. ``begin()`` opens an
    explicit transaction that stays open until ``commit()`` or ``rollback()``.
    """

    def __init__(
        self, engine: Engine, connection: Connection, backend_kind: str, name: str
    ):
        """
        Initialize the handle.

        Args:
            engine: Engine the connection was checked out from (disposed on close)
            connection: Open SQLAlchemy connection
            backend_kind: Backend kind the credentials were stored under
            name: Connection name this handle is cached under
        """
        self.engine = engine
        self.backend_kind = backend_kind
        self.name = name
        self._conn: Optional[Connection] = connection
        self._transaction: Optional[RootTransaction] = None

    @property
    def connection(self) -> Connection:
        """The underlying SQLAlchemy connection."""
        if self._conn is None:
            raise ConnectionError(f"Connection '{self.name}' is closed")
        return self._conn

    @property
    def closed(self) -> bool:
        """Whether ``close()`` has been called."""
        return self._conn is None

    @property
    def dialect(self) -> str:
        """Database dialect name."""
        return self.engine.dialect.name

    # Transactions

    def in_transaction(self) -> bool:
        """Whether an explicit transaction is open on this connection."""
        return self._transaction is not None and self._transaction.is_active

    def begin(self) -> bool:
        """
        Open an explicit transaction.

        Returns:
            True if a transaction was started, False if one was already open
        """
        if self.in_transaction():
            return False
        conn = self.connection
        if conn.in_transaction():
            conn.commit()
        self._transaction = conn.begin()
        logger.info(f"Transaction started on '{self.name}'")
        return True

    def commit(self) -> bool:
        """Commit the explicit transaction, if one is open."""
        if not self.in_transaction():
            return False
        self._transaction.commit()
        self._transaction = None
        logger.info(f"Transaction committed on '{self.name}'")
        return True

    def rollback(self) -> bool:
        """Roll back the explicit transaction, if one is open."""
        if not self.in_transaction():
            return False
        self._transaction.rollback()
        self._transaction = None
        logger.info(f"Transaction rolled back on '{self.name}'")
        return True

    # Statements

    def prepare(self, statement: str) -> PreparedStatement:
        """Prepare ``statement`` for execution with parameters."""
        return PreparedStatement(statement)

    def execute(
        self, prepared: PreparedStatement, params: Params, single_row: bool = False
    ) -> CursorOutcome:
        """
        Execute a prepared statement with one parameter set.

        Raises:
            SQLAlchemyError: If the backend rejects the statement
        """
        conn = self.connection
        if isinstance(params, Mapping):
            return self._run(
                lambda: conn.execute(prepared.clause, dict(params)), single_row
            )
        return self._run(
            lambda: conn.exec_driver_sql(prepared.statement, tuple(params)), single_row
        )

    def query(self, statement: str, single_row: bool = False) -> CursorOutcome:
        """
        Execute ``statement`` as-is, without parameter binding.

        Raises:
            SQLAlchemyError: If the backend rejects the statement
        """
        conn = self.connection
        # no_parameters keeps literal "%" signs away from format-style drivers
        return self._run(
            lambda: conn.exec_driver_sql(
                statement, execution_options={"no_parameters": True}
            ),
            single_row,
        )

    def _run(
        self, run: Callable[[], CursorResult], single_row: bool
    ) -> CursorOutcome:
        conn = self.connection
        try:
            result = run()
            outcome = self._collect(result, single_row)
        except SQLAlchemyError:
            if not self.in_transaction():
                conn.rollback()
            raise

        if not self.in_transaction():
            conn.commit()
        return outcome

    @staticmethod
    def _collect(result: CursorResult, single_row: bool) -> CursorOutcome:
        outcome = CursorOutcome(
            last_insert_id=result.lastrowid,
            row_count=result.rowcount,
            returns_rows=result.returns_rows,
        )
        if result.returns_rows:
            mappings = result.mappings()
            if single_row:
                first = mappings.first()
                outcome.rows = [dict(first)] if first is not None else []
            else:
                outcome.rows = [dict(row) for row in mappings.all()]
        return outcome

    def close(self) -> None:
        """Roll back any open transaction, close the connection, dispose the engine."""
        if self._conn is None:
            return
        if self.in_transaction():
            self.rollback()
        self._conn.close()
        self._conn = None
        self.engine.dispose()
        logger.info(f"Connection '{self.name}' closed")

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<ConnectionHandle {self.backend_kind}/{self.name} ({state})>"
