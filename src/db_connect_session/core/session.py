"""Session: a connection name bound to a shared live handle."""

import logging
from collections.abc import Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator, Optional, Union

from pydantic import ValidationError

from db_connect_session.core.connection import ConnectionHandle, Params
from db_connect_session.core.execution import Execution
from db_connect_session.exceptions import (
    ConnectionError,
    DatabaseError,
    RollbackError,
)
from db_connect_session.models.config import (
    BACKEND_KINDS,
    ConnectionParams,
    CredentialOverrides,
)
from db_connect_session.models.result import Result

if TYPE_CHECKING:
    from db_connect_session.core.context import DatabaseContext

logger = logging.getLogger(__name__)

ConnectionTarget = Union[str, ConnectionParams, Mapping[str, Any], None]


class Session:
    """Binds a connection name to a live handle and owns its transactions.

    Sessions on the same name share the handle, and with it the transaction:
    ``in_transaction`` reflects the handle, so a transaction opened through
    one Session is seen (and can be finalized) by the others, subject to the
    commit key. Discarding a Session never closes the handle.
    """

    def __init__(
        self,
        context: "DatabaseContext",
        name: ConnectionTarget = None,
        overrides: Union[CredentialOverrides, Mapping[str, Any], None] = None,
        backend_kind: Optional[str] = None,
    ):
        """
        Initialize and bind the session.

        Args:
            context: Shared credentials, connection cache and commit keys
            name: Connection name (default from the context config), or ad-hoc
                credentials as ConnectionParams or a mapping with host, user,
                pass and db
            overrides: Explicit user/pass/db taking precedence over the stored
                credentials when the connection is first opened
            backend_kind: Credential group to resolve ``name`` in

        Raises:
            ConnectionError: If no usable credentials resolve or the backend
                refuses the connection
        """
        self.context = context
        self.backend_kind = backend_kind or context.config.default_backend_kind
        self._name: Optional[str] = None
        self._handle: Optional[ConnectionHandle] = None

        if not self.bind(name, overrides):
            raise ConnectionError(
                f"Invalid database: no usable {self.backend_kind} credentials "
                f"for {name if name is not None else 'the default connection'}"
            )

    # Binding

    def bind(
        self,
        name: ConnectionTarget = None,
        overrides: Union[CredentialOverrides, Mapping[str, Any], None] = None,
    ) -> bool:
        """
        Resolve credentials and attach the shared handle for them.

        Returns:
            True once bound, False if no usable credentials resolve

        Raises:
            ConnectionError: If the backend refuses the connection
        """
        if name is None:
            name = self.context.config.default_connection_name

        if isinstance(name, str):
            connection_name = name
            params = self.context.credentials.lookup(self.backend_kind, name)
        else:
            params = self._adhoc_params(name)
            connection_name = params.connection_name if params else ""

        if params is None:
            return False

        if overrides is not None and not isinstance(overrides, CredentialOverrides):
            overrides = CredentialOverrides.model_validate(dict(overrides))

        self._handle = self.context.registry.get_or_create(
            self.backend_kind, connection_name, params, overrides
        )
        self._name = connection_name
        return True

    def _adhoc_params(
        self, target: Union[ConnectionParams, Mapping[str, Any]]
    ) -> Optional[ConnectionParams]:
        if isinstance(target, ConnectionParams):
            params = target
        else:
            try:
                params = ConnectionParams.model_validate(dict(target))
            except ValidationError:
                return None
        kind = BACKEND_KINDS.get(self.backend_kind)
        return params.with_default_port(kind.default_port if kind else None)

    @property
    def name(self) -> str:
        """Connection name this session is bound to."""
        return self._name or ""

    @property
    def handle(self) -> ConnectionHandle:
        """The shared live handle."""
        if self._handle is None:
            raise ConnectionError("Session is not bound to a connection")
        return self._handle

    @property
    def is_bound(self) -> bool:
        """Whether a handle is attached."""
        return self._handle is not None

    # Transactions

    @property
    def in_transaction(self) -> bool:
        """Whether the shared connection has an open transaction."""
        return self._handle is not None and self._handle.in_transaction()

    @property
    def commit_key(self) -> Optional[str]:
        """Key currently required to finalize this connection's transaction."""
        return self.context.locks.is_held(self.name)

    def start_transaction(self, key: Optional[str] = None) -> bool:
        """
        Start a transaction unless one is already open.

        With no commit key recorded, an already open transaction is rolled
        back first and ``key`` (if given) becomes the commit key. With a key
        recorded, the open transaction is joined as-is. A recorded key whose
        transaction no longer exists (its connection was closed) is dropped.

        Returns:
            Whether a transaction is open afterwards
        """
        locks = self.context.locks
        if locks.is_held(self.name) is not None and not self.in_transaction:
            logger.warning(
                f"Releasing commit key on '{self.name}': its transaction is gone"
            )
            locks.release(self.name)

        if locks.is_held(self.name) is None:
            if self.in_transaction:
                logger.warning(
                    f"Rolling back open transaction on '{self.name}' "
                    "before starting a new one"
                )
                self.rollback()
            if key is not None:
                locks.acquire(self.name, key)

        self.handle.begin()
        return self.in_transaction

    def commit(self, key: Optional[str] = None) -> bool:
        """
        Commit the open transaction.

        A no-op when no transaction is open, or when a commit key is recorded
        and ``key`` does not match it.

        Returns:
            True if a commit happened
        """
        if not self.in_transaction:
            return False
        if not self.context.locks.matches(self.name, key):
            logger.warning(f"Commit on '{self.name}' ignored: commit key mismatch")
            return False

        self.handle.commit()
        self.context.locks.release(self.name)
        return True

    def rollback(
        self, error: Optional[DatabaseError] = None, key: Optional[str] = None
    ) -> bool:
        """
        Roll back the open transaction.

        A requested rollback (no ``error``) is a no-op when a commit key is
        recorded and ``key`` does not match. A forced rollback (``error``
        given) always proceeds and then raises.

        Returns:
            True if a rollback happened

        Raises:
            RollbackError: If ``error`` was given, wrapping it
        """
        if not self.in_transaction:
            return False
        if error is None and not self.context.locks.matches(self.name, key):
            logger.warning(f"Rollback on '{self.name}' ignored: commit key mismatch")
            return False

        self.handle.rollback()
        self.context.locks.release(self.name)

        if error is not None:
            logger.warning(f"Forced rollback on '{self.name}': {error.message}")
            raise RollbackError.from_error(error) from error
        return True

    @contextmanager
    def transaction(self, key: Optional[str] = None) -> Iterator["Session"]:
        """
        Run a block inside a transaction.

        Commits when the block finishes, rolls back if it raises. A
        RollbackError from a failed statement has already rolled back.
        """
        self.start_transaction(key)
        try:
            yield self
        except RollbackError:
            raise
        except Exception:
            self.rollback(key=key)
            raise
        else:
            self.commit(key)

    # Statements

    def new_execution(self) -> Execution:
        """Create an empty Execution on this session."""
        return Execution(self)

    def prepare(self, statement: str) -> Execution:
        """Create an Execution holding ``statement`` without running it.

        The first ``execute()`` (optionally with params) runs it.
        """
        return Execution(self, statement)

    def query(
        self,
        statement: str,
        params: Optional[Params] = None,
        single_row: bool = False,
    ) -> Execution:
        """
        Run ``statement`` and return its Execution.

        Args:
            statement: SQL text
            params: Values to bind; empty or None runs the text directly
            single_row: For SELECT, return only the first row

        Raises:
            ExecutionError: If the statement fails outside a transaction
            RollbackError: If it fails inside one (the transaction is rolled back)
        """
        execution = Execution(self)
        execution.execute(statement, params, single_row)
        return execution

    def execute(
        self,
        statement: str,
        params: Optional[Params] = None,
        single_row: bool = False,
    ) -> Result:
        """Run ``statement`` and return only its result."""
        return self.query(statement, params, single_row).get_result()

    def __repr__(self) -> str:
        state = "in transaction" if self.in_transaction else "idle"
        return f"<Session {self.backend_kind}/{self.name} ({state})>"
