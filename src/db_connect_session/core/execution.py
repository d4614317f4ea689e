"""Versioned statement execution with reuse of previous statements."""

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from db_connect_session.core.connection import CursorOutcome, Params, PreparedStatement
from db_connect_session.core.statement import StatementKind, classify, leading_keyword
from db_connect_session.exceptions import (
    ExecutionError,
    RequestError,
    backend_error_code,
)
from db_connect_session.models.result import (
    MutationSummary,
    PassthroughResult,
    Result,
    RowSet,
    SchemaResult,
    SingleRow,
)

if TYPE_CHECKING:
    from db_connect_session.core.session import Session

logger = logging.getLogger(__name__)

_POSITIONAL_MARKER = re.compile(r"\?|%s")
_NAMED_MARKER = re.compile(r"(?<!:):(\w+)")


@dataclass
class ExecutionState:
    """Everything recorded about one run of an Execution."""

    statement: Optional[str] = None
    params: Optional[Params] = None
    bound: bool = False
    prepared: Optional[PreparedStatement] = None
    kind: Optional[StatementKind] = None
    result: Optional[Result] = None
    error: Optional[ExecutionError] = None
    in_transaction: bool = False


class Execution:
    """A statement issued through a Session, rerunnable with new parameters.

    Each ``execute`` after the first moves the current state into the
    previous slot before running. The previous slot is history only; it is
    never promoted back to current.
    """

    def __init__(self, session: "Session", statement: Optional[str] = None):
        """
        Initialize the execution.

        Args:
            session: Session whose handle runs the statements
            statement: SQL text the first ``execute()`` without a statement runs
        """
        self.session = session
        self.current = ExecutionState()
        self.previous = ExecutionState()
        self._executions = 0

        if statement is not None:
            self.current.statement = statement
            self.current.kind = classify(statement)

    @property
    def executions(self) -> int:
        """Number of execution attempts so far, failed ones included."""
        return self._executions

    def archive(self) -> None:
        """Move the current state into the previous slot."""
        self.previous = self.current
        self.current = ExecutionState()

    def execute(
        self,
        statement: Optional[str] = None,
        params: Optional[Params] = None,
        single_row: bool = False,
    ) -> Result:
        """
        Run a statement, or rerun the previous one.

        With ``statement``, runs it directly when ``params`` is empty and
        prepares and binds it otherwise. Without ``statement``, reruns the
        previous statement: a bound one with ``params`` or, when none are
        given, the previous values; an unbound one as-is. A statement given to
        the constructor runs on the first call without one.

        Requests rejected with RequestError leave both snapshots untouched and
        are not counted in ``executions``.

        Args:
            statement: SQL text, or None to reuse the previous statement
            params: Sequence (positional) or mapping (named) of values
            single_row: For SELECT, return only the first row

        Returns:
            The result of this run

        Raises:
            RequestError: If ``params`` is not a sequence or mapping, if reuse
                is requested before any execution, or with new params for a
                statement that was not bound
            ExecutionError: If the backend rejects the statement outside a
                transaction
            RollbackError: If it rejects it inside one
        """
        self._check_params(params)
        if statement is None and self._executions == 0:
            statement = self.current.statement
        if statement is None:
            self._check_reuse(params)

        if self._executions > 0:
            self.archive()
        self.current.in_transaction = self.session.in_transaction

        try:
            if statement is not None:
                return self._execute_statement(statement, params, single_row)
            return self._execute_previous(params, single_row)
        finally:
            self._executions += 1

    def _check_params(self, params: Any) -> None:
        if params is None or isinstance(params, Mapping):
            return
        if isinstance(params, Sequence) and not isinstance(
            params, (str, bytes, bytearray)
        ):
            return
        raise RequestError(
            f"Could not bind parameters of type {type(params).__name__}: "
            "expected a sequence or a mapping",
            execution=self,
        )

    def _check_reuse(self, params: Optional[Params]) -> None:
        last = self.current
        if self._executions == 0 or last.statement is None:
            raise RequestError(
                "Could not reuse previous statement: nothing has been executed yet",
                execution=self,
            )
        if params and not last.bound:
            raise RequestError(
                "Could not use previous statement because it was not bound "
                "to parameters.",
                execution=self,
            )

    def _execute_statement(
        self, statement: str, params: Optional[Params], single_row: bool
    ) -> Result:
        state = self.current
        state.statement = statement
        state.kind = classify(statement)
        handle = self.session.handle

        if not params:
            state.bound = False
            return self._run(lambda: handle.query(statement, single_row), single_row)

        state.bound = True
        state.params = params
        state.prepared = handle.prepare(statement)
        prepared = state.prepared
        return self._run(
            lambda: handle.execute(prepared, params, single_row), single_row
        )

    def _execute_previous(self, params: Optional[Params], single_row: bool) -> Result:
        last = self.previous
        state = self.current
        state.statement = last.statement
        state.kind = last.kind
        handle = self.session.handle

        if last.bound:
            bound_params = params or last.params
            state.bound = True
            state.params = bound_params
            state.prepared = last.prepared or handle.prepare(last.statement)
            prepared = state.prepared
            return self._run(
                lambda: handle.execute(prepared, bound_params, single_row), single_row
            )

        state.bound = False
        statement = last.statement
        return self._run(lambda: handle.query(statement, single_row), single_row)

    def _run(self, run: Callable[[], CursorOutcome], single_row: bool) -> Result:
        state = self.current
        logger.debug(f"Executing on '{self.session.name}': {state.statement}")
        try:
            outcome = run()
        except SQLAlchemyError as e:
            backend_message = getattr(e, "orig", None) or e
            error = ExecutionError(
                f"Could not {leading_keyword(state.statement)}: {backend_message}",
                code=backend_error_code(e),
                original=e,
                execution=self,
            )
            state.error = error
            state.result = error

            if self.session.in_transaction:
                self.session.rollback(error)
            raise error from e

        state.result = self._shape(state.kind, outcome, single_row)
        return state.result

    @staticmethod
    def _shape(
        kind: Optional[StatementKind], outcome: CursorOutcome, single_row: bool
    ) -> Result:
        if kind is StatementKind.READ:
            if single_row:
                return SingleRow(row=outcome.fetch_one())
            return RowSet(rows=outcome.fetch_all())
        if kind is StatementKind.MUTATE:
            return MutationSummary(
                last_insert_id=outcome.last_insert_id,
                rows_affected=outcome.row_count,
            )
        if kind is StatementKind.SCHEMA:
            return SchemaResult(success=True)
        return PassthroughResult(
            rows_affected=outcome.row_count,
            rows=outcome.rows if outcome.returns_rows else None,
        )

    # Accessors

    def _state(self, previous: bool) -> ExecutionState:
        return self.previous if previous else self.current

    def get_result(self, previous: bool = False) -> Optional[Result]:
        """Result of the current (or previous) run; an ExecutionError if it failed."""
        return self._state(previous).result

    def get_error(self, previous: bool = False) -> Optional[ExecutionError]:
        """Error of the current (or previous) run, if it failed."""
        return self._state(previous).error

    def get_insert_id(self, previous: bool = False) -> Optional[int]:
        """Last insert id of a mutation, otherwise None."""
        result = self._state(previous).result
        if isinstance(result, MutationSummary):
            return result.last_insert_id
        return None

    def get_affected_rows(self, previous: bool = False) -> Optional[int]:
        """Rows affected by a mutation or unclassified statement, otherwise None."""
        result = self._state(previous).result
        if isinstance(result, (MutationSummary, PassthroughResult)):
            return result.rows_affected
        return None

    def get_statement(self, previous: bool = False) -> Optional[str]:
        return self._state(previous).statement

    def get_params(self, previous: bool = False) -> Optional[Params]:
        return self._state(previous).params

    def get_kind(self, previous: bool = False) -> Optional[StatementKind]:
        return self._state(previous).kind

    def was_bound(self, previous: bool = False) -> bool:
        return self._state(previous).bound

    def ran_in_transaction(self, previous: bool = False) -> bool:
        """Whether the run started inside a transaction."""
        return self._state(previous).in_transaction

    def render(self, previous: bool = False) -> str:
        """
        Statement text with its parameters inlined.

        For logs and debugging only: values are quoted naively, not escaped.
        """
        state = self._state(previous)
        if state.statement is None:
            return ""
        if not state.bound or not state.params:
            return state.statement

        if isinstance(state.params, Mapping):
            values = state.params
            return _NAMED_MARKER.sub(
                lambda m: _quote(values[m.group(1)])
                if m.group(1) in values
                else m.group(0),
                state.statement,
            )

        remaining = list(state.params)
        return _POSITIONAL_MARKER.sub(
            lambda m: _quote(remaining.pop(0)) if remaining else m.group(0),
            state.statement,
        )

    def __str__(self) -> str:
        return self.current.statement or ""

    def __repr__(self) -> str:
        return f"<Execution {self.current.statement!r} runs={self._executions}>"


def _quote(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    return f'"{value}"'
