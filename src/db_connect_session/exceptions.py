"""Exception hierarchy for connection, request and execution failures."""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from db_connect_session.core.execution import Execution


class DatabaseError(Exception):
    """Base class for every error raised by this package."""

    def __init__(
        self,
        message: str = "",
        code: int = 0,
        original: Optional[BaseException] = None,
        execution: Optional["Execution"] = None,
    ):
        """
        Initialize the error.

        Args:
            message: Human readable description
            code: Backend error code when it is an integer, otherwise 0
            original: The lower-level exception that caused this one
            execution: The Execution that was running when the error occurred
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.original = original
        self.execution = execution

    def get_erred_execution(self) -> Optional["Execution"]:
        """Return the Execution that failed, if any."""
        return self.execution


class ConnectionError(DatabaseError):
    """Credentials could not be resolved or the backend refused the handshake."""


class RequestError(DatabaseError):
    """The caller asked for something that cannot be done (e.g. invalid reuse)."""


class ExecutionError(DatabaseError):
    """The backend rejected a statement."""


class RollbackError(DatabaseError):
    """A transaction was rolled back because one of its statements failed.

    Every statement since the last commit has been discarded. ``original``
    holds the ExecutionError that forced the rollback.
    """

    @classmethod
    def from_error(cls, error: DatabaseError) -> "RollbackError":
        """Wrap ``error`` as a forced rollback, keeping its code and Execution."""
        return cls(
            f"Forced rollback: {error.message}",
            code=error.code,
            original=error,
            execution=error.execution,
        )


def backend_error_code(exc: BaseException) -> int:
    """Extract an integer error code from a SQLAlchemy/DBAPI exception.

    MySQL drivers put the numeric code first in ``args``; anything that is not
    an integer maps to 0.
    """
    orig = getattr(exc, "orig", None) or exc
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int) and not isinstance(args[0], bool):
        return args[0]
    return 0
