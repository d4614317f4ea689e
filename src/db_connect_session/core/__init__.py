"""Connection, transaction and execution layer."""

from .connection import ConnectionHandle, CursorOutcome, PreparedStatement
from .context import DatabaseContext
from .credentials import CredentialStore
from .execution import Execution, ExecutionState
from .lock import TransactionLock
from .registry import ConnectionRegistry
from .session import Session
from .statement import StatementKind, classify

__all__ = [
    "ConnectionHandle",
    "ConnectionRegistry",
    "CredentialStore",
    "CursorOutcome",
    "DatabaseContext",
    "Execution",
    "ExecutionState",
    "PreparedStatement",
    "Session",
    "StatementKind",
    "TransactionLock",
    "classify",
]
