"""db-connect-session: shared connections, keyed transactions, reusable executions.

Example:
    context = DatabaseContext()
    context.load_credentials("db_credentials.json")

    db = context.session()
    db.start_transaction("checkout")
    insert = db.query("INSERT INTO orders (user_id) VALUES (?)", [42])
    insert.execute(None, [43])
    db.commit("checkout")
"""

from db_connect_session.core import (
    ConnectionHandle,
    ConnectionRegistry,
    CredentialStore,
    DatabaseContext,
    Execution,
    Session,
    StatementKind,
    TransactionLock,
)
from db_connect_session.exceptions import (
    ConnectionError,
    DatabaseError,
    ExecutionError,
    RequestError,
    RollbackError,
)
from db_connect_session.models import (
    ConnectionParams,
    ContextConfig,
    CredentialOverrides,
    EngineConfig,
    MutationSummary,
    PassthroughResult,
    RowSet,
    SchemaResult,
    SingleRow,
)

__version__ = "0.1.0"

__all__ = [
    "ConnectionHandle",
    "ConnectionRegistry",
    "CredentialStore",
    "DatabaseContext",
    "Execution",
    "Session",
    "StatementKind",
    "TransactionLock",
    "ConnectionError",
    "DatabaseError",
    "ExecutionError",
    "RequestError",
    "RollbackError",
    "ConnectionParams",
    "ContextConfig",
    "CredentialOverrides",
    "EngineConfig",
    "MutationSummary",
    "PassthroughResult",
    "RowSet",
    "SchemaResult",
    "SingleRow",
]
