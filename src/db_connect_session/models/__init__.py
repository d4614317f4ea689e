"""Pydantic models for connection settings and execution results."""

from .config import (
    BACKEND_KINDS,
    DEFAULT_BACKEND_KIND,
    DEFAULT_CONNECTION_NAME,
    BackendKind,
    ConnectionParams,
    ContextConfig,
    CredentialOverrides,
    EngineConfig,
    get_backend_kind,
)
from .result import (
    MutationSummary,
    PassthroughResult,
    Result,
    RowSet,
    SchemaResult,
    SingleRow,
)

__all__ = [
    "BACKEND_KINDS",
    "DEFAULT_BACKEND_KIND",
    "DEFAULT_CONNECTION_NAME",
    "BackendKind",
    "ConnectionParams",
    "ContextConfig",
    "CredentialOverrides",
    "EngineConfig",
    "get_backend_kind",
    "MutationSummary",
    "PassthroughResult",
    "Result",
    "RowSet",
    "SchemaResult",
    "SingleRow",
]
