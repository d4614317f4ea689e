"""Shared state owned by the application and handed to every Session."""

import logging
from typing import TYPE_CHECKING, Any, Mapping, Optional, Union

from db_connect_session.core.credentials import CredentialSource, CredentialStore
from db_connect_session.core.lock import TransactionLock
from db_connect_session.core.registry import ConnectionRegistry
from db_connect_session.models.config import (
    ConnectionParams,
    ContextConfig,
    CredentialOverrides,
)

if TYPE_CHECKING:
    from db_connect_session.core.session import Session

logger = logging.getLogger(__name__)


class DatabaseContext:
    """Credentials, connection cache and commit keys shared across Sessions.

    Sessions built from the same context on the same connection name share
    one handle and one transaction.
    """

    def __init__(
        self,
        config: Optional[ContextConfig] = None,
        credentials: Optional[CredentialStore] = None,
        registry: Optional[ConnectionRegistry] = None,
        locks: Optional[TransactionLock] = None,
    ):
        self.config = config or ContextConfig()
        self.credentials = credentials or CredentialStore()
        self.registry = registry or ConnectionRegistry(self.config.engine)
        self.locks = locks or TransactionLock()

    @classmethod
    def from_config(cls, config: ContextConfig) -> "DatabaseContext":
        """Build a context and load the configured credentials document."""
        context = cls(config)
        if config.credentials_path:
            if not context.credentials.load(config.credentials_path):
                logger.warning(
                    f"Credentials file {config.credentials_path} could not be loaded"
                )
        return context

    @classmethod
    def from_env(cls) -> "DatabaseContext":
        """Build a context from environment variables."""
        return cls.from_config(ContextConfig.from_env())

    def load_credentials(self, source: CredentialSource, force: bool = True) -> bool:
        """Load (by default, reload) the credentials table."""
        return self.credentials.load(source, force=force)

    def session(
        self,
        name: Union[str, ConnectionParams, Mapping[str, Any], None] = None,
        overrides: Union[CredentialOverrides, Mapping[str, Any], None] = None,
        backend_kind: Optional[str] = None,
    ) -> "Session":
        """Open a Session bound to ``name`` (see ``Session``)."""
        from db_connect_session.core.session import Session

        return Session(self, name, overrides, backend_kind=backend_kind)

    def close_connection(self, backend_kind: str, name: str) -> bool:
        """Close one connection and drop the commit key recorded for its name."""
        closed = self.registry.close(backend_kind, name)
        self.locks.release(name)
        return closed

    def close(self) -> None:
        """Close every connection and forget all commit keys."""
        self.registry.close_all()
        self.locks.clear()

    def __enter__(self) -> "DatabaseContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
