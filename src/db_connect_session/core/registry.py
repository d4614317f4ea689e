"""Cache of live connection handles keyed by backend kind and name."""

import logging
from typing import Any, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError

from db_connect_session.core.connection import ConnectionHandle
from db_connect_session.exceptions import ConnectionError, backend_error_code
from db_connect_session.models.config import (
    BackendKind,
    ConnectionParams,
    CredentialOverrides,
    EngineConfig,
    get_backend_kind,
)

logger = logging.getLogger(__name__)


def build_url(kind: BackendKind, params: ConnectionParams, config: EngineConfig) -> URL:
    """
    Build the SQLAlchemy URL for a set of credentials.

    Args:
        kind: Backend kind providing the driver name and default port
        params: Resolved credentials (overrides already applied)
        config: Engine settings (charset for MySQL)

    Returns:
        SQLAlchemy URL
    """
    if kind.is_file_based:
        return URL.create(kind.drivername, database=params.database)

    query = {}
    if kind.dialect == "mysql" and config.charset:
        query["charset"] = config.charset

    return URL.create(
        kind.drivername,
        username=params.user,
        password=params.password,
        host=params.host,
        port=params.port or kind.default_port,
        database=params.database,
        query=query,
    )


class ConnectionRegistry:
    """Creates a handle on first use of a (kind, name) pair and reuses it after.

    Every Session bound to the same pair gets the identical ConnectionHandle.
    Handles live until ``close()``/``close_all()``; Sessions never close them.
    """

    def __init__(self, engine_config: Optional[EngineConfig] = None):
        self.engine_config = engine_config or EngineConfig()
        self._handles: dict[tuple[str, str], ConnectionHandle] = {}

    def get_or_create(
        self,
        backend_kind: str,
        name: str,
        params: ConnectionParams,
        overrides: Optional[CredentialOverrides] = None,
    ) -> ConnectionHandle:
        """
        Return the cached handle for (backend_kind, name), connecting if needed.

        Overrides take precedence over ``params`` for a new connection; they do
        not alter ``params`` and are ignored when a handle is already cached.

        Raises:
            ConnectionError: If the backend kind is unsupported or the backend
                rejects the handshake (not retried)
        """
        handle = self._handles.get((backend_kind, name))
        if handle is not None and not handle.closed:
            return handle

        try:
            kind = get_backend_kind(backend_kind)
        except ValueError as e:
            raise ConnectionError(str(e), original=e) from e

        resolved = params.with_overrides(overrides)
        url = build_url(kind, resolved, self.engine_config)

        try:
            engine = create_engine(url, **self._engine_kwargs(kind))
        except (SQLAlchemyError, ImportError) as e:
            raise ConnectionError(
                f"Could not create engine for {backend_kind} connection '{name}': {e}",
                original=e,
            ) from e

        try:
            connection = engine.connect()
        except SQLAlchemyError as e:
            engine.dispose()
            raise ConnectionError(
                f"Could not connect to {backend_kind} connection '{name}': {e}",
                code=backend_error_code(e),
                original=e,
            ) from e

        handle = ConnectionHandle(engine, connection, backend_kind, name)
        self._handles[(backend_kind, name)] = handle
        logger.info(
            f"Connected {backend_kind} connection '{name}' "
            f"({url.render_as_string(hide_password=True)})"
        )
        return handle

    def _engine_kwargs(self, kind: BackendKind) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"echo": self.engine_config.echo_sql}
        if not kind.is_file_based and self.engine_config.connect_timeout:
            kwargs["connect_args"] = {
                "connect_timeout": self.engine_config.connect_timeout
            }
        return kwargs

    def get(self, backend_kind: str, name: str) -> Optional[ConnectionHandle]:
        """Return the cached open handle for (backend_kind, name), if any."""
        handle = self._handles.get((backend_kind, name))
        if handle is None or handle.closed:
            return None
        return handle

    def close(self, backend_kind: str, name: str) -> bool:
        """Close and forget one handle. Returns False if none was cached."""
        handle = self._handles.pop((backend_kind, name), None)
        if handle is None:
            return False
        handle.close()
        return True

    def close_all(self) -> None:
        """Close every cached handle."""
        for key in list(self._handles):
            self.close(*key)

    def __contains__(self, key: object) -> bool:
        return key in self._handles and not self._handles[key].closed

    def __len__(self) -> int:
        return sum(1 for handle in self._handles.values() if not handle.closed)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(list(self._handles))
