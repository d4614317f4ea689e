"""Named connection credentials, grouped by backend kind."""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError

from db_connect_session.models.config import BACKEND_KINDS, ConnectionParams
from db_connect_session.utils import load_json_document

logger = logging.getLogger(__name__)

CredentialSource = Union[str, Path, Mapping[str, Any]]


class CredentialStore:
    """Mapping of {backend kind, connection name} to ConnectionParams.

    Loaded once and read-only afterwards. The expected document shape is::

        {"sql": {"default": {"host": "...", "user": "...", "pass": "...",
                             "db": "...", "port": 3306}}}
    """

    def __init__(self) -> None:
        self._table: dict[str, dict[str, ConnectionParams]] = {}

    @property
    def is_loaded(self) -> bool:
        """Whether any credentials are loaded."""
        return bool(self._table)

    def load(self, source: CredentialSource, force: bool = False) -> bool:
        """
        Load credentials from a JSON file or an already parsed mapping.

        Entries missing host, user, pass or database name are skipped. The
        current table is only replaced once the whole document has parsed.

        Args:
            source: Path to a JSON document, or the parsed document itself
            force: Reload even if credentials are already loaded

        Returns:
            True if credentials are available after the call, False if the
            source could not be read or parsed (prior state is kept)
        """
        if not force and self.is_loaded:
            return True

        if isinstance(source, Mapping):
            document = source
        else:
            try:
                document = load_json_document(source)
            except (OSError, ValueError) as e:
                logger.debug(f"Could not load credentials from {source}: {e}")
                return False

        if not isinstance(document, Mapping) or not document:
            return False

        self._table = self._parse(document)
        logger.info(
            f"Loaded {sum(len(names) for names in self._table.values())} "
            f"connection(s) for {len(self._table)} backend kind(s)"
        )
        return True

    def _parse(
        self, document: Mapping[str, Any]
    ) -> dict[str, dict[str, ConnectionParams]]:
        table: dict[str, dict[str, ConnectionParams]] = {}
        for kind, connections in document.items():
            if not isinstance(connections, Mapping):
                continue
            kind_info = BACKEND_KINDS.get(kind)
            default_port = kind_info.default_port if kind_info else None

            for name, entry in connections.items():
                if not isinstance(entry, Mapping):
                    continue
                try:
                    params = ConnectionParams.model_validate(dict(entry))
                except ValidationError:
                    logger.debug(f"Skipping incomplete credentials {kind}/{name}")
                    continue
                table.setdefault(kind, {})[name] = params.with_default_port(
                    default_port
                )
        return table

    def lookup(self, backend_kind: str, name: str) -> Optional[ConnectionParams]:
        """Return the credentials stored for ``name`` under ``backend_kind``."""
        return self._table.get(backend_kind, {}).get(name)

    def kinds(self) -> list[str]:
        """Backend kinds that have at least one connection."""
        return list(self._table.keys())

    def names(self, backend_kind: str) -> list[str]:
        """Connection names stored for ``backend_kind``."""
        return list(self._table.get(backend_kind, {}).keys())

    def clear(self) -> None:
        """Forget every loaded entry."""
        self._table = {}
