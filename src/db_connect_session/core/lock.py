"""Commit keys guarding shared transactions."""

import logging
from typing import Optional

logger = logging.getLogger(__name__)


class TransactionLock:
    """Per-connection-name commit key table.

    While a key is recorded for a name, only a caller presenting that key may
    commit or roll back the transaction on that connection. At most one key is
    held per name.
    """

    def __init__(self) -> None:
        self._keys: dict[str, str] = {}

    def acquire(self, name: str, token: Optional[str] = None) -> bool:
        """
        Record ``token`` as the commit key for ``name``.

        Args:
            name: Connection name
            token: Key required to finalize the transaction; None records nothing

        Returns:
            True if no key was held for ``name``, False if one already was
            (the existing key is kept)
        """
        if name in self._keys:
            return False
        if token is not None:
            self._keys[name] = token
            logger.debug(f"Commit key recorded for connection '{name}'")
        return True

    def release(self, name: str) -> None:
        """Forget the commit key for ``name``, if any."""
        self._keys.pop(name, None)

    def is_held(self, name: str) -> Optional[str]:
        """Return the commit key held for ``name``, or None."""
        return self._keys.get(name)

    def matches(self, name: str, token: Optional[str]) -> bool:
        """True when no key is held for ``name`` or ``token`` equals it."""
        held = self._keys.get(name)
        return held is None or token == held

    def clear(self) -> None:
        """Drop every recorded key."""
        self._keys.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._keys

    def __len__(self) -> int:
        return len(self._keys)
