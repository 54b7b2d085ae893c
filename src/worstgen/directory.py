"""
Worst Generation - Recipient key directory.

Maps each online alias to the public key it logged in with, so outgoing
messages can be sealed once per recipient. The directory is filled from
the login-success payload and kept current from presence events; it is
rebuilt on every login and never persisted.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)


class KeyDirectory:
    """In-memory alias -> public key PEM map."""

    def __init__(self):
        self._keys: Dict[str, str] = {}

    def update(self, alias: str, public_key: str) -> None:
        """Record or replace the public key for alias."""
        if not alias or not public_key:
            return
        if alias in self._keys and self._keys[alias] != public_key:
            logger.info(f"Public key changed for {alias}")
        self._keys[alias] = public_key

    def remove(self, alias: str) -> None:
        self._keys.pop(alias, None)

    def get(self, alias: str) -> Optional[str]:
        return self._keys.get(alias)

    def recipients(self, exclude: Optional[str] = None) -> List[str]:
        """Aliases to seal for, in insertion order, skipping exclude."""
        return [alias for alias in self._keys if alias != exclude]

    def load(self, entries: Union[Dict[str, str], Iterable[Dict[str, Any]], None]) -> int:
        """
        Load entries from a relay payload.

        Accepts either a mapping of alias to PEM or a list of
        {alias, publicKey} objects. Malformed entries are skipped.

        Returns:
            Number of entries loaded
        """
        self._keys.clear()
        if not entries:
            return 0

        if isinstance(entries, dict):
            items = [{"alias": alias, "publicKey": key} for alias, key in entries.items()]
        else:
            items = list(entries)

        for item in items:
            if not isinstance(item, dict):
                continue
            alias = item.get("alias")
            public_key = item.get("publicKey")
            if isinstance(alias, str) and isinstance(public_key, str):
                self.update(alias, public_key)

        logger.debug(f"Key directory loaded with {len(self._keys)} entries")
        return len(self._keys)

    def __contains__(self, alias: str) -> bool:
        return alias in self._keys

    def __len__(self) -> int:
        return len(self._keys)
