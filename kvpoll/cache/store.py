"""
Key-Value Store Module

This module implements the in-memory map shared by every connection.

The store is deliberately bare: exact-match lookups, last write wins,
no eviction, no expiry and no locking. It is only ever touched from the
server's single dispatch thread.
"""

from typing import Dict, Any, Optional


class KVStore:
    """
    In-memory key-value store.

    Keys are text, values are opaque byte strings. The server stores
    SET payloads exactly as received (already compressed by the client),
    so the store never interprets its values.

    Time complexity is O(1) average for every operation, backed by a
    plain dict.
    """

    def __init__(self):
        self._store: Dict[str, bytes] = {}

    def set(self, key: str, value: bytes) -> None:
        """
        Insert or replace the value stored under key.

        Args:
            key: The key to store
            value: Raw bytes to associate with the key
        """
        self._store[key] = bytes(value)

    def get(self, key: str) -> Optional[bytes]:
        """
        Retrieve the value for a given key.

        Returns:
            The stored bytes, or None if the key was never written
        """
        return self._store.get(key)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the store.

        Returns:
            Dictionary containing:
            - total_keys: Number of keys stored
            - total_bytes: Sum of the lengths of all stored values
        """
        return {
            "total_keys": len(self._store),
            "total_bytes": sum(len(value) for value in self._store.values()),
        }
