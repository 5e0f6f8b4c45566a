"""Cache module for kv-poll."""

from .store import KVStore

__all__ = ["KVStore"]
