"""Async key/value persistence for credentials.

- :class:`Store` -- abstract base defining the storage contract.
- :class:`MemoryStore` -- process-lifetime dict store (the default).
- :class:`FileStore` -- JSON file store with atomic ``0o600`` writes.
"""

from dualauth.store.base import Store
from dualauth.store.file import FileStore
from dualauth.store.memory import MemoryStore

__all__ = ["FileStore", "MemoryStore", "Store"]
