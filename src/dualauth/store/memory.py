"""In-memory credential store."""

from __future__ import annotations

from typing import Optional

from dualauth.store.base import Store


class MemoryStore(Store):
    """Dict-backed store that lives as long as the process.

    This is the default store of :class:`~dualauth.context.AuthContext`.
    Use :class:`~dualauth.store.file.FileStore` when sessions must survive
    a restart.

    Args:
        initial: Optional entries to seed the store with.
    """

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    async def read(self, key: str) -> Optional[str]:
        return self._items.get(key)

    async def write(self, key: str, value: str) -> None:
        self._items[key] = value

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        """Return a copy of every stored entry."""
        return dict(self._items)
