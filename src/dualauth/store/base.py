"""Abstract base class for credential stores.

A store is an async ``key -> str`` map. Session managers persist tokens and
the guest identifier through it so that a session survives a restart.
Keys are namespaced by client id (``app1-accessToken``,
``app1-guestId``), so several configurations can share one store.

Subclasses implement the three raw primitives :meth:`Store.read`,
:meth:`Store.write` and :meth:`Store.delete`. The public methods layered on
top enforce the contract every caller relies on:

- :meth:`Store.set_item` with an empty value deletes the key.
- :meth:`Store.get_item` returns ``""`` for a missing key, and for the
  literal string ``"undefined"`` left behind by careless writers.
- Neither :meth:`Store.get_item` nor :meth:`Store.remove_item` raises for a
  missing key.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

_UNDEFINED = "undefined"


class Store(ABC):
    """Async key/value persistence for credentials."""

    async def set_item(self, key: str, value: str) -> None:
        """Store *value* under *key*, or delete *key* when *value* is empty.

        Args:
            key: Namespaced storage key.
            value: The string to persist.
        """
        if value:
            await self.write(key, value)
        else:
            await self.delete(key)

    async def get_item(self, key: str) -> str:
        """Return the value stored under *key*.

        Args:
            key: Namespaced storage key.

        Returns:
            The stored string, or ``""`` when the key is absent.
        """
        value = await self.read(key)
        if value is None or value == _UNDEFINED:
            return ""
        return value

    async def remove_item(self, key: str) -> None:
        """Delete *key*. A no-op when the key is absent."""
        await self.delete(key)

    @abstractmethod
    async def read(self, key: str) -> Optional[str]:
        """Return the raw value for *key*, or ``None`` when absent."""

    @abstractmethod
    async def write(self, key: str, value: str) -> None:
        """Persist a non-empty *value* under *key*, overwriting any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key*. Must not raise when the key is absent."""
