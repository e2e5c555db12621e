"""Persistent credential store backed by a single JSON file.

The whole store is one JSON object mapping keys to strings, typically at
``~/.local/share/dualauth/store.json`` (see
:func:`~dualauth.config.get_store_path`). Files are written atomically
(see :func:`~dualauth.config.atomic_write`) with ``0o600`` permissions so
that tokens are never world-readable.

File I/O runs in a worker thread (:func:`asyncio.to_thread`) so the event
loop is never blocked by a slow disk.

See Also:
    :class:`~dualauth.store.base.Store` -- the storage contract.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from dualauth.store.base import Store

logger = logging.getLogger(__name__)


class FileStore(Store):
    """Read/write credentials in a JSON file.

    A corrupted or unreadable file is treated as empty (and logged), so a
    damaged store degrades to "no persisted session" instead of crashing
    the application at startup.

    Args:
        path: Location of the JSON file. Parent directories are created on
            first write.

    Example::

        store = FileStore(Path("~/.local/share/dualauth/store.json").expanduser())
        await store.set_item("app1-accessToken", "eyJ...")
        assert await store.get_item("app1-accessToken") == "eyJ..."
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        """The filesystem path of the store file."""
        return self._path

    async def read(self, key: str) -> Optional[str]:
        items = await asyncio.to_thread(self._load)
        return items.get(key)

    async def write(self, key: str, value: str) -> None:
        async with self._lock:
            items = await asyncio.to_thread(self._load)
            items[key] = value
            await asyncio.to_thread(self._save, items)

    async def delete(self, key: str) -> None:
        async with self._lock:
            items = await asyncio.to_thread(self._load)
            if key not in items:
                return
            del items[key]
            await asyncio.to_thread(self._save, items)

    def _load(self) -> dict[str, str]:
        """Read the store file, returning an empty mapping when absent or invalid.

        Entries whose value is not a string are skipped.
        """
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning("Ignoring unreadable store file %s: %s", self._path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring store file %s: not a JSON object", self._path)
            return {}
        return {str(key): value for key, value in data.items() if isinstance(value, str)}

    def _save(self, items: dict[str, str]) -> None:
        from dualauth.config import atomic_write

        text = json.dumps(items, indent=2, sort_keys=True) + "\n"
        atomic_write(self._path, text, mode=0o600)
