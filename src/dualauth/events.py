"""Notification bus for authentication state changes.

The orchestrator and the HTTP adapter publish four named signals; UI code
subscribes to them. Publishing is fire-and-forget: :meth:`AuthEvents.emit`
never waits for listeners and never raises because of them.

Each :class:`~dualauth.context.AuthContext` owns its own bus instance.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)

Listener = Callable[[], Union[None, Awaitable[Any]]]


class AuthEventName(str, Enum):
    """Signals published on the bus. Values are the wire names UI code listens for."""

    IS_ALREADY_AUTHENTICATED = "isAlreadyAuthenticated"
    IS_GUEST_AUTHENTICATED = "isGuestAuthenticated"
    LOGIN_REQUIRED = "loginRequired"
    PERMISSION_DENIED = "permissionDenied"


class AuthEvents:
    """Pub/sub channel keyed by :class:`AuthEventName`.

    Listeners take no arguments. Plain callables run inline during
    :meth:`emit`; coroutine functions are scheduled as tasks on the running
    loop, and are skipped with a warning when no loop is running. Use
    :meth:`join` to wait for scheduled listeners, which is mostly useful in
    tests.

    Example::

        events = AuthEvents()
        unsubscribe = events.on(AuthEventName.LOGIN_REQUIRED, show_login_dialog)
        events.emit(AuthEventName.LOGIN_REQUIRED)
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: dict[AuthEventName, list[Listener]] = defaultdict(list)
        self._pending: set[asyncio.Future[Any]] = set()

    def on(self, name: AuthEventName, listener: Listener) -> Callable[[], None]:
        """Subscribe *listener* to *name*.

        Returns:
            A callable that removes the subscription.
        """
        self._listeners[name].append(listener)
        return lambda: self.off(name, listener)

    def off(self, name: AuthEventName, listener: Listener) -> None:
        """Remove *listener* from *name*. A no-op if it is not subscribed."""
        listeners = self._listeners.get(name, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, name: AuthEventName) -> int:
        """Return how many listeners are subscribed to *name*."""
        return len(self._listeners.get(name, []))

    def emit(self, name: AuthEventName) -> None:
        """Publish *name* to every subscribed listener.

        Listener failures are logged, never raised.
        """
        logger.debug("Emitting %s", name.value)
        for listener in list(self._listeners.get(name, [])):
            try:
                result = listener()
                if inspect.isawaitable(result):
                    self._schedule(name, result)
            except Exception as exc:
                logger.warning("Listener for %s failed: %s", name.value, exc)

    async def join(self) -> None:
        """Wait until every scheduled async listener has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, name: AuthEventName, awaitable: Awaitable[Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Async listener for %s skipped: no running event loop", name.value)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(task)
        task.add_done_callback(self._on_listener_done)

    def _on_listener_done(self, task: asyncio.Future[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Async listener failed: %s", exc)
