"""The explicit context object shared by every dualauth component.

An application builds one :class:`AuthContext` at startup and hands it to
:class:`~dualauth.auth.manager.AuthManager`, which passes it on to both
session managers and to the provider client. It bundles the collaborators
that would otherwise be process-wide singletons:

- the notification bus (:class:`~dualauth.events.AuthEvents`),
- the default credential store (:class:`~dualauth.store.base.Store`),
- the :class:`Navigator`, the capability to open URLs and reset the
  application after a guest logout.
"""

from __future__ import annotations

import logging
import webbrowser
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Optional

from dualauth.events import AuthEvents
from dualauth.store.base import Store
from dualauth.store.memory import MemoryStore

logger = logging.getLogger(__name__)


class Navigator(ABC):
    """Capability to move the user between pages.

    Login and logout hand the user over to the identity provider by opening
    a URL; a guest logout asks the surrounding application to reset itself.
    Both are side effects the session logic requests but never performs
    directly.
    """

    @property
    @abstractmethod
    def location(self) -> str:
        """The current location, used as the default redirect target."""

    @abstractmethod
    def open(self, url: str) -> None:
        """Send the user to *url*."""

    @abstractmethod
    def reload(self) -> None:
        """Reset the application after the identity changed underneath it."""


class WebBrowserNavigator(Navigator):
    """Navigator for desktop and CLI applications.

    URLs are opened in the system browser via :mod:`webbrowser`. Reload is
    delegated to *on_reload* when given; otherwise it is only logged, since
    a CLI process has no page to reload.

    Args:
        location: Redirect target used when a caller supplies none.
        on_reload: Optional callback invoked by :meth:`reload`.
    """

    def __init__(self, location: str = "", on_reload: Optional[Callable[[], None]] = None) -> None:
        self._location = location
        self._on_reload = on_reload

    @property
    def location(self) -> str:
        return self._location

    def open(self, url: str) -> None:
        logger.debug("Opening %s", url)
        webbrowser.open(url)

    def reload(self) -> None:
        if self._on_reload is not None:
            self._on_reload()
        else:
            logger.debug("Reload requested")


@dataclass
class AuthContext:
    """Collaborators shared by the orchestrator and both session managers.

    Attributes:
        events: Bus the managers and the HTTP adapter publish onto.
        store: Store used unless :attr:`~dualauth.models.AuthOptions.store`
            overrides it.
        navigator: URL opener and reload hook.
    """

    events: AuthEvents = field(default_factory=AuthEvents)
    store: Store = field(default_factory=MemoryStore)
    navigator: Navigator = field(default_factory=WebBrowserNavigator)
