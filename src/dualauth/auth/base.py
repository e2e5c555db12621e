"""Abstract base class for session managers.

Each identity mode is owned by one session manager:

- :class:`~dualauth.auth.guest.GuestSessionManager` -- anonymous guest ids.
- :class:`~dualauth.auth.delegated.DelegatedSessionManager` -- OIDC
  sessions at an external identity provider.

The :class:`~dualauth.auth.manager.AuthManager` composes both and routes
every call to whichever reports :attr:`SessionManager.authenticated`.
A manager exclusively owns its state; the orchestrator only reads the
derived booleans and strings.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from dualauth.context import AuthContext
from dualauth.models import AuthOptions
from dualauth.store.base import Store


class SessionManager(ABC):
    """Lifecycle contract shared by both identity modes.

    Args:
        context: Shared collaborators (event bus, navigator).
    """

    def __init__(self, context: AuthContext) -> None:
        self._context = context

    @property
    @abstractmethod
    def authenticated(self) -> bool:
        """Whether this mode currently holds a usable credential."""

    @property
    @abstractmethod
    def initialized(self) -> bool:
        """Whether :meth:`init` has produced session state."""

    @abstractmethod
    async def init(self, options: AuthOptions, store: Store) -> bool:
        """Restore this mode's session from *store*.

        Incomplete configuration is not an error: the mode simply reports
        ``False`` and stays inactive.

        Args:
            options: The application's configuration.
            store: Where credentials are persisted.

        Returns:
            ``True`` when a session was restored.
        """

    @abstractmethod
    async def get_token(self) -> str:
        """Return the credential to attach to requests, or ``""``."""
