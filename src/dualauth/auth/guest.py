"""Guest session manager -- locally generated anonymous identities.

A guest identity is a random UUID persisted under
``{guest_client_id}-guestId``. It carries a fixed role list taken from
:attr:`~dualauth.models.AuthOptions.guest_roles` (or the single default
role) and is sent to the API in a dedicated header instead of a bearer
token.

Guest mode is opt-in: without a ``guest_client_id`` the manager stays
inactive. An identifier is only generated by an explicit :meth:`login`,
never at init.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from dualauth.auth.base import SessionManager
from dualauth.events import AuthEventName
from dualauth.exceptions import NotInitializedError
from dualauth.models import DEFAULT_GUEST_ROLE, AuthOptions
from dualauth.store.base import Store

logger = logging.getLogger(__name__)


@dataclass
class GuestState:
    """In-memory guest session state."""

    key: str
    store: Store
    guest_id: str = ""
    roles: list[str] = field(default_factory=list)


def guest_key(guest_client_id: str) -> str:
    """Return the storage key holding the guest id for *guest_client_id*."""
    return f"{guest_client_id}-guestId"


class GuestSessionManager(SessionManager):
    """Owns the anonymous guest identity lifecycle."""

    _state: Optional[GuestState] = None

    @property
    def authenticated(self) -> bool:
        return bool(self._state and self._state.guest_id)

    @property
    def initialized(self) -> bool:
        return self._state is not None

    @property
    def guest_id(self) -> str:
        """The current guest identifier, or ``""``."""
        return self._state.guest_id if self._state else ""

    @property
    def roles(self) -> list[str]:
        """Roles granted to the current guest."""
        return list(self._state.roles) if self._state else []

    async def init(self, options: AuthOptions, store: Store) -> bool:
        if not options.guest_client_id:
            return False

        key = guest_key(options.guest_client_id)
        guest_id = await store.get_item(key)
        roles: list[str] = []

        if guest_id:
            roles = list(options.guest_roles) if options.guest_roles is not None else [DEFAULT_GUEST_ROLE]
            logger.debug("Authenticated guest")

        self._state = GuestState(key=key, store=store, guest_id=guest_id, roles=roles)
        return self.authenticated

    async def get_token(self) -> str:
        return self.guest_id

    def has_role(self, role: str) -> bool:
        """Whether the guest's role list contains *role*."""
        if self._state is None:
            return False
        return role in self._state.roles

    async def login(self, options: AuthOptions) -> None:
        """Create and persist a new guest identity.

        Publishes :attr:`~dualauth.events.AuthEventName.IS_GUEST_AUTHENTICATED`
        once the identity is in place.

        Raises:
            NotInitializedError: If :meth:`init` has not run.
        """
        logger.debug("Login guest")

        if self._state is None:
            raise NotInitializedError()

        guest_id = str(uuid.uuid4())
        await self._state.store.set_item(self._state.key, guest_id)
        await self.init(options, self._state.store)
        self._context.events.emit(AuthEventName.IS_GUEST_AUTHENTICATED)

    async def logout(self) -> None:
        """Forget the guest identity and ask the application to reset itself."""
        logger.debug("Logout guest")

        if self._state is None:
            return

        await self._state.store.remove_item(self._state.key)
        self._state.guest_id = ""
        self._state.roles = []
        self._context.navigator.reload()
