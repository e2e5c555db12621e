"""Auth orchestrator -- the single entry point used by the application.

:class:`AuthManager` decides once per process which identity mode is
active and routes every later call to the matching session manager::

    auth = AuthManager(AuthContext(store=FileStore(path)))
    await auth.init_once(options)
    token = await auth.get_token()

Guest mode is resolved first: a persisted guest id wins for the rest of the
process, even if delegated tokens are persisted as well. Only when no guest
id exists is the delegated session restored.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

from dualauth.auth.delegated import DelegatedSessionManager
from dualauth.auth.guest import GuestSessionManager
from dualauth.context import AuthContext
from dualauth.events import AuthEventName, AuthEvents
from dualauth.exceptions import NotInitializedError
from dualauth.models import AuthOptions, SessionMode, SessionStatus
from dualauth.provider.base import ProviderFactory

logger = logging.getLogger(__name__)


class InitState(str, Enum):
    """Progress of :meth:`AuthManager.init_once`."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class AuthManager:
    """Composes the guest and delegated session managers.

    Args:
        context: Shared collaborators. A fresh :class:`AuthContext` (memory
            store, browser navigator) is used when omitted.
        provider_factory: Builds the OIDC client handle; see
            :data:`~dualauth.provider.base.ProviderFactory`.
    """

    def __init__(
        self,
        context: Optional[AuthContext] = None,
        provider_factory: Optional[ProviderFactory] = None,
    ) -> None:
        self._context = context or AuthContext()
        self._guest = GuestSessionManager(self._context)
        self._delegated = DelegatedSessionManager(self._context, provider_factory)
        self._options: Optional[AuthOptions] = None
        self._init_state = InitState.NOT_STARTED
        self._init_task: Optional[asyncio.Future[None]] = None

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    @property
    def context(self) -> AuthContext:
        return self._context

    @property
    def events(self) -> AuthEvents:
        """Shortcut for ``context.events``."""
        return self._context.events

    @property
    def options(self) -> Optional[AuthOptions]:
        """Options recorded by :meth:`init_once`, or ``None``."""
        return self._options

    @property
    def init_state(self) -> InitState:
        return self._init_state

    @property
    def guest(self) -> GuestSessionManager:
        return self._guest

    @property
    def delegated(self) -> DelegatedSessionManager:
        return self._delegated

    @property
    def authenticated(self) -> bool:
        """Whether either identity mode holds a credential."""
        return self._guest.authenticated or self._delegated.authenticated

    @property
    def is_guest(self) -> bool:
        return self._guest.authenticated

    @property
    def mode(self) -> SessionMode:
        if self._guest.authenticated:
            return SessionMode.GUEST
        if self._delegated.authenticated:
            return SessionMode.DELEGATED
        return SessionMode.NONE

    def status(self) -> SessionStatus:
        """Return a snapshot of the current session."""
        return SessionStatus(
            mode=self.mode,
            authenticated=self.authenticated,
            is_guest=self.is_guest,
            initialized=self._init_state is InitState.DONE,
            app_client_id=self._options.app_client_id if self._options else None,
            guest_client_id=self._options.guest_client_id if self._options else None,
        )

    # ------------------------------------------------------------------ #
    # Initialization
    # ------------------------------------------------------------------ #

    async def init_once(self, options: AuthOptions) -> None:
        """Decide the identity mode and restore its session.

        Only the first call does any work. Concurrent and later calls wait
        for that call to finish; their *options* are ignored. Never raises
        for provider or storage failures: they leave the manager
        unauthenticated and are logged.

        Emits :attr:`~AuthEventName.IS_GUEST_AUTHENTICATED` when a persisted
        guest id is found, otherwise
        :attr:`~AuthEventName.IS_ALREADY_AUTHENTICATED` when a delegated
        session was restored.
        """
        if self._init_state is InitState.NOT_STARTED:
            self._init_state = InitState.IN_PROGRESS
            self._init_task = asyncio.ensure_future(self._init(options))
        assert self._init_task is not None
        await asyncio.shield(self._init_task)

    async def _init(self, options: AuthOptions) -> None:
        self._options = options
        store = options.store or self._context.store
        try:
            if await self._guest.init(options, store):
                self.events.emit(AuthEventName.IS_GUEST_AUTHENTICATED)
            elif await self._delegated.init(options, store):
                self.events.emit(AuthEventName.IS_ALREADY_AUTHENTICATED)
        except Exception:
            logger.exception("Auth initialization failed")
        finally:
            self._init_state = InitState.DONE
            logger.debug("Auth initialized in %s mode", self.mode.value)

    # ------------------------------------------------------------------ #
    # Credentials
    # ------------------------------------------------------------------ #

    async def get_token(self) -> str:
        """Return the credential for outgoing requests.

        The guest id in guest mode, otherwise a refreshed access token.
        ``""`` when no mode is authenticated.
        """
        if self._guest.authenticated:
            return await self._guest.get_token()
        return await self._delegated.get_token()

    def has_role(self, role: Optional[str] = None, api_client_id: Optional[str] = None) -> bool:
        """Whether the current identity holds *role*.

        An empty or missing *role* always passes.

        Args:
            role: Role name to check.
            api_client_id: Resource client id for delegated role checks;
                defaults to ``options.api_client_id``.
        """
        if not role:
            return True
        return self._guest.has_role(role) or self._delegated.has_role(self._options, role, api_client_id)

    # ------------------------------------------------------------------ #
    # Login / logout
    # ------------------------------------------------------------------ #

    async def login_guest(self) -> None:
        """Create a guest identity.

        Raises:
            NotInitializedError: Before :meth:`init_once`.
        """
        options = self._require_options()
        await self._guest.login(options)

    async def login(self, idp_hint: Optional[str] = None, redirect_uri: Optional[str] = None) -> None:
        """Send the user to the identity provider's login page.

        Raises:
            NotInitializedError: Before :meth:`init_once` or without a
                provider session.
        """
        self._require_options()
        await self._delegated.login(redirect_uri=self._resolve_redirect(redirect_uri), idp_hint=idp_hint)

    def create_login_url(self, idp_hint: Optional[str] = None, redirect_uri: Optional[str] = None) -> str:
        self._require_options()
        return self._delegated.create_login_url(redirect_uri=self._resolve_redirect(redirect_uri), idp_hint=idp_hint)

    def create_logout_url(self, redirect_uri: Optional[str] = None) -> str:
        self._require_options()
        return self._delegated.create_logout_url(redirect_uri=self._resolve_redirect(redirect_uri))

    async def update(self) -> None:
        """Restore the delegated session again from the persisted tokens.

        Used after an external login completed and stored fresh tokens.

        Raises:
            NotInitializedError: Before :meth:`init_once` or without a
                provider session.
            ProviderError: If the provider rejected the tokens.
        """
        self._require_options()
        if await self._delegated.init_provider():
            self.events.emit(AuthEventName.IS_ALREADY_AUTHENTICATED)

    async def logout(self, redirect_uri: Optional[str] = None) -> None:
        """End the active session.

        In guest mode only the guest identity is dropped; otherwise the
        delegated tokens are removed and the provider session ended.

        Raises:
            NotInitializedError: Before :meth:`init_once`.
        """
        self._require_options()
        if self._guest.authenticated:
            await self._guest.logout()
            return
        await self._delegated.logout(redirect_uri=self._resolve_redirect(redirect_uri))

    async def aclose(self) -> None:
        """Release network resources and wait for pending event listeners."""
        await self._delegated.aclose()
        await self._context.events.join()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _require_options(self) -> AuthOptions:
        if self._options is None:
            raise NotInitializedError()
        return self._options

    def _resolve_redirect(self, redirect_uri: Optional[str]) -> str:
        if redirect_uri:
            return redirect_uri
        if self._options is not None and self._options.redirect_uri:
            return self._options.redirect_uri
        return self._context.navigator.location
