"""Delegated session manager -- OIDC sessions held by an external provider.

The manager owns one :class:`~dualauth.provider.base.ProviderClient`
handle per process. It seeds the handle with the tokens persisted under
``{app_client_id}-accessToken``, ``-refreshToken`` and ``-idToken``, writes
them back whenever the provider reports new ones, and hands out access
tokens through a throttled refresh so a burst of requests costs a single
round-trip.

Provider failures never escape: a failed init purges the persisted tokens
and leaves the manager unauthenticated, and a failed refresh is logged and
the current (possibly stale) token is returned.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from dualauth.auth.base import SessionManager
from dualauth.auth.throttle import Throttle
from dualauth.context import AuthContext
from dualauth.exceptions import NotInitializedError
from dualauth.models import AuthOptions
from dualauth.provider.base import FORCE_REFRESH, ProviderClient, ProviderFactory, ProviderListener
from dualauth.provider.keycloak import KeycloakClient
from dualauth.store.base import Store

logger = logging.getLogger(__name__)

REFRESH_THROTTLE_SECONDS = 5.0
TOKEN_MIN_VALIDITY = 10

ACCESS_TOKEN_SUFFIX = "accessToken"
REFRESH_TOKEN_SUFFIX = "refreshToken"
ID_TOKEN_SUFFIX = "idToken"


def token_keys(app_client_id: str) -> tuple[str, str, str]:
    """Return the access, refresh and id token storage keys for a client."""
    return (
        f"{app_client_id}-{ACCESS_TOKEN_SUFFIX}",
        f"{app_client_id}-{REFRESH_TOKEN_SUFFIX}",
        f"{app_client_id}-{ID_TOKEN_SUFFIX}",
    )


class DelegatedSessionManager(SessionManager, ProviderListener):
    """Owns the provider handle and the persisted OIDC tokens.

    Args:
        context: Shared collaborators (event bus, navigator).
        provider_factory: Builds the provider handle. Defaults to
            :meth:`KeycloakClient.from_options`.
        refresh_wait: Throttle window in seconds for :meth:`get_token`.
        min_validity: Remaining lifetime (seconds) below which
            :meth:`get_token` refreshes the access token.
        clock: Monotonic time source for the throttle.

    Raises:
        ValueError: If *refresh_wait* is not shorter than *min_validity*.
    """

    def __init__(
        self,
        context: AuthContext,
        provider_factory: Optional[ProviderFactory] = None,
        refresh_wait: float = REFRESH_THROTTLE_SECONDS,
        min_validity: float = TOKEN_MIN_VALIDITY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(context)
        if refresh_wait >= min_validity:
            raise ValueError(
                f"refresh_wait ({refresh_wait}s) must be shorter than min_validity ({min_validity}s)"
            )
        self._provider_factory: ProviderFactory = provider_factory or KeycloakClient.from_options
        self._min_validity = min_validity
        self._refresh_once: Throttle[None] = Throttle(
            lambda: self.refresh(self._min_validity), refresh_wait, clock
        )
        self._provider: Optional[ProviderClient] = None
        self._options: Optional[AuthOptions] = None
        self._store: Optional[Store] = None
        self._keys: Optional[tuple[str, str, str]] = None

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def provider(self) -> Optional[ProviderClient]:
        """The provider handle, or ``None`` before a successful init."""
        return self._provider

    @property
    def authenticated(self) -> bool:
        return self._provider is not None and self._provider.authenticated

    @property
    def initialized(self) -> bool:
        return self._provider is not None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def init(self, options: AuthOptions, store: Store) -> bool:
        if not options.delegated_configured:
            return False

        assert options.app_client_id is not None
        self._options = options
        self._store = store
        self._keys = token_keys(options.app_client_id)
        self._refresh_once.reset()

        try:
            self._provider = self._provider_factory(options, self, self._context.navigator)
            await self.init_provider()
        except Exception as exc:
            logger.error("Failed to initialize the identity provider session: %s", exc)
            try:
                await self._clear_tokens()
            finally:
                await self._close_provider()
            return False

        return self.authenticated

    async def init_provider(self) -> bool:
        """Run the provider's silent init seeded with the persisted tokens.

        Raises:
            NotInitializedError: If no provider handle exists.
            ProviderError: If the provider rejected the tokens.
        """
        provider = self._require_provider()
        assert self._store is not None and self._keys is not None and self._options is not None

        access_key, refresh_key, id_key = self._keys
        token = await self._store.get_item(access_key)
        refresh_token = await self._store.get_item(refresh_key)
        id_token = await self._store.get_item(id_key)

        return await provider.init(
            token=token or None,
            refresh_token=refresh_token or None,
            id_token=id_token or None,
            **self._options.init_options,
        )

    async def aclose(self) -> None:
        """Release the provider handle's network resources."""
        if self._provider is not None:
            await self._provider.aclose()

    # ------------------------------------------------------------------ #
    # Provider callbacks
    # ------------------------------------------------------------------ #

    async def on_auth_success(self) -> None:
        logger.debug("Delegated session established")
        await self._persist_tokens()

    async def on_auth_refresh_success(self) -> None:
        logger.debug("Token refreshed")
        await self._persist_tokens()

    async def on_token_expired(self) -> None:
        logger.debug("Token expired, forcing refresh")
        await self.refresh(FORCE_REFRESH)

    # ------------------------------------------------------------------ #
    # Tokens and roles
    # ------------------------------------------------------------------ #

    async def get_token(self) -> str:
        """Return a fresh access token, or ``""`` without a session.

        Refreshes first when the token is about to expire. Refreshes are
        throttled; callers inside the throttle window share the in-flight
        refresh.
        """
        if self._provider is None or not self._provider.refresh_token:
            return ""
        await self._refresh_once()
        return (self._provider.token or "") if self._provider is not None else ""

    async def refresh(self, min_validity: float) -> None:
        """Refresh the access token if needed. Failures are logged, never raised."""
        if self._provider is None:
            return
        try:
            refreshed = await self._provider.update_token(min_validity)
        except Exception as exc:
            logger.error("Failed to refresh the access token: %s", exc)
            return
        if refreshed:
            logger.debug("Token was successfully refreshed")
        else:
            logger.debug("Token is still valid")

    def has_role(self, options: Optional[AuthOptions], role: str, api_client_id: Optional[str] = None) -> bool:
        """Whether the access token grants *role* on the API client.

        Args:
            options: The active configuration.
            role: Role name to check.
            api_client_id: Resource client id overriding
                ``options.api_client_id``.
        """
        if options is None or self._provider is None:
            return False
        return self._provider.has_resource_role(role, api_client_id or options.api_client_id)

    # ------------------------------------------------------------------ #
    # Login / logout
    # ------------------------------------------------------------------ #

    async def login(self, *, redirect_uri: str, idp_hint: Optional[str] = None) -> None:
        await self._require_provider().login(redirect_uri=redirect_uri, idp_hint=idp_hint)

    def create_login_url(self, *, redirect_uri: str, idp_hint: Optional[str] = None) -> str:
        return self._require_provider().create_login_url(redirect_uri=redirect_uri, idp_hint=idp_hint)

    def create_logout_url(self, *, redirect_uri: str) -> str:
        return self._require_provider().create_logout_url(redirect_uri=redirect_uri)

    async def logout(self, *, redirect_uri: str) -> None:
        """Remove the persisted tokens, then end the provider session."""
        await self._clear_tokens()
        if self._provider is not None:
            await self._provider.logout(redirect_uri=redirect_uri)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _require_provider(self) -> ProviderClient:
        if self._provider is None:
            raise NotInitializedError()
        return self._provider

    async def _persist_tokens(self) -> None:
        if self._provider is None or self._store is None or self._keys is None:
            return
        access_key, refresh_key, id_key = self._keys
        await self._store.set_item(access_key, self._provider.token or "")
        await self._store.set_item(refresh_key, self._provider.refresh_token or "")
        await self._store.set_item(id_key, self._provider.id_token or "")

    async def _clear_tokens(self) -> None:
        if self._store is None or self._keys is None:
            return
        for key in self._keys:
            await self._store.remove_item(key)

    async def _close_provider(self) -> None:
        provider, self._provider = self._provider, None
        if provider is not None:
            await provider.aclose()
