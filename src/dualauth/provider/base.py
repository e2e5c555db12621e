"""Abstract interfaces for the external OpenID Connect client.

The delegated session manager never talks to an identity provider itself.
It drives a :class:`ProviderClient` (token refresh, role checks, login and
logout URLs) and receives the client's lifecycle notifications through the
:class:`ProviderListener` it registers at construction time.

To plug in another provider, subclass :class:`ProviderClient` and pass a
factory with the :data:`ProviderFactory` signature to
:class:`~dualauth.auth.manager.AuthManager`.

See Also:
    :class:`~dualauth.provider.keycloak.KeycloakClient` -- the default
    implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, Optional

if TYPE_CHECKING:
    from dualauth.context import Navigator
    from dualauth.models import AuthOptions

FORCE_REFRESH = -1
"""Min-validity sentinel meaning "treat the token as already expired"."""


class ProviderListener(ABC):
    """Receiver of provider client lifecycle notifications."""

    @abstractmethod
    async def on_auth_success(self) -> None:
        """Called after the client established a session."""

    @abstractmethod
    async def on_auth_refresh_success(self) -> None:
        """Called after the client obtained new tokens with the refresh token."""

    @abstractmethod
    async def on_token_expired(self) -> None:
        """Called when the access token's lifetime has run out."""


class ProviderClient(ABC):
    """Handle to one OIDC session at an external identity provider."""

    @property
    @abstractmethod
    def authenticated(self) -> bool:
        """Whether the client currently holds a valid session."""

    @property
    @abstractmethod
    def token(self) -> Optional[str]:
        """The current access token."""

    @property
    @abstractmethod
    def refresh_token(self) -> Optional[str]:
        """The current refresh token."""

    @property
    @abstractmethod
    def id_token(self) -> Optional[str]:
        """The current id token."""

    @abstractmethod
    async def init(
        self,
        *,
        token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        id_token: Optional[str] = None,
        **overrides: Any,
    ) -> bool:
        """Silently restore a session from previously issued tokens.

        Args:
            token: Persisted access token, if any.
            refresh_token: Persisted refresh token, if any.
            id_token: Persisted id token, if any.
            **overrides: Provider-specific init options.

        Returns:
            ``True`` when a session was established.

        Raises:
            ProviderError: If the provider rejected the persisted tokens or
                could not be reached.
        """

    @abstractmethod
    async def update_token(self, min_validity: float) -> bool:
        """Refresh the access token if it expires within *min_validity* seconds.

        Args:
            min_validity: Remaining lifetime threshold in seconds.
                :data:`FORCE_REFRESH` refreshes unconditionally.

        Returns:
            ``True`` if the token was refreshed, ``False`` if it was still
            valid.

        Raises:
            ProviderError: If the refresh failed.
        """

    @abstractmethod
    def has_resource_role(self, role: str, resource: Optional[str]) -> bool:
        """Whether the access token grants *role* on client *resource*.

        An omitted *resource* means the application client itself.
        """

    @abstractmethod
    def create_login_url(self, *, redirect_uri: str, idp_hint: Optional[str] = None) -> str:
        """Build the provider's login URL."""

    @abstractmethod
    def create_logout_url(self, *, redirect_uri: str) -> str:
        """Build the provider's logout URL."""

    @abstractmethod
    async def login(self, *, redirect_uri: str, idp_hint: Optional[str] = None) -> None:
        """Hand the user over to the provider's login page."""

    @abstractmethod
    async def logout(self, *, redirect_uri: str) -> None:
        """End the session and hand the user over to the provider's logout page."""

    async def aclose(self) -> None:
        """Release network resources. The default implementation does nothing."""


ProviderFactory = Callable[["AuthOptions", ProviderListener, "Navigator"], ProviderClient]
"""Builds a :class:`ProviderClient` for the given options, listener and navigator."""
