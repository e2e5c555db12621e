"""External OpenID Connect client boundary.

- :class:`ProviderClient` / :class:`ProviderListener` -- the interfaces the
  delegated session manager drives and implements.
- :class:`KeycloakClient` -- default httpx-based client for Keycloak realms.
"""

from dualauth.provider.base import (
    FORCE_REFRESH,
    ProviderClient,
    ProviderFactory,
    ProviderListener,
)
from dualauth.provider.keycloak import KeycloakClient

__all__ = [
    "FORCE_REFRESH",
    "KeycloakClient",
    "ProviderClient",
    "ProviderFactory",
    "ProviderListener",
]
