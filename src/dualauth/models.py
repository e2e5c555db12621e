"""Canonical Pydantic models shared across dualauth modules.

**Configuration** -- :class:`AuthOptions` is supplied once to
:meth:`~dualauth.auth.manager.AuthManager.init_once` and never changes
afterwards. It is also the shape of the CLI's ``config.json``.

**Status snapshots** -- :class:`SessionMode` and :class:`SessionStatus`
describe which identity mode is active. They are derived values, produced
by :meth:`~dualauth.auth.manager.AuthManager.status`.
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from dualauth.store.base import Store

DEFAULT_GUEST_ROLE = "User"
"""Role granted to guests when ``guest_roles`` is not configured."""


class AuthOptions(BaseModel):
    """Connection parameters for both identity modes.

    The delegated (OIDC) mode is active only when ``auth_url``, ``realm``
    and ``app_client_id`` are all set. Guest mode is active only when
    ``guest_client_id`` is set. Leaving a mode's fields out disables that
    mode; it is not an error.

    Example::

        AuthOptions(
            auth_url="https://sso.example.com",
            realm="acme",
            app_client_id="app1",
            api_client_id="api1",
            guest_client_id="app1",
            guest_roles=["editor"],
        )
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    auth_url: Optional[str] = Field(
        default=None, description="Base URL of the identity provider"
    )
    realm: Optional[str] = Field(default=None, description="Realm / tenant name")
    app_client_id: Optional[str] = Field(
        default=None, description="Client id of this application at the provider"
    )
    api_client_id: Optional[str] = Field(
        default=None,
        description="Client id whose resource roles are checked by has_role",
    )
    guest_client_id: Optional[str] = Field(
        default=None, description="Namespace for the guest identity (enables guest mode)"
    )
    guest_roles: Optional[list[str]] = Field(
        default=None,
        description=f"Roles granted to guests (default: ['{DEFAULT_GUEST_ROLE}'])",
    )
    init_options: dict[str, Any] = Field(
        default_factory=dict,
        description="Provider-specific keyword overrides for the silent init call",
    )
    redirect_uri: Optional[str] = Field(
        default=None,
        description="Default redirect target for login and logout URLs",
    )
    store: Optional[Store] = Field(
        default=None,
        exclude=True,
        description="Store override; the context's store is used when unset",
    )

    @property
    def delegated_configured(self) -> bool:
        """Whether every field the delegated mode requires is present."""
        return bool(self.auth_url and self.realm and self.app_client_id)


class SessionMode(str, enum.Enum):
    """The identity mode currently in effect."""

    GUEST = "guest"
    DELEGATED = "delegated"
    NONE = "none"


class SessionStatus(BaseModel):
    """Point-in-time description of the authentication state."""

    mode: SessionMode
    authenticated: bool
    is_guest: bool
    initialized: bool
    app_client_id: Optional[str] = None
    guest_client_id: Optional[str] = None
