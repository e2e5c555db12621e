"""dualauth -- client-side authentication state for OIDC and guest sessions.

This package manages the credential an application attaches to its API
calls. Two mutually exclusive identity modes are supported: a delegated
OpenID Connect session backed by an external identity provider, and a
locally generated anonymous *guest* identity. A single
:class:`~dualauth.auth.manager.AuthManager` decides at startup which mode
is active and exposes one surface to the rest of the application.

Typical usage::

    from dualauth import AuthManager, AuthOptions

    auth = AuthManager()
    await auth.init_once(AuthOptions(auth_url=..., realm=..., app_client_id=...))
    token = await auth.get_token()

Modules:
    auth: Session managers, refresh throttle, and the orchestrator.
    store: Async key/value credential persistence.
    provider: The external OIDC client boundary and a Keycloak client.
    client: httpx hooks that attach credentials and report 401/403.
    events: Notification bus for state-relevant signals.
    context: The explicit context object shared by every component.
    models: Pydantic models for configuration and status snapshots.
    config: XDG-aware configuration loading and precedence resolution.
    app: Typer CLI entry point.
"""

__version__ = "0.1.0"

from dualauth.auth.manager import AuthManager
from dualauth.context import AuthContext
from dualauth.events import AuthEventName, AuthEvents
from dualauth.models import AuthOptions

__all__ = [
    "AuthContext",
    "AuthEventName",
    "AuthEvents",
    "AuthManager",
    "AuthOptions",
    "__version__",
]
