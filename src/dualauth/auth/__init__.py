"""Session management for guest and delegated (OIDC) identities.

The main entry points are:

- :class:`AuthManager` -- the orchestrator; decides the identity mode once
  and routes every call to the active session manager.
- :class:`GuestSessionManager` -- anonymous guest identities.
- :class:`DelegatedSessionManager` -- sessions held by an external OIDC
  provider, with throttled token refresh.
- :class:`Throttle` -- leading-edge throttle for coroutine functions.

Typical usage::

    from dualauth.auth import AuthManager

    auth = AuthManager(context)
    await auth.init_once(options)
    if auth.has_role("editor"):
        ...
"""

from dualauth.auth.base import SessionManager
from dualauth.auth.delegated import DelegatedSessionManager
from dualauth.auth.guest import GuestSessionManager
from dualauth.auth.manager import AuthManager, InitState
from dualauth.auth.throttle import Throttle

__all__ = [
    "AuthManager",
    "DelegatedSessionManager",
    "GuestSessionManager",
    "InitState",
    "SessionManager",
    "Throttle",
]
