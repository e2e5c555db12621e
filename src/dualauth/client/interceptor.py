"""httpx event hooks that attach credentials and report auth failures.

:class:`AuthInterceptor` plugs an :class:`~dualauth.auth.manager.AuthManager`
into an :class:`httpx.AsyncClient`:

- before each request the current credential is attached, as
  ``Authorization: Bearer <token>`` for a delegated session or as a
  ``guestid`` header for a guest;
- after each response, 401 publishes
  :attr:`~dualauth.events.AuthEventName.LOGIN_REQUIRED` and 403 publishes
  :attr:`~dualauth.events.AuthEventName.PERMISSION_DENIED` before the
  error reaches the caller.

Example::

    async with httpx.AsyncClient(base_url=api_url) as client:
        AuthInterceptor(auth).install(client)
        response = await client.get("/documents")
"""

from __future__ import annotations

import logging

import httpx

from dualauth.auth.manager import AuthManager
from dualauth.events import AuthEventName

logger = logging.getLogger(__name__)

GUEST_HEADER = "guestid"

_STATUS_EVENTS = {
    401: AuthEventName.LOGIN_REQUIRED,
    403: AuthEventName.PERMISSION_DENIED,
}


class AuthInterceptor:
    """Request and response hooks bound to one :class:`AuthManager`.

    Args:
        auth: The orchestrator that supplies credentials.
        raise_for_status: When ``True`` (the default), error responses are
            raised as :class:`httpx.HTTPStatusError` from the response hook,
            after any auth signal was published. Set it to ``False`` to let
            callers inspect error responses themselves.
    """

    def __init__(self, auth: AuthManager, raise_for_status: bool = True) -> None:
        self._auth = auth
        self._raise_for_status = raise_for_status

    async def on_request(self, request: httpx.Request) -> None:
        """Attach the current credential to *request*, if there is one."""
        token = await self._auth.get_token()
        if not token:
            return
        if self._auth.is_guest:
            request.headers[GUEST_HEADER] = token
        else:
            request.headers["Authorization"] = f"Bearer {token}"

    async def on_response(self, response: httpx.Response) -> None:
        """Publish auth signals for 401/403, then surface error statuses.

        Raises:
            httpx.HTTPStatusError: For 4xx/5xx responses when
                ``raise_for_status`` is enabled.
        """
        event = _STATUS_EVENTS.get(response.status_code)
        if event is not None:
            logger.warning(
                "%s %s returned %d",
                response.request.method,
                response.request.url,
                response.status_code,
            )
            self._auth.events.emit(event)
        if self._raise_for_status:
            response.raise_for_status()

    def install(self, client: httpx.AsyncClient) -> httpx.AsyncClient:
        """Register both hooks on *client* and return it."""
        hooks = client.event_hooks
        hooks["request"] = [*hooks.get("request", []), self.on_request]
        hooks["response"] = [*hooks.get("response", []), self.on_response]
        client.event_hooks = hooks
        return client
