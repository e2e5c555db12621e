"""Keycloak-compatible OpenID Connect client.

This module provides :class:`KeycloakClient`, the default
:class:`~dualauth.provider.base.ProviderClient`. It restores a session from
persisted tokens, refreshes the access token with the refresh-token grant,
answers resource-role checks from the token claims, and builds the login and
logout URLs the user is sent to. Endpoints follow the Keycloak realm layout::

    {auth_url}/realms/{realm}/protocol/openid-connect/auth
    {auth_url}/realms/{realm}/protocol/openid-connect/token
    {auth_url}/realms/{realm}/protocol/openid-connect/logout

Token issuance and the authorization-code redirect handshake stay with the
provider; this client only consumes the tokens it produced. Claims are
decoded with PyJWT without verifying the signature and are read for their
expiry and role claims only.

See Also:
    :class:`~dualauth.auth.delegated.DelegatedSessionManager` -- the
    listener this client reports to.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import TYPE_CHECKING, Any, Callable, Optional
from urllib.parse import quote, urlencode

import httpx
import jwt

from dualauth.exceptions import ProviderError
from dualauth.provider.base import FORCE_REFRESH, ProviderClient, ProviderListener

if TYPE_CHECKING:
    from dualauth.context import Navigator
    from dualauth.models import AuthOptions

logger = logging.getLogger(__name__)


class KeycloakClient(ProviderClient):
    """OIDC session handle for one client of one Keycloak realm.

    Args:
        url: Base URL of the identity provider.
        realm: Realm name.
        client_id: Client id of the application.
        listener: Receiver of auth-success, refresh-success and
            token-expired notifications.
        navigator: Used by :meth:`login` and :meth:`logout` to send the
            user to the provider.
        http_client: Optional shared :class:`httpx.AsyncClient`. When
            omitted the client creates (and later closes) its own.
        timeout: Request timeout in seconds for an owned HTTP client.
        clock: Wall-clock source in epoch seconds, compared against the
            ``exp`` claim.
    """

    def __init__(
        self,
        *,
        url: str,
        realm: str,
        client_id: str,
        listener: ProviderListener,
        navigator: Navigator,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        base = f"{url.rstrip('/')}/realms/{quote(realm, safe='')}/protocol/openid-connect"
        self._auth_endpoint = f"{base}/auth"
        self._token_endpoint = f"{base}/token"
        self._logout_endpoint = f"{base}/logout"
        self._client_id = client_id
        self._listener = listener
        self._navigator = navigator
        self._http = http_client
        self._owns_http = http_client is None
        self._timeout = timeout
        self._clock = clock

        self._token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._id_token: Optional[str] = None
        self._claims: Optional[dict[str, Any]] = None
        self._authenticated = False
        self._time_skew = 0.0
        self._scope = "openid"
        self._expiry_timer: Optional[asyncio.TimerHandle] = None
        self._pending: set[asyncio.Future[Any]] = set()
        self._refresh_task: Optional[asyncio.Future[bool]] = None

    @classmethod
    def from_options(
        cls,
        options: AuthOptions,
        listener: ProviderListener,
        navigator: Navigator,
    ) -> KeycloakClient:
        """Build a client from :class:`~dualauth.models.AuthOptions`.

        Matches :data:`~dualauth.provider.base.ProviderFactory`, so it is
        the default factory of the delegated session manager.

        Raises:
            ProviderError: If ``auth_url``, ``realm`` or ``app_client_id``
                is missing.
        """
        if not (options.auth_url and options.realm and options.app_client_id):
            raise ProviderError("auth_url, realm and app_client_id are required")
        return cls(
            url=options.auth_url,
            realm=options.realm,
            client_id=options.app_client_id,
            listener=listener,
            navigator=navigator,
        )

    # ------------------------------------------------------------------ #
    # Token state
    # ------------------------------------------------------------------ #

    @property
    def authenticated(self) -> bool:
        return self._authenticated and self._token is not None

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def refresh_token(self) -> Optional[str]:
        return self._refresh_token

    @property
    def id_token(self) -> Optional[str]:
        return self._id_token

    def is_token_expired(self, min_validity: float = 0) -> bool:
        """Whether the access token expires within *min_validity* seconds.

        Raises:
            ProviderError: If no access token is held.
        """
        if self._claims is None:
            raise ProviderError("Not authenticated")
        exp = self._claims.get("exp")
        if exp is None:
            return False
        expires_in = float(exp) - self._clock() + self._time_skew
        if min_validity > 0:
            expires_in -= min_validity
        return expires_in < 0

    # ------------------------------------------------------------------ #
    # Session lifecycle
    # ------------------------------------------------------------------ #

    async def init(
        self,
        *,
        token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        id_token: Optional[str] = None,
        time_skew: float = 0,
        scope: Optional[str] = None,
        **overrides: Any,
    ) -> bool:
        """Restore a session from persisted tokens.

        A session is only restored when both an access and a refresh token
        are available. The restored tokens are always refreshed once.

        Args:
            token: Persisted access token.
            refresh_token: Persisted refresh token.
            id_token: Persisted id token.
            time_skew: Seconds added to the local clock when checking expiry.
            scope: Extra scopes requested on login (``openid`` is implied).
            **overrides: Unsupported options are ignored.

        Returns:
            ``True`` when a session was restored.

        Raises:
            ProviderError: If the refresh of the restored tokens failed.
        """
        if overrides:
            logger.debug("Ignoring unsupported init options: %s", sorted(overrides))
        self._time_skew = float(time_skew)
        if scope:
            scopes = scope.split()
            self._scope = scope if "openid" in scopes else f"openid {scope}"

        if not (token and refresh_token):
            return False

        self._set_tokens(token, refresh_token, id_token, schedule_expiry=False)
        await self.update_token(FORCE_REFRESH)
        await self._listener.on_auth_success()
        return True

    async def update_token(self, min_validity: float) -> bool:
        if not self._refresh_token:
            raise ProviderError("No refresh token available")
        if min_validity >= 0 and self._token and not self.is_token_expired(min_validity):
            return False
        # Concurrent callers share the grant in flight.
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._refresh_grant())
        return await asyncio.shield(self._refresh_task)

    async def _refresh_grant(self) -> bool:
        """POST the refresh-token grant and install the returned tokens."""
        data = {
            "grant_type": "refresh_token",
            "refresh_token": self._refresh_token,
            "client_id": self._client_id,
        }
        try:
            response = await self._get_http().post(
                self._token_endpoint,
                data=data,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            token_data: dict[str, Any] = response.json()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code in (400, 401):
                self._clear_tokens()
            raise ProviderError(
                f"Token refresh failed with status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Token refresh failed: {exc}") from exc
        except ValueError as exc:
            raise ProviderError(f"Token refresh returned invalid JSON: {exc}") from exc

        if "access_token" not in token_data:
            raise ProviderError("Token refresh response missing 'access_token' field")

        self._set_tokens(
            token_data["access_token"],
            token_data.get("refresh_token") or self._refresh_token,
            token_data.get("id_token") or self._id_token,
        )
        await self._listener.on_auth_refresh_success()
        return True

    def has_resource_role(self, role: str, resource: Optional[str]) -> bool:
        """Whether *role* is granted on *resource*, this client when omitted."""
        if self._claims is None:
            return False
        resource_access = self._claims.get("resource_access") or {}
        roles = (resource_access.get(resource or self._client_id) or {}).get("roles") or []
        return role in roles

    # ------------------------------------------------------------------ #
    # Login / logout
    # ------------------------------------------------------------------ #

    def create_login_url(self, *, redirect_uri: str, idp_hint: Optional[str] = None) -> str:
        params: dict[str, str] = {
            "client_id": self._client_id,
            "redirect_uri": redirect_uri,
            "state": str(uuid.uuid4()),
            "response_type": "code",
            "scope": self._scope,
            "nonce": str(uuid.uuid4()),
        }
        if idp_hint:
            params["kc_idp_hint"] = idp_hint
        return f"{self._auth_endpoint}?{urlencode(params)}"

    def create_logout_url(self, *, redirect_uri: str) -> str:
        params: dict[str, str] = {
            "client_id": self._client_id,
            "post_logout_redirect_uri": redirect_uri,
        }
        if self._id_token:
            params["id_token_hint"] = self._id_token
        return f"{self._logout_endpoint}?{urlencode(params)}"

    async def login(self, *, redirect_uri: str, idp_hint: Optional[str] = None) -> None:
        self._navigator.open(self.create_login_url(redirect_uri=redirect_uri, idp_hint=idp_hint))

    async def logout(self, *, redirect_uri: str) -> None:
        url = self.create_logout_url(redirect_uri=redirect_uri)
        self._clear_tokens()
        self._navigator.open(url)

    async def aclose(self) -> None:
        self._cancel_expiry_timer()
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        for task in list(self._pending):
            task.cancel()
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout)
        return self._http

    def _set_tokens(
        self,
        token: str,
        refresh_token: Optional[str],
        id_token: Optional[str],
        schedule_expiry: bool = True,
    ) -> None:
        claims = _decode_claims(token)
        self._cancel_expiry_timer()
        self._token = token
        self._refresh_token = refresh_token
        self._id_token = id_token
        self._claims = claims
        self._authenticated = True
        if schedule_expiry:
            self._schedule_expiry_timer()

    def _clear_tokens(self) -> None:
        self._cancel_expiry_timer()
        self._token = None
        self._refresh_token = None
        self._id_token = None
        self._claims = None
        self._authenticated = False

    def _schedule_expiry_timer(self) -> None:
        """Arrange for ``on_token_expired`` to fire when the access token runs out."""
        if self._claims is None or self._claims.get("exp") is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        delay = max(float(self._claims["exp"]) - self._clock() + self._time_skew, 0.0)
        self._expiry_timer = loop.call_later(delay, self._fire_token_expired)

    def _cancel_expiry_timer(self) -> None:
        if self._expiry_timer is not None:
            self._expiry_timer.cancel()
            self._expiry_timer = None

    def _fire_token_expired(self) -> None:
        self._expiry_timer = None
        logger.debug("Access token expired")
        task = asyncio.ensure_future(self._listener.on_token_expired())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


def _decode_claims(token: str) -> dict[str, Any]:
    """Decode a JWT's claims without verifying its signature.

    Raises:
        ProviderError: If *token* is not a well-formed JWT.
    """
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as exc:
        raise ProviderError(f"Invalid token: {exc}") from exc
