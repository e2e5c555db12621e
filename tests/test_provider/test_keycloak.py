"""Tests for the Keycloak provider client."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, urlparse

import httpx
import jwt
import pytest

from dualauth.exceptions import ProviderError
from dualauth.models import AuthOptions
from dualauth.provider.base import FORCE_REFRESH, ProviderListener
from dualauth.provider.keycloak import KeycloakClient


NOW = 1_700_000_000
TOKEN_URL = "https://sso.test/realms/acme/protocol/openid-connect/token"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_jwt(expires_in: int = 300, **claims: Any) -> str:
    payload = {"exp": NOW + expires_in, "sub": "user-1", **claims}
    return jwt.encode(payload, "test-secret", algorithm="HS256")


def _make_token_response(
    access_token: Optional[str] = None,
    refresh_token: Optional[str] = "new-refresh",
    id_token: Optional[str] = "new-id",
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "access_token": access_token or _make_jwt(),
        "token_type": "Bearer",
        "expires_in": 300,
    }
    if refresh_token is not None:
        data["refresh_token"] = refresh_token
    if id_token is not None:
        data["id_token"] = id_token
    return data


class RecordingListener(ProviderListener):
    def __init__(self) -> None:
        self.events: list[str] = []

    async def on_auth_success(self) -> None:
        self.events.append("auth_success")

    async def on_auth_refresh_success(self) -> None:
        self.events.append("refresh_success")

    async def on_token_expired(self) -> None:
        self.events.append("token_expired")


class TokenEndpoint:
    """MockTransport handler that records refresh-grant requests."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]) -> None:
        self.respond = respond
        self.requests: list[dict[str, list[str]]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        assert str(request.url) == TOKEN_URL
        self.requests.append(parse_qs(request.content.decode()))
        return self.respond(request)


def _client(
    navigator,
    endpoint: Optional[TokenEndpoint] = None,
    listener: Optional[RecordingListener] = None,
) -> tuple[KeycloakClient, RecordingListener]:
    listener = listener or RecordingListener()
    endpoint = endpoint or TokenEndpoint(lambda r: httpx.Response(200, json=_make_token_response()))
    http = httpx.AsyncClient(transport=httpx.MockTransport(endpoint))
    client = KeycloakClient(
        url="https://sso.test/",
        realm="acme",
        client_id="app1",
        listener=listener,
        navigator=navigator,
        http_client=http,
        clock=lambda: NOW,
    )
    return client, listener


# ---------------------------------------------------------------------------
# Construction and URLs
# ---------------------------------------------------------------------------


class TestFromOptions:
    def test_builds_client(self, navigator) -> None:
        options = AuthOptions(auth_url="https://sso.test", realm="acme", app_client_id="app1")
        client = KeycloakClient.from_options(options, RecordingListener(), navigator)
        assert isinstance(client, KeycloakClient)
        assert client.authenticated is False

    def test_missing_fields(self, navigator) -> None:
        with pytest.raises(ProviderError):
            KeycloakClient.from_options(AuthOptions(realm="acme"), RecordingListener(), navigator)


class TestUrls:
    def test_login_url(self, navigator) -> None:
        client, _ = _client(navigator)

        url = urlparse(client.create_login_url(redirect_uri="https://app.test/", idp_hint="github"))
        query = parse_qs(url.query)

        assert f"{url.scheme}://{url.netloc}{url.path}" == (
            "https://sso.test/realms/acme/protocol/openid-connect/auth"
        )
        assert query["client_id"] == ["app1"]
        assert query["redirect_uri"] == ["https://app.test/"]
        assert query["response_type"] == ["code"]
        assert query["scope"] == ["openid"]
        assert query["kc_idp_hint"] == ["github"]
        assert query["state"] and query["nonce"]

    def test_login_url_without_hint(self, navigator) -> None:
        client, _ = _client(navigator)
        query = parse_qs(urlparse(client.create_login_url(redirect_uri="https://app.test/")).query)
        assert "kc_idp_hint" not in query

    def test_state_is_unique(self, navigator) -> None:
        client, _ = _client(navigator)
        first = parse_qs(urlparse(client.create_login_url(redirect_uri="x")).query)["state"]
        second = parse_qs(urlparse(client.create_login_url(redirect_uri="x")).query)["state"]
        assert first != second

    def test_logout_url_with_id_token(self, navigator) -> None:
        client, _ = _client(navigator)
        asyncio.run(client.init(token=_make_jwt(), refresh_token="r", id_token="id-1"))

        url = urlparse(client.create_logout_url(redirect_uri="https://app.test/bye"))
        query = parse_qs(url.query)

        assert url.path.endswith("/protocol/openid-connect/logout")
        assert query["post_logout_redirect_uri"] == ["https://app.test/bye"]
        assert query["id_token_hint"] == ["new-id"]

    def test_extra_scope(self, navigator) -> None:
        client, _ = _client(navigator)
        asyncio.run(client.init(scope="profile email"))
        query = parse_qs(urlparse(client.create_login_url(redirect_uri="x")).query)
        assert query["scope"] == ["openid profile email"]


# ---------------------------------------------------------------------------
# Session restore and refresh
# ---------------------------------------------------------------------------


class TestInit:
    def test_without_tokens(self, navigator) -> None:
        endpoint = TokenEndpoint(lambda r: httpx.Response(500))
        client, listener = _client(navigator, endpoint)

        assert asyncio.run(client.init(token="only-access")) is False
        assert endpoint.requests == []
        assert listener.events == []

    def test_restores_and_forces_refresh(self, navigator) -> None:
        fresh = _make_jwt(resource_access={"api1": {"roles": ["reader"]}})
        endpoint = TokenEndpoint(
            lambda r: httpx.Response(200, json=_make_token_response(access_token=fresh))
        )
        client, listener = _client(navigator, endpoint)

        assert asyncio.run(client.init(token=_make_jwt(), refresh_token="old-refresh")) is True

        assert endpoint.requests == [
            {"grant_type": ["refresh_token"], "refresh_token": ["old-refresh"], "client_id": ["app1"]}
        ]
        assert listener.events == ["refresh_success", "auth_success"]
        assert client.authenticated is True
        assert client.token == fresh
        assert client.refresh_token == "new-refresh"
        assert client.id_token == "new-id"
        assert client.has_resource_role("reader", "api1") is True

    def test_rejected_tokens_raise(self, navigator) -> None:
        endpoint = TokenEndpoint(lambda r: httpx.Response(400, json={"error": "invalid_grant"}))
        client, listener = _client(navigator, endpoint)

        with pytest.raises(ProviderError, match="400"):
            asyncio.run(client.init(token=_make_jwt(), refresh_token="revoked"))

        assert client.authenticated is False
        assert client.token is None
        assert listener.events == []

    def test_malformed_token_raises(self, navigator) -> None:
        client, _ = _client(navigator)
        with pytest.raises(ProviderError, match="Invalid token"):
            asyncio.run(client.init(token="not-a-jwt", refresh_token="r"))

    def test_unknown_overrides_are_ignored(self, navigator) -> None:
        client, _ = _client(navigator)
        assert asyncio.run(client.init(onLoad="check-sso")) is False


class TestUpdateToken:
    def _restored(self, navigator, endpoint: TokenEndpoint, expires_in: int = 300):
        client, listener = _client(navigator, endpoint)
        client._set_tokens(_make_jwt(expires_in=expires_in), "refresh-1", "id-1", schedule_expiry=False)
        return client, listener

    def test_without_refresh_token(self, navigator) -> None:
        client, _ = _client(navigator)
        with pytest.raises(ProviderError, match="No refresh token"):
            asyncio.run(client.update_token(10))

    def test_still_valid_token_is_kept(self, navigator) -> None:
        endpoint = TokenEndpoint(lambda r: httpx.Response(200, json=_make_token_response()))
        client, listener = self._restored(navigator, endpoint, expires_in=300)

        assert asyncio.run(client.update_token(10)) is False
        assert endpoint.requests == []
        assert listener.events == []

    def test_token_expiring_within_min_validity_is_refreshed(self, navigator) -> None:
        endpoint = TokenEndpoint(lambda r: httpx.Response(200, json=_make_token_response()))
        client, listener = self._restored(navigator, endpoint, expires_in=5)

        assert asyncio.run(client.update_token(10)) is True
        assert len(endpoint.requests) == 1
        assert listener.events == ["refresh_success"]

    def test_forced_refresh(self, navigator) -> None:
        endpoint = TokenEndpoint(lambda r: httpx.Response(200, json=_make_token_response()))
        client, _ = self._restored(navigator, endpoint, expires_in=3000)

        assert asyncio.run(client.update_token(FORCE_REFRESH)) is True
        assert len(endpoint.requests) == 1

    def test_concurrent_refreshes_share_one_grant(self, navigator) -> None:
        endpoint = TokenEndpoint(lambda r: httpx.Response(200, json=_make_token_response()))
        client, listener = self._restored(navigator, endpoint)

        async def _run() -> list[bool]:
            return await asyncio.gather(
                client.update_token(FORCE_REFRESH), client.update_token(FORCE_REFRESH)
            )

        assert asyncio.run(_run()) == [True, True]
        assert len(endpoint.requests) == 1
        assert endpoint.requests[0]["refresh_token"] == ["refresh-1"]
        assert listener.events == ["refresh_success"]

    def test_concurrent_refreshes_share_one_failure(self, navigator) -> None:
        endpoint = TokenEndpoint(lambda r: httpx.Response(400, json={"error": "invalid_grant"}))
        client, _ = self._restored(navigator, endpoint)

        async def _run() -> list[object]:
            return await asyncio.gather(
                client.update_token(FORCE_REFRESH),
                client.update_token(FORCE_REFRESH),
                return_exceptions=True,
            )

        results = asyncio.run(_run())
        assert all(isinstance(result, ProviderError) for result in results)
        assert len(endpoint.requests) == 1

    def test_sequential_refreshes_each_post(self, navigator) -> None:
        endpoint = TokenEndpoint(lambda r: httpx.Response(200, json=_make_token_response()))
        client, _ = self._restored(navigator, endpoint)

        async def _run() -> None:
            await client.update_token(FORCE_REFRESH)
            await client.update_token(FORCE_REFRESH)

        asyncio.run(_run())
        assert len(endpoint.requests) == 2
        assert endpoint.requests[1]["refresh_token"] == ["new-refresh"]

    def test_missing_refresh_token_in_response_keeps_old_one(self, navigator) -> None:
        endpoint = TokenEndpoint(
            lambda r: httpx.Response(200, json=_make_token_response(refresh_token=None, id_token=None))
        )
        client, _ = self._restored(navigator, endpoint)

        asyncio.run(client.update_token(FORCE_REFRESH))

        assert client.refresh_token == "refresh-1"
        assert client.id_token == "id-1"

    def test_server_error_keeps_tokens(self, navigator) -> None:
        endpoint = TokenEndpoint(lambda r: httpx.Response(503))
        client, _ = self._restored(navigator, endpoint)

        with pytest.raises(ProviderError, match="503"):
            asyncio.run(client.update_token(FORCE_REFRESH))
        assert client.refresh_token == "refresh-1"

    def test_unauthorized_clears_tokens(self, navigator) -> None:
        endpoint = TokenEndpoint(lambda r: httpx.Response(401))
        client, _ = self._restored(navigator, endpoint)

        with pytest.raises(ProviderError):
            asyncio.run(client.update_token(FORCE_REFRESH))
        assert client.refresh_token is None
        assert client.authenticated is False

    def test_network_error(self, navigator) -> None:
        def _fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = self._restored(navigator, TokenEndpoint(_fail))

        with pytest.raises(ProviderError, match="connection refused"):
            asyncio.run(client.update_token(FORCE_REFRESH))

    def test_invalid_json(self, navigator) -> None:
        endpoint = TokenEndpoint(lambda r: httpx.Response(200, text="<html>"))
        client, _ = self._restored(navigator, endpoint)

        with pytest.raises(ProviderError, match="invalid JSON"):
            asyncio.run(client.update_token(FORCE_REFRESH))

    def test_missing_access_token(self, navigator) -> None:
        endpoint = TokenEndpoint(lambda r: httpx.Response(200, json={"token_type": "Bearer"}))
        client, _ = self._restored(navigator, endpoint)

        with pytest.raises(ProviderError, match="access_token"):
            asyncio.run(client.update_token(FORCE_REFRESH))


class TestExpiry:
    def test_is_token_expired_requires_session(self, navigator) -> None:
        client, _ = _client(navigator)
        with pytest.raises(ProviderError, match="Not authenticated"):
            client.is_token_expired()

    def test_is_token_expired(self, navigator) -> None:
        client, _ = _client(navigator)
        client._set_tokens(_make_jwt(expires_in=30), "r", None, schedule_expiry=False)

        assert client.is_token_expired() is False
        assert client.is_token_expired(20) is False
        assert client.is_token_expired(40) is True

    def test_time_skew(self, navigator) -> None:
        client, _ = _client(navigator)
        asyncio.run(client.init(time_skew=-60))
        client._set_tokens(_make_jwt(expires_in=30), "r", None, schedule_expiry=False)
        assert client.is_token_expired() is True

    def test_token_without_exp_never_expires(self, navigator) -> None:
        client, _ = _client(navigator)
        client._set_tokens(jwt.encode({"sub": "u"}, "k", algorithm="HS256"), "r", None, schedule_expiry=False)
        assert client.is_token_expired(1000) is False

    def test_expiry_timer_notifies_listener(self, navigator) -> None:
        expired_now = _make_jwt(expires_in=0)
        endpoint = TokenEndpoint(
            lambda r: httpx.Response(200, json=_make_token_response(access_token=expired_now))
        )
        client, listener = _client(navigator, endpoint)

        async def _run() -> None:
            await client.init(token=_make_jwt(), refresh_token="r")
            await asyncio.sleep(0.05)
            await client.aclose()

        asyncio.run(_run())
        assert "token_expired" in listener.events

    def test_aclose_cancels_timer(self, navigator) -> None:
        client, listener = _client(navigator)

        async def _run() -> None:
            await client.init(token=_make_jwt(), refresh_token="r")
            await client.aclose()
            await asyncio.sleep(0.01)

        asyncio.run(_run())
        assert "token_expired" not in listener.events


# ---------------------------------------------------------------------------
# Roles and navigation
# ---------------------------------------------------------------------------


class TestRolesAndNavigation:
    def test_has_resource_role(self, navigator) -> None:
        client, _ = _client(navigator)
        token = _make_jwt(resource_access={"api1": {"roles": ["reader", "writer"]}})
        client._set_tokens(token, "r", None, schedule_expiry=False)

        assert client.has_resource_role("writer", "api1") is True
        assert client.has_resource_role("admin", "api1") is False
        assert client.has_resource_role("reader", "api2") is False
        assert client.has_resource_role("reader", None) is False

    def test_resource_defaults_to_own_client(self, navigator) -> None:
        client, _ = _client(navigator)
        token = _make_jwt(resource_access={"app1": {"roles": ["editor"]}, "api1": {"roles": ["reader"]}})
        client._set_tokens(token, "r", None, schedule_expiry=False)

        assert client.has_resource_role("editor", None) is True
        assert client.has_resource_role("reader", None) is False
        assert client.has_resource_role("editor", "api1") is False

    def test_has_resource_role_without_session(self, navigator) -> None:
        client, _ = _client(navigator)
        assert client.has_resource_role("reader", "api1") is False

    def test_login_opens_url(self, navigator) -> None:
        client, _ = _client(navigator)
        asyncio.run(client.login(redirect_uri="https://app.test/"))
        assert len(navigator.opened) == 1
        assert navigator.opened[0].startswith(
            "https://sso.test/realms/acme/protocol/openid-connect/auth?"
        )

    def test_logout_clears_tokens_and_opens_url(self, navigator) -> None:
        client, _ = _client(navigator)
        client._set_tokens(_make_jwt(), "r", "id-1", schedule_expiry=False)

        asyncio.run(client.logout(redirect_uri="https://app.test/"))

        assert client.authenticated is False
        assert client.token is None
        assert "id_token_hint=id-1" in navigator.opened[0]
