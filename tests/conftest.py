"""Shared test fixtures for dualauth.

Provides isolated config environments, output state management, a CLI
runner, and in-memory doubles for the identity provider and the
navigator. These fixtures are discovered by pytest automatically.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Optional

import pytest

from dualauth.context import AuthContext, Navigator
from dualauth.exceptions import ProviderError
from dualauth.models import AuthOptions
from dualauth.output import OutputFormat, OutputManager, reset_output, set_output
from dualauth.provider.base import ProviderClient, ProviderListener
from dualauth.store.memory import MemoryStore


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager keeps references to sys.stdout/sys.stderr from when
    it was created; CliRunner swaps those streams per invocation.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class RecordingNavigator(Navigator):
    """Navigator that records opened URLs and reload requests."""

    def __init__(self, location: str = "https://app.test/current") -> None:
        self._location = location
        self.opened: list[str] = []
        self.reloads = 0

    @property
    def location(self) -> str:
        return self._location

    def open(self, url: str) -> None:
        self.opened.append(url)

    def reload(self) -> None:
        self.reloads += 1


class FakeProvider(ProviderClient):
    """In-memory provider client.

    Restores a session when both an access and a refresh token are
    supplied. Every refresh issues ``access-<n>`` and yields to the event
    loop once, so concurrent callers overlap.
    """

    def __init__(
        self,
        listener: ProviderListener,
        navigator: Navigator,
        *,
        client_id: str = "",
        fail_init: bool = False,
        fail_refresh: bool = False,
        roles: Optional[dict[str, list[str]]] = None,
    ) -> None:
        self.listener = listener
        self.navigator = navigator
        self.client_id = client_id
        self.fail_init = fail_init
        self.fail_refresh = fail_refresh
        self.roles = roles or {}
        self.init_calls: list[dict[str, Any]] = []
        self.refresh_calls: list[float] = []
        self.closed = False
        self._token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._id_token: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self._token is not None

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def refresh_token(self) -> Optional[str]:
        return self._refresh_token

    @property
    def id_token(self) -> Optional[str]:
        return self._id_token

    async def init(
        self,
        *,
        token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        id_token: Optional[str] = None,
        **overrides: Any,
    ) -> bool:
        self.init_calls.append(
            {"token": token, "refresh_token": refresh_token, "id_token": id_token, **overrides}
        )
        if self.fail_init:
            raise ProviderError("provider unreachable")
        if not (token and refresh_token):
            return False
        self._token, self._refresh_token, self._id_token = token, refresh_token, id_token
        await self.listener.on_auth_success()
        return True

    async def update_token(self, min_validity: float) -> bool:
        self.refresh_calls.append(min_validity)
        await asyncio.sleep(0)
        if self.fail_refresh:
            raise ProviderError("refresh rejected")
        self._token = f"access-{len(self.refresh_calls)}"
        await self.listener.on_auth_refresh_success()
        return True

    def has_resource_role(self, role: str, resource: Optional[str]) -> bool:
        return role in self.roles.get(resource or self.client_id, [])

    def create_login_url(self, *, redirect_uri: str, idp_hint: Optional[str] = None) -> str:
        url = f"https://sso.test/login?redirect_uri={redirect_uri}"
        return f"{url}&kc_idp_hint={idp_hint}" if idp_hint else url

    def create_logout_url(self, *, redirect_uri: str) -> str:
        return f"https://sso.test/logout?redirect_uri={redirect_uri}"

    async def login(self, *, redirect_uri: str, idp_hint: Optional[str] = None) -> None:
        self.navigator.open(self.create_login_url(redirect_uri=redirect_uri, idp_hint=idp_hint))

    async def logout(self, *, redirect_uri: str) -> None:
        self._token = self._refresh_token = self._id_token = None
        self.navigator.open(self.create_logout_url(redirect_uri=redirect_uri))

    async def aclose(self) -> None:
        self.closed = True


class FakeProviderFactory:
    """Provider factory that builds :class:`FakeProvider` instances and keeps them."""

    def __init__(self, **provider_kwargs: Any) -> None:
        self.provider_kwargs = provider_kwargs
        self.instances: list[FakeProvider] = []

    def __call__(
        self, options: AuthOptions, listener: ProviderListener, navigator: Navigator
    ) -> FakeProvider:
        provider = FakeProvider(
            listener, navigator, client_id=options.app_client_id or "", **self.provider_kwargs
        )
        self.instances.append(provider)
        return provider

    @property
    def last(self) -> FakeProvider:
        return self.instances[-1]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def navigator() -> RecordingNavigator:
    return RecordingNavigator()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def auth_context(memory_store: MemoryStore, navigator: RecordingNavigator) -> AuthContext:
    """An AuthContext over a fresh memory store and a recording navigator."""
    return AuthContext(store=memory_store, navigator=navigator)


@pytest.fixture
def provider_factory() -> FakeProviderFactory:
    return FakeProviderFactory()


@pytest.fixture
def delegated_options() -> AuthOptions:
    """Options with the delegated mode configured and guest mode disabled."""
    return AuthOptions(
        auth_url="https://sso.test",
        realm="acme",
        app_client_id="app1",
        api_client_id="api1",
    )


@pytest.fixture
def dual_options(delegated_options: AuthOptions) -> AuthOptions:
    """Options with both identity modes configured."""
    return delegated_options.model_copy(update={"guest_client_id": "app1"})


@pytest.fixture
def persisted_tokens() -> dict[str, str]:
    """Store entries of a previously established delegated session for ``app1``."""
    return {
        "app1-accessToken": "stored-access",
        "app1-refreshToken": "stored-refresh",
        "app1-idToken": "stored-id",
    }


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME and XDG_DATA_HOME into tmp_path, clears every
    DUALAUTH_* variable and changes the working directory to tmp_path.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("dualauth.config._is_xdg_platform", lambda: True)

    for var in [
        "DUALAUTH_AUTH_URL",
        "DUALAUTH_REALM",
        "DUALAUTH_APP_CLIENT_ID",
        "DUALAUTH_API_CLIENT_ID",
        "DUALAUTH_GUEST_CLIENT_ID",
        "DUALAUTH_GUEST_ROLES",
        "DUALAUTH_REDIRECT_URI",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet PLAIN-format OutputManager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()

