"""Session commands -- inspect and drive the authentication state.

Every command resolves the effective :class:`~dualauth.models.AuthOptions`
(see :func:`~dualauth.config.resolve_options`), restores the session from
the persistent :class:`~dualauth.store.file.FileStore` and then performs
one action::

    dualauth status
    dualauth token                  # exit 3 when not authenticated
    dualauth has-role editor
    dualauth guest-login
    dualauth login --idp github
    dualauth logout

Tests may inject ``provider_factory`` and ``navigator`` through the Typer
context object.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer

from dualauth.auth.manager import AuthManager
from dualauth.context import AuthContext, WebBrowserNavigator
from dualauth.exceptions import AuthError, DualauthError
from dualauth.models import AuthOptions
from dualauth.output import error, info, print_record, print_value, success, suggest

T = TypeVar("T")

DEFAULT_REDIRECT_URI = "http://localhost/"


def _context_obj(ctx: typer.Context) -> dict[str, Any]:
    obj = ctx.find_root().obj
    return obj if isinstance(obj, dict) else {}


def build_manager(ctx: typer.Context) -> tuple[AuthManager, AuthOptions]:
    """Create an :class:`AuthManager` wired to the CLI's persistent store.

    Returns:
        The manager and the resolved options.
    """
    from dualauth.config import get_store_path, resolve_options
    from dualauth.store.file import FileStore

    obj = _context_obj(ctx)
    options = resolve_options()
    navigator = obj.get("navigator") or WebBrowserNavigator(
        location=options.redirect_uri or DEFAULT_REDIRECT_URI
    )
    context = AuthContext(store=FileStore(get_store_path()), navigator=navigator)
    return AuthManager(context, provider_factory=obj.get("provider_factory")), options


def _run(ctx: typer.Context, action: Callable[[AuthManager], Awaitable[T]]) -> T:
    """Initialise a manager, run *action* on it and map errors to exit codes.

    Raises:
        typer.Exit: With the error's exit code when a
            :class:`~dualauth.exceptions.DualauthError` is raised.
    """

    async def _session() -> T:
        auth, options = build_manager(ctx)
        try:
            await auth.init_once(options)
            return await action(auth)
        finally:
            await auth.aclose()

    try:
        return asyncio.run(_session())
    except DualauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def status_command(ctx: typer.Context) -> None:
    """Show the active identity mode.

    Example::

        dualauth status
        dualauth --json status
    """

    async def _status(auth: AuthManager) -> dict[str, Any]:
        return auth.status().model_dump(mode="json")

    print_record(_run(ctx, _status), title="Session")


def token_command(ctx: typer.Context) -> None:
    """Print the credential for API requests.

    Prints the access token in a delegated session and the guest id in
    guest mode. Exits with code 3 when there is no credential.
    """

    async def _token(auth: AuthManager) -> str:
        token = await auth.get_token()
        if not token:
            raise AuthError("Not authenticated")
        return token

    print_value("token", _run(ctx, _token))


def has_role_command(
    ctx: typer.Context,
    role: str = typer.Argument(help="Role name to check."),
    resource: Optional[str] = typer.Option(
        None, "--resource", "-r", help="API client id whose roles are checked."
    ),
) -> None:
    """Check a role. Exits 0 when granted, 3 otherwise."""

    async def _has_role(auth: AuthManager) -> bool:
        if not auth.has_role(role, resource):
            raise AuthError(f"Role '{role}' is not granted")
        return True

    print_value("granted", _run(ctx, _has_role))


def guest_login_command(ctx: typer.Context) -> None:
    """Create an anonymous guest identity."""

    async def _login(auth: AuthManager) -> str:
        await auth.login_guest()
        return auth.guest.guest_id

    guest_id = _run(ctx, _login)
    success("Guest identity created.")
    print_value("guest_id", guest_id)


def login_command(
    ctx: typer.Context,
    idp: Optional[str] = typer.Option(None, "--idp", help="Identity provider hint."),
    redirect_uri: Optional[str] = typer.Option(None, "--redirect-uri", help="Where to return after login."),
) -> None:
    """Open the identity provider's login page."""

    async def _login(auth: AuthManager) -> None:
        await auth.login(idp_hint=idp, redirect_uri=redirect_uri)

    _run(ctx, _login)
    info("Opened the login page.")


def logout_command(
    ctx: typer.Context,
    redirect_uri: Optional[str] = typer.Option(None, "--redirect-uri", help="Where to return after logout."),
) -> None:
    """End the active session (guest or delegated)."""

    async def _logout(auth: AuthManager) -> bool:
        was_guest = auth.is_guest
        await auth.logout(redirect_uri=redirect_uri)
        return was_guest

    was_guest = _run(ctx, _logout)
    success("Guest identity removed." if was_guest else "Logged out.")


def refresh_command(ctx: typer.Context) -> None:
    """Restore the delegated session again from the stored tokens."""

    async def _refresh(auth: AuthManager) -> bool:
        await auth.update()
        return auth.authenticated

    if not _run(ctx, _refresh):
        error("No session could be restored.")
        suggest("Run 'dualauth login' to sign in again.")
        raise typer.Exit(code=AuthError.exit_code)
    success("Session refreshed.")


def login_url_command(
    ctx: typer.Context,
    idp: Optional[str] = typer.Option(None, "--idp", help="Identity provider hint."),
    redirect_uri: Optional[str] = typer.Option(None, "--redirect-uri", help="Where to return after login."),
) -> None:
    """Print the login URL without opening it."""

    async def _url(auth: AuthManager) -> str:
        return auth.create_login_url(idp_hint=idp, redirect_uri=redirect_uri)

    print_value("url", _run(ctx, _url))


def logout_url_command(
    ctx: typer.Context,
    redirect_uri: Optional[str] = typer.Option(None, "--redirect-uri", help="Where to return after logout."),
) -> None:
    """Print the logout URL without opening it."""

    async def _url(auth: AuthManager) -> str:
        return auth.create_logout_url(redirect_uri=redirect_uri)

    print_value("url", _run(ctx, _url))


def register(app: typer.Typer) -> None:
    """Attach every session command to *app*."""
    app.command("status")(status_command)
    app.command("token")(token_command)
    app.command("has-role")(has_role_command)
    app.command("guest-login")(guest_login_command)
    app.command("login")(login_command)
    app.command("logout")(logout_command)
    app.command("refresh")(refresh_command)
    app.command("login-url")(login_url_command)
    app.command("logout-url")(logout_url_command)
