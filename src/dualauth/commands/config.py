"""Config commands -- view and modify the user configuration.

Provides the ``dualauth config`` sub-command group. Settings are
:class:`~dualauth.models.AuthOptions` fields persisted in ``config.json``
under the dualauth config directory; ``show`` prints the effective values
after project config and ``DUALAUTH_*`` environment overrides are applied.
"""

from __future__ import annotations

import json
from typing import Any

import typer

from dualauth.output import error, info, print_record, print_value, success

config_app = typer.Typer(no_args_is_help=True)

# Fields that are not plain strings on the command line
_LIST_KEYS = {"guest_roles"}
_JSON_KEYS = {"init_options"}
_HIDDEN_KEYS = {"store"}


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration.

    Example::

        dualauth config show
        dualauth --json config show
    """
    from dualauth.config import get_config_path, resolve_options
    from dualauth.exceptions import ConfigError

    try:
        options = resolve_options()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    info(f"Config file: {get_config_path()}")
    print_record(options.model_dump(mode="json"), title="Configuration")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Option name, e.g. 'realm' or 'guest_roles'."),
    value: str = typer.Argument(help="Value to set; empty string unsets the option."),
) -> None:
    """Set an option in the user config.

    ``guest_roles`` takes a comma-separated list and ``init_options`` a
    JSON object. An empty *value* removes the option.

    Raises:
        typer.Exit: With code 2 for an unknown key or an invalid value.

    Example::

        dualauth config set auth_url https://sso.example.com
        dualauth config set guest_roles editor,viewer
    """
    from dualauth.config import load_options_data, save_options
    from dualauth.exceptions import ConfigError
    from dualauth.models import AuthOptions

    if key not in AuthOptions.model_fields or key in _HIDDEN_KEYS:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    try:
        data = load_options_data()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    coerced: Any
    if value == "":
        data.pop(key, None)
        coerced = None
    elif key in _LIST_KEYS:
        coerced = [item.strip() for item in value.split(",") if item.strip()]
    elif key in _JSON_KEYS:
        try:
            coerced = json.loads(value)
        except json.JSONDecodeError as exc:
            error(f"Expected a JSON object for {key}: {exc}")
            raise typer.Exit(code=2) from None
    else:
        coerced = value

    if coerced is not None:
        data[key] = coerced

    try:
        options = AuthOptions.model_validate(data)
    except ValueError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_options(options)
    if coerced is None:
        success(f"Unset {key}")
    else:
        success(f"Set {key} = {coerced}")


@config_app.command("path")
def config_path() -> None:
    """Print the location of the user config file."""
    from dualauth.config import get_config_path

    print_value("path", str(get_config_path()))
