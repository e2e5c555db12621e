"""Typer application and CLI entry point for dualauth.

This module wires the root Typer application, registers the session
commands (``status``, ``token``, ``login``, ...) and the ``config`` group,
and configures output and logging from the global flags.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. :class:`~dualauth.exceptions.DualauthError` exits with
the error's code; any other exception is written to a crash log under the
data directory.

See Also:
    :mod:`dualauth.config`: Option resolution.
    :mod:`dualauth.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer
from rich.logging import RichHandler

from dualauth import __version__
from dualauth.commands import session
from dualauth.commands.config import config_app
from dualauth.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="dualauth",
    help="Manage guest and OpenID Connect sessions.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

session.register(app)
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"dualauth {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool, console: Any = None) -> None:
    """Route the ``dualauth`` loggers to a Rich handler on stderr.

    Args:
        verbose: Log at DEBUG instead of WARNING.
        console: Rich console to render into; a stderr console by default.
    """
    handler = RichHandler(console=console, show_time=False, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger = logging.getLogger("dualauth")
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~dualauth.output.OutputManager` and the
    log handler, and records ``verbose`` in ``ctx.obj``.
    """
    from dualauth.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    configure_logging(verbose, output.stderr_console)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback under ``<data_dir>/logs`` and return its path."""
    from dualauth.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``dualauth`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from dualauth.exceptions import DualauthError
        from dualauth.output import error

        if isinstance(exc, DualauthError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
