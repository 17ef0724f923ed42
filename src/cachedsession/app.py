"""Typer application and CLI entry point for cachedsession.

This module defines the top-level Typer application and registers the
built-in commands (``get``, ``stats``, ``urls``, ``entry``, ``search``,
``clear``, ``clear-expired``) and sub-groups (``cookies``, ``config``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
Unhandled exceptions are written to a crash log under the data directory.

See Also:
    :mod:`cachedsession.config`: Configuration resolution.
    :mod:`cachedsession.output`: Output formatting initialised in
    :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from cachedsession import __version__
from cachedsession.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="cachedsession",
    help="Cache-aside HTTP client with a persistent SQLite response cache.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

_LIBRARY_LOGGER = "cachedsession"

# ------------------------------------------------------------------ #
# Built-in commands
# ------------------------------------------------------------------ #

from cachedsession.commands import cache  # noqa: E402
from cachedsession.commands.config import config_app  # noqa: E402
from cachedsession.commands.cookies import cookies_app  # noqa: E402

cache.register(app)
app.add_typer(cookies_app, name="cookies", help="Cookie jar management.")
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"cachedsession {__version__}")
        raise typer.Exit()


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
    db_path: Optional[str] = typer.Option(
        None, "--db", help="Cache database path (overrides config and env)."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~cachedsession.output.OutputManager`
    from CLI flags, routes library logging to stderr when ``--verbose`` is
    set, and stores shared options in ``ctx.obj``.
    """
    from cachedsession.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(
        format=fmt,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)
    _configure_logging(output.log_handler(), verbose)

    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path
    ctx.obj["verbose"] = verbose


def _configure_logging(handler: logging.Handler, verbose: bool) -> None:
    """Send ``cachedsession.*`` log records to *handler*.

    Warnings are always shown; debug records only with ``--verbose``.
    """
    logger = logging.getLogger(_LIBRARY_LOGGER)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from cachedsession.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``cachedsession`` console script.

    Unhandled :class:`~cachedsession.exceptions.CachedSessionError`
    instances cause a clean exit with the error's ``exit_code``. All other
    exceptions produce a crash log and a generic failure exit.

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
        from cachedsession.exceptions import CachedSessionError
        from cachedsession.output import error

        if isinstance(exc, CachedSessionError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
