"""Cookie commands -- view and edit the persisted cookie jar.

Provides the ``cachedsession cookies`` sub-command group.  Cookies set here
are sent with every subsequent request made through the same database.
"""

from __future__ import annotations

import typer

from cachedsession.commands import open_session
from cachedsession.output import info, print_table, success


cookies_app = typer.Typer(no_args_is_help=True)


@cookies_app.command("list")
def cookies_list(ctx: typer.Context) -> None:
    """List the cookies currently stored for this database."""
    with open_session(ctx) as session:
        items = sorted(session.cookie_items())
    if not items:
        info("No cookies stored.")
        return
    print_table(["Name", "Value"], [[name, value] for name, value in items], title="Cookies")


@cookies_app.command("set")
def cookies_set(
    ctx: typer.Context,
    name: str = typer.Argument(help="Cookie name."),
    value: str = typer.Argument(help="Cookie value."),
) -> None:
    """Store a cookie so it is sent with future requests.

    Example::

        cachedsession cookies set session_id abc123
    """
    with open_session(ctx) as session:
        session.set_cookie(name, value)
    success(f"Set cookie {name}.")


@cookies_app.command("clear")
def cookies_clear(ctx: typer.Context) -> None:
    """Delete every stored cookie."""
    with open_session(ctx) as session:
        session.clear_cookies()
    success("Cookies cleared.")
