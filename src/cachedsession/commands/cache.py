"""Cache commands -- fetch through the cache and inspect stored entries.

These commands are registered directly on the root application:

* ``get`` -- perform a cached GET and print the body.
* ``stats`` -- show hit/miss counters and the number of entries.
* ``urls`` -- list every distinct cached URL.
* ``entry`` -- show the metadata of one entry.
* ``search`` -- wildcard search over cached URLs (``%`` and ``_``).
* ``clear`` / ``clear-expired`` -- prune the cache.
"""

from __future__ import annotations

from datetime import datetime, timezone

import typer

from cachedsession.commands import open_session
from cachedsession.exceptions import InvalidUsageError
from cachedsession.output import format_response, info, print_table, success, warning


def _parse_params(raw: list[str]) -> dict[str, str]:
    """Turn ``["a=1", "b=x"]`` into a dict, rejecting items without ``=``."""
    params: dict[str, str] = {}
    for item in raw:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise InvalidUsageError(f"Expected --param KEY=VALUE, got: {item!r}")
        params[key] = value
    return params


def _format_time(epoch: int) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat()


def get_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Absolute URL to fetch."),
    param: list[str] = typer.Option(
        [], "--param", "-P", help="Query parameter KEY=VALUE (repeatable)."
    ),
    no_cache: bool = typer.Option(
        False, "--no-cache", help="Bypass the cache for this request."
    ),
) -> None:
    """Fetch URL through the cache and print the response body.

    Example::

        cachedsession get https://httpbin.org/get -P user=test
        cachedsession get https://httpbin.org/get --no-cache
    """
    params = _parse_params(param)
    with open_session(ctx) as session:
        if no_cache:
            with session.caching_disabled():
                body = session.get(url, params=params)
        else:
            body = session.get(url, params=params)
    format_response(body)


def stats_command(ctx: typer.Context) -> None:
    """Show cumulative hits, misses, and the current number of entries."""
    with open_session(ctx) as session:
        stats = session.stats()
    format_response(stats.model_dump())


def urls_command(ctx: typer.Context) -> None:
    """List every distinct cached URL."""
    with open_session(ctx) as session:
        urls = session.list_cached_urls()
    if not urls:
        info("Cache is empty.")
        return
    print_table(["URL"], [[url] for url in urls], title="Cached URLs")


def entry_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Cached URL."),
    method: str = typer.Option("GET", "--method", "-m", help="HTTP method of the entry."),
    body: bool = typer.Option(False, "--body", help="Print the cached body instead."),
) -> None:
    """Show metadata for a single cached entry.

    Exits with code 4 when no entry exists for URL and METHOD.
    """
    with open_session(ctx) as session:
        entry = session.get_entry(url, method=method)
    if entry is None:
        warning(f"No cache entry for {method.upper()} {url}")
        raise typer.Exit(code=4)
    if body:
        format_response(entry.body)
        return
    print_table(
        ["Field", "Value"],
        [
            ["status_code", str(entry.status_code)],
            ["created_at", _format_time(entry.created_at)],
            ["expires_at", _format_time(entry.expires_at)],
            ["hit_count", str(entry.hit_count)],
            ["body_length", str(len(entry.body))],
        ],
        title=f"{method.upper()} {url}",
    )


def search_command(
    ctx: typer.Context,
    pattern: str = typer.Argument(help="URL pattern: % matches any run, _ one character."),
) -> None:
    """Search cached URLs with SQL LIKE wildcards.

    Example::

        cachedsession search "%httpbin.org/get%"
    """
    with open_session(ctx) as session:
        results = session.search(pattern)
    if not results:
        info(f"No cached URLs match {pattern!r}.")
        return
    print_table(
        ["URL", "Status"],
        [[r.url, str(r.status_code)] for r in results],
        title="Search results",
    )


def clear_command(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
) -> None:
    """Delete every cached entry and reset the counters."""
    if not yes:
        confirmed = typer.confirm("Delete all cached responses?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()
    with open_session(ctx) as session:
        session.clear_cache()
    success("Cache cleared.")


def clear_expired_command(ctx: typer.Context) -> None:
    """Delete expired entries and report how many were removed."""
    with open_session(ctx) as session:
        removed = session.clear_expired()
    success(f"Removed {removed} expired entr{'y' if removed == 1 else 'ies'}.")


def register(app: typer.Typer) -> None:
    """Attach the cache commands to the root *app*."""
    app.command("get")(get_command)
    app.command("stats")(stats_command)
    app.command("urls")(urls_command)
    app.command("entry")(entry_command)
    app.command("search")(search_command)
    app.command("clear")(clear_command)
    app.command("clear-expired")(clear_expired_command)
