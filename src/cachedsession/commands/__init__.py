"""Built-in CLI sub-commands for cachedsession.

This package groups the Typer sub-command modules that form the CLI's
command tree:

* :mod:`~cachedsession.commands.cache` -- fetch through the cache and
  inspect or prune stored entries.
* :mod:`~cachedsession.commands.cookies` -- view and edit the persisted
  cookie jar.
* :mod:`~cachedsession.commands.config` -- view and modify user settings.

Each command opens a :class:`~cachedsession.client.LockedSession` through
:func:`open_session`, honouring the ``--db`` flag stored in ``ctx.obj``.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

import typer

from cachedsession.client import HttpxTransport, LockedSession


@contextmanager
def open_session(ctx: Optional[typer.Context]) -> Iterator[LockedSession]:
    """Open a :class:`LockedSession` from the resolved configuration.

    The session and its transport are closed when the ``with`` block exits.

    Raises:
        ConfigError: If the configuration cannot be resolved.
        StoreError: If the database cannot be opened.
    """
    from cachedsession.config import resolve_config
    from cachedsession.output import debug

    cli_db = None
    if ctx is not None and ctx.obj:
        cli_db = ctx.obj.get("db_path")
    config = resolve_config(cli_db_path=cli_db)
    debug(f"Using cache database: {config.db_path}")

    transport = HttpxTransport(timeout=config.timeout, verify_ssl=config.verify_ssl)
    with transport, LockedSession(
        config.db_path or "cache.db",
        settings=config.to_settings(),
        transport=transport,
    ) as session:
        yield session
