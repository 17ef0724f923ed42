"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~cachedsession.exceptions.CachedSessionError` subclass.
Shell wrappers can inspect the exit code of the ``cachedsession`` command to
determine the failure class without parsing stderr.

Example::

    $ cachedsession get https://unreachable.invalid/
    $ echo $?
    6   # EXIT_TRANSPORT_ERROR -- the request never produced a response
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_TRANSPORT_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_STORE_ERROR = 8
"""The persisted cache database could not be opened, read, or written."""
