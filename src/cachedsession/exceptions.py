"""Exception hierarchy for cachedsession.

All exceptions inherit from :class:`CachedSessionError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`cachedsession.exit_codes`.  The CLI entry point in
:func:`cachedsession.app.main` catches ``CachedSessionError`` and exits with
the appropriate code, while unexpected exceptions produce a crash log and
exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    CachedSessionError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- TransportError      (exit 6)
    +-- StoreError          (exit 8)
    +-- ConfigError         (exit 1)

Only :class:`TransportError` is ever recovered inside the library, and only
under the stale-if-error rule of
:meth:`~cachedsession.client.session.CachedSession.request`.
"""

from cachedsession.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_STORE_ERROR,
    EXIT_TRANSPORT_ERROR,
)


class CachedSessionError(Exception):
    """Base exception for all cachedsession errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`cachedsession.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(CachedSessionError):
    """Raised for invalid CLI arguments (e.g. a malformed ``--param``)."""

    exit_code = EXIT_INVALID_USAGE


class TransportError(CachedSessionError):
    """Raised when the transport cannot produce a response.

    Covers DNS failures, refused connections, timeouts and protocol errors.
    The original library exception is available as ``__cause__``.
    """

    exit_code = EXIT_TRANSPORT_ERROR


class StoreError(CachedSessionError):
    """Raised when the persisted store fails (I/O, locking, or schema errors).

    Never recovered by this library; the in-flight call is aborted.
    """

    exit_code = EXIT_STORE_ERROR


class ConfigError(CachedSessionError):
    """Raised for configuration problems (invalid JSON, bad env values)."""

    exit_code = EXIT_GENERIC_FAILURE
