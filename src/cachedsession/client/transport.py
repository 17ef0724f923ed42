"""Network transport boundary for :class:`~cachedsession.client.session.CachedSession`.

The engine only depends on the small :class:`Transport` protocol: given
``(method, url, headers, body)`` return a
:class:`~cachedsession.models.TransportResponse` or raise
:class:`~cachedsession.exceptions.TransportError`.

:class:`HttpxTransport` is the default implementation, wrapping a blocking
:class:`httpx.Client`.  Timeouts, redirects and TLS verification are the
transport's business; the engine imposes none of its own and never retries.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from cachedsession.exceptions import TransportError
from cachedsession.models import TransportResponse

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Anything that can perform one blocking HTTP exchange."""

    def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Optional[str] = None,
    ) -> TransportResponse:
        ...

    def close(self) -> None:
        ...


class HttpxTransport:
    """:class:`Transport` backed by :class:`httpx.Client`.

    Args:
        client: Pre-built client to use (e.g. one with an
            :class:`httpx.MockTransport`).  When ``None`` a client is created
            from *timeout* and *verify_ssl* and owned by this transport.
        timeout: Request timeout in seconds.
        verify_ssl: Verify TLS certificates.

    Example::

        transport = HttpxTransport(timeout=10)
        resp = transport.send("GET", "https://httpbin.org/get", {})
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=timeout,
            verify=verify_ssl,
            follow_redirects=True,
        )

    def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Optional[str] = None,
    ) -> TransportResponse:
        """Perform the request.

        Raises:
            TransportError: On connection, timeout, or protocol failures, and for
                URLs httpx cannot parse.
        """
        try:
            response = self._client.request(method, url, headers=headers, content=body)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc
        finally:
            # The session's CookieJar is the only cookie store; keep httpx's empty.
            self._client.cookies.clear()

        logger.debug("%s %s -> %d", method, url, response.status_code)
        return TransportResponse(
            status_code=response.status_code,
            body=response.text,
            headers=list(response.headers.multi_items()),
        )

    def close(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpxTransport:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
