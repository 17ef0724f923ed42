"""Shared test fixtures for cachedsession.

Provides a controllable clock, an ``httpx.MockTransport``-backed transport
that records every request it serves, isolated config directories, and
output-state cleanup.  These fixtures are discovered automatically by pytest.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

import httpx
import pytest

from cachedsession.client import HttpxTransport
from cachedsession.output import reset_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time; CliRunner swaps those streams, so a stale manager would
    write to closed files.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def _restore_library_logger() -> None:
    """Undo the handler/level/propagate changes the CLI callback makes."""
    logger = logging.getLogger("cachedsession")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced epoch clock, callable like :func:`time.time`."""

    def __init__(self, start: float = 1_700_000_000) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class RecordingHandler:
    """``httpx.MockTransport`` handler that records requests.

    By default answers ``200`` with a body naming the request count, so that
    a fresh fetch and a cached body can be told apart.  Assign
    :attr:`responder` to customise the reply, or :attr:`error` to make the
    next requests fail at the network level.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.error: Optional[Exception] = None
        self.responder: Optional[Callable[[httpx.Request], httpx.Response]] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.responder is not None:
            return self.responder(request)
        return httpx.Response(200, text=f"response-{len(self.requests)}")

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def transport(handler: RecordingHandler) -> HttpxTransport:
    """An :class:`HttpxTransport` whose client never touches the network."""
    client = httpx.Client(transport=httpx.MockTransport(handler))
    yield HttpxTransport(client=client)
    client.close()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "cache.db"


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at subdirectories of ``tmp_path``, clears
    every ``CACHEDSESSION_*`` environment variable, and changes the working
    directory to ``tmp_path``.
    """
    monkeypatch.setattr("cachedsession.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "CACHEDSESSION_DB",
        "CACHEDSESSION_EXPIRE_AFTER",
        "CACHEDSESSION_STALE_IF_ERROR",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path
