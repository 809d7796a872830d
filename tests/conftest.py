"""Shared test fixtures for the remsh test suite.

Provides a recording stand-in for ``asyncio.StreamWriter``, a server
configuration bound to an ephemeral local port, and a running
:class:`CommandServer`.
"""

from __future__ import annotations

from datetime import datetime
from typing import AsyncIterator

import pytest
import pytest_asyncio

from remsh.config.settings import ServerConfig
from remsh.domain.models import PeerInfo
from remsh.server.listener import CommandServer


# ---------------------------------------------------------------------------
# Stream Fixtures
# ---------------------------------------------------------------------------


class RecordingWriter:
    """Collects everything written, optionally failing after N writes."""

    def __init__(self, fail_after: int | None = None) -> None:
        self.writes: list[bytes] = []
        self.closed = False
        self._fail_after = fail_after

    @property
    def data(self) -> bytes:
        return b"".join(self.writes)

    def write(self, data: bytes) -> None:
        if self._fail_after is not None and len(self.writes) >= self._fail_after:
            raise ConnectionResetError("peer reset")
        self.writes.append(bytes(data))

    async def drain(self) -> None:
        return None

    def is_closing(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return None

    def get_extra_info(self, name: str, default: object = None) -> object:
        if name == "peername":
            return ("127.0.0.1", 50000)
        return default


@pytest.fixture
def recording_writer() -> RecordingWriter:
    return RecordingWriter()


@pytest.fixture
def writer_factory() -> type[RecordingWriter]:
    """The RecordingWriter class, for tests that need a failing writer."""
    return RecordingWriter


@pytest.fixture
def sample_peer() -> PeerInfo:
    return PeerInfo(
        address="127.0.0.1",
        port=50000,
        hostname=None,
        connected_at=datetime(2025, 3, 7, 9, 5, 3),
    )


# ---------------------------------------------------------------------------
# Server Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def server_config() -> ServerConfig:
    """Local-only config on an ephemeral port, no reverse DNS."""
    return ServerConfig(host="127.0.0.1", port=0, resolve_hostnames=False)


@pytest_asyncio.fixture
async def server(server_config: ServerConfig) -> AsyncIterator[CommandServer]:
    """A listening CommandServer, closed after the test."""
    srv = CommandServer(server_config)
    await srv.start()
    try:
        yield srv
    finally:
        await srv.close()
