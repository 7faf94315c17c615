"""Shared fixtures for monitor tests."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest

from petition_monitor.analytics.models import HistoryRecord, Snapshot
from petition_monitor.storage.backends import SQLiteBackend
from petition_monitor.storage.store import VersionedStore

T0 = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def t0():
    """Fixed reference time."""
    return T0


@pytest.fixture
def make_record():
    """Build a bare HistoryRecord for a (time, count) point."""

    def _make(captured_at: datetime, count: int, goal: int = 1_000_000) -> HistoryRecord:
        snapshot = Snapshot(captured_at=captured_at, count=count, goal=goal)
        return HistoryRecord(
            snapshot=snapshot,
            progress_percent=snapshot.progress_percent,
            remaining=snapshot.remaining,
        )

    return _make


@pytest.fixture
def sqlite_backend(tmp_path):
    return SQLiteBackend(str(tmp_path / "history.db"))


@pytest.fixture
def store(sqlite_backend):
    return VersionedStore(sqlite_backend)


@pytest.fixture
def slow_http_server():
    """
    Start a local HTTP server that trickles a 60-byte body at 0.1s per byte.

    Usage: ``async with slow_http_server() as base_url: ...``
    """

    async def handle(reader, writer):
        await reader.readuntil(b"\r\n\r\n")
        writer.write(
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: application/json\r\n"
            b"Content-Length: 60\r\n\r\n"
        )
        try:
            for _ in range(60):
                writer.write(b" ")
                await writer.drain()
                await asyncio.sleep(0.1)
        except ConnectionError:
            pass
        finally:
            writer.close()

    @asynccontextmanager
    async def serve():
        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            yield f"http://127.0.0.1:{port}"
        finally:
            server.close()

    return serve
