"""Shared fixtures for the enrichment worker tests."""

from __future__ import annotations

import asyncio
import socket
import threading
import time
from collections.abc import AsyncIterator, Generator
from contextlib import closing
from pathlib import Path

import pytest
from aiohttp import web

from summons_enrichment.common.request_manager import AsyncRequestManager
from summons_enrichment.config import WorkerConfig
from summons_enrichment.store import SQLRecordStore
from tests.mock_server import HITS, create_app
from tests.utils import TEST_TABLE


# =============================================================================
# aiohttp test server fixtures
# =============================================================================


def find_free_port() -> int:
    """Find a free port on localhost.

    Returns:
        An available port number.
    """
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


class AioHttpTestServer:
    """Wrapper to run aiohttp server in a background thread."""

    def __init__(self, app: web.Application, port: int) -> None:
        self.app = app
        self.port = port
        self.host = "127.0.0.1"
        self._loop: asyncio.AbstractEventLoop | None = None
        self._runner: web.AppRunner | None = None
        self._thread: threading.Thread | None = None
        self._started = threading.Event()

    @property
    def url(self) -> str:
        """Get the base URL of the server."""
        return f"http://{self.host}:{self.port}"

    def hits(self, path: str) -> int:
        """Number of requests the server has seen for a path."""
        return self.app[HITS][path]

    def start(self) -> None:
        """Start the server in a background thread."""
        self._thread = threading.Thread(target=self._run_server, daemon=True)
        self._thread.start()
        self._started.wait(timeout=5.0)
        # Give the listener a moment to accept connections
        time.sleep(0.05)

    def _run_server(self) -> None:
        """Run the server in an asyncio event loop."""
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        async def start() -> None:
            self._runner = web.AppRunner(self.app)
            await self._runner.setup()
            site = web.TCPSite(self._runner, self.host, self.port)
            await site.start()

        self._loop.run_until_complete(start())
        self._started.set()
        self._loop.run_forever()

    def stop(self) -> None:
        """Stop the server and clean up resources."""
        if self._loop and self._runner:
            runner = self._runner
            future = asyncio.run_coroutine_threadsafe(
                runner.cleanup(), self._loop
            )
            future.result(timeout=2.0)

        if self._loop:
            self._loop.call_soon_threadsafe(self._loop.stop)

        if self._thread:
            self._thread.join(timeout=2.0)


@pytest.fixture
def evidence_server() -> Generator[AioHttpTestServer, None, None]:
    """Start an aiohttp server serving video pages, a PDF and error paths.

    Yields:
        AioHttpTestServer instance with the evidence app running.
    """
    app = create_app()
    port = find_free_port()
    server = AioHttpTestServer(app, port)
    server.start()
    yield server
    server.stop()


@pytest.fixture
def server_url(evidence_server: AioHttpTestServer) -> str:
    """Get the base URL of the evidence server."""
    return evidence_server.url


# =============================================================================
# Store, HTTP and config fixtures
# =============================================================================


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
async def store(db_path: Path) -> AsyncIterator[SQLRecordStore]:
    """Open a SQLRecordStore on a temporary database."""
    async with SQLRecordStore.open(db_path) as record_store:
        yield record_store


@pytest.fixture
async def request_manager() -> AsyncIterator[AsyncRequestManager]:
    """A request manager with a short timeout and no backoff delay."""
    async with AsyncRequestManager(
        timeout=5.0, base_delay=0.0, max_delay=0.0
    ) as manager:
        yield manager


@pytest.fixture
def worker_config(db_path: Path) -> WorkerConfig:
    """Worker settings pointing at the temporary database."""
    return WorkerConfig(
        summons_table=TEST_TABLE,
        database_path=db_path,
        request_timeout=5.0,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
    )
