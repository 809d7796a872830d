"""Listening side of the remsh server.

:class:`CommandServer` binds the listening socket, hands each accepted
connection to a fresh :class:`SessionHandler` and keeps going after a
session ends. Sessions are served one at a time unless ``sequential``
is turned off. Shutdown is an explicit call to :meth:`CommandServer.stop`,
which the CLI wires to SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import logging
import socket

from remsh.config.settings import ServerConfig
from remsh.domain.models import PeerInfo
from remsh.server.runner import ProcessRunner
from remsh.server.session import SessionHandler
from remsh.server.streamer import ResponseStreamer

logger = logging.getLogger(__name__)


class ServerError(Exception):
    """Raised when the listening socket cannot be set up."""


class CommandServer:
    """Accepts connections and runs a session on each.

    Example usage::

        server = CommandServer(ServerConfig(port=8080))
        await server.start()
        await server.serve_forever()   # until server.stop()
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        runner: ProcessRunner | None = None,
        streamer: ResponseStreamer | None = None,
    ) -> None:
        self._config = config or ServerConfig()
        self._runner = runner or ProcessRunner(timeout=self._config.command_timeout)
        self._streamer = streamer or ResponseStreamer(
            chunk_size=self._config.chunk_size,
            report_silent_commands=self._config.report_silent_commands,
        )
        self._server: asyncio.Server | None = None
        self._shutdown = asyncio.Event()
        self._session_lock = asyncio.Lock() if self._config.sequential else None
        self._connections: set[asyncio.Task] = set()
        self._sessions_served = 0

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    @property
    def sessions_served(self) -> int:
        return self._sessions_served

    @property
    def port(self) -> int:
        """The bound port, useful when configured with port 0."""
        if self._server is None or not self._server.sockets:
            raise ServerError("Server is not listening")
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        """Bind and listen. Failure here is fatal for the server."""
        try:
            self._server = await asyncio.start_server(
                self._handle_connection,
                host=self._config.host,
                port=self._config.port,
                backlog=self._config.backlog,
                reuse_address=True,
            )
        except OSError as e:
            raise ServerError(
                f"Cannot listen on {self._config.host}:{self._config.port}: {e}"
            ) from e
        logger.info("Listening on %s:%d", self._config.host, self.port)

    async def serve_forever(self) -> None:
        """Serve until :meth:`stop` is called, then close everything."""
        if self._server is None:
            await self.start()
        try:
            await self._shutdown.wait()
        finally:
            await self.close()

    def stop(self) -> None:
        """Request shutdown; :meth:`serve_forever` returns once it is done."""
        logger.info("Shutting down server")
        self._shutdown.set()

    async def close(self) -> None:
        """Stop listening and end every open session."""
        if self._server is None:
            return
        server, self._server = self._server, None
        server.close()
        for task in list(self._connections):
            task.cancel()
        if self._connections:
            await asyncio.gather(*self._connections, return_exceptions=True)
        await server.wait_closed()
        logger.info("Server closed after %d sessions", self._sessions_served)

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)
        try:
            if self._session_lock is not None:
                async with self._session_lock:
                    await self._run_session(reader, writer)
            else:
                await self._run_session(reader, writer)
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Session failed unexpectedly")
        finally:
            if not writer.is_closing():
                writer.close()
            if task is not None:
                self._connections.discard(task)

    async def _run_session(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        peer = await resolve_peer(writer, self._config.resolve_hostnames)
        logger.info(
            "%s - Client connected from %s (%s)",
            peer.connected_at.strftime("%d/%m/%Y %H:%M:%S"),
            peer.display_name,
            peer.address,
        )
        handler = SessionHandler(
            reader,
            writer,
            peer,
            runner=self._runner,
            streamer=self._streamer,
            command_buffer_size=self._config.command_buffer_size,
        )
        self._sessions_served += 1
        await handler.run()


async def resolve_peer(writer: asyncio.StreamWriter, resolve_hostnames: bool = True) -> PeerInfo:
    """Describe the remote end, with a reverse-DNS name when one exists."""
    peername = writer.get_extra_info("peername") or ("unknown", 0)
    address, port = peername[0], peername[1]
    hostname = None
    if resolve_hostnames and address != "unknown":
        loop = asyncio.get_running_loop()
        try:
            hostname, _, _ = await loop.run_in_executor(None, socket.gethostbyaddr, address)
        except OSError as e:
            logger.debug("Reverse lookup of %s failed: %s", address, e)
    return PeerInfo(address=address, port=port, hostname=hostname)
