"""Interactive client for a remsh server.

The client reads the greeting once, then sends one command line per
turn and prints the response until the end-of-output marker arrives.
The marker may be split across reads; :class:`MarkerScanner` takes
care of reassembling it.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from typing import BinaryIO, Callable

from remsh.domain.models import CommandKind
from remsh.protocol import MarkerScanner, classify_command

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 4096


class ClientError(Exception):
    """Raised when the client cannot talk to the server."""

    def __init__(self, message: str, host: str = "", port: int = 0) -> None:
        super().__init__(message)
        self.host = host
        self.port = port


class ConnectionClosedError(ClientError):
    """Raised when the server closes the connection in the middle of a turn."""


class ClientSession:
    """One connection to a remsh server.

    Example usage::

        async with ClientSession("localhost", 8080) as client:
            output = await client.execute("echo hello")   # b"hello\\n"
            await client.execute("exit")
    """

    def __init__(
        self,
        host: str,
        port: int,
        read_size: int = DEFAULT_READ_SIZE,
        prompt: str = "ssh> ",
        input_func: Callable[[str], str] = input,
        output: BinaryIO | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._read_size = read_size
        self._prompt = prompt
        self._input_func = input_func
        self._output = output
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._greeting = b""

    @property
    def is_connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    @property
    def greeting(self) -> bytes:
        return self._greeting

    async def connect(self) -> bytes:
        """Connect and return the server's greeting, as read in one go."""
        try:
            self._reader, self._writer = await asyncio.open_connection(self._host, self._port)
        except OSError as e:
            raise ClientError(
                f"Cannot connect to {self._host}:{self._port}: {e}",
                host=self._host, port=self._port,
            ) from e
        logger.info("Connected to %s:%d", self._host, self._port)
        self._greeting = await self._reader.read(self._read_size)
        self._display(self._greeting)
        return self._greeting

    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        if self._writer is None:
            return
        writer, self._writer = self._writer, None
        self._reader = None
        if not writer.is_closing():
            writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        logger.info("Disconnected from %s:%d", self._host, self._port)

    async def execute(self, line: str) -> bytes:
        """Run one turn and return what the server answered.

        A bare newline is not sent. For ``exit``/``salir`` the farewell is
        returned and the connection closed; otherwise the payload that
        preceded the marker.

        Raises:
            ClientError: If not connected.
            ConnectionClosedError: If the server hung up before the marker.
        """
        if self._reader is None or self._writer is None:
            raise ClientError("Not connected", host=self._host, port=self._port)

        text = line.rstrip("\r\n")
        if not text:
            return b""
        command = classify_command(text)

        try:
            self._writer.write(text.encode("utf-8"))
            await self._writer.drain()
        except OSError as e:
            await self.close()
            raise ConnectionClosedError(f"Sending command failed: {e}", host=self._host, port=self._port) from e
        logger.debug("Sent command %r", text)

        if command.kind is CommandKind.EXIT:
            farewell = await self._reader.read(self._read_size)
            self._display(farewell)
            await self.close()
            return farewell

        return await self._drain_response()

    async def _drain_response(self) -> bytes:
        assert self._reader is not None
        scanner = MarkerScanner()
        received: list[bytes] = []
        while not scanner.found:
            chunk = await self._reader.read(self._read_size)
            if not chunk:
                leftover = scanner.flush()
                self._display(leftover)
                await self.close()
                raise ConnectionClosedError(
                    "Server closed the connection", host=self._host, port=self._port,
                )
            payload = scanner.feed(chunk)
            self._display(payload)
            received.append(payload)
        response = b"".join(received)
        logger.debug("Response complete (%d bytes)", len(response))
        return response

    async def run(self) -> None:
        """Interactive loop: prompt, send, print, until exit or EOF."""
        if not self.is_connected:
            await self.connect()
        try:
            while self.is_connected:
                try:
                    line = await self._read_line()
                except EOFError:
                    self._display(b"\nEOF detected, disconnecting...\n")
                    line = "exit"
                try:
                    await self.execute(line)
                except ConnectionClosedError as e:
                    self._display(f"{e}\n".encode("utf-8"))
                    break
        except asyncio.CancelledError:
            await self._send_exit_quietly()
            raise
        finally:
            await self.close()

    async def _read_line(self) -> str:
        """Prompt on a daemon thread so an interrupt never waits on stdin."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[str] = loop.create_future()

        def _set_result(value: str) -> None:
            if not future.done():
                future.set_result(value)

        def _set_exception(exc: BaseException) -> None:
            if not future.done():
                future.set_exception(exc)

        def _worker() -> None:
            try:
                value = self._input_func(self._prompt)
            except BaseException as e:
                loop.call_soon_threadsafe(_set_exception, e)
            else:
                loop.call_soon_threadsafe(_set_result, value)

        threading.Thread(target=_worker, name="remsh-input", daemon=True).start()
        return await future

    async def _send_exit_quietly(self) -> None:
        if not self.is_connected:
            return
        assert self._writer is not None
        try:
            self._writer.write(b"exit")
            await self._writer.drain()
        except OSError as e:
            logger.debug("Could not send exit on interrupt: %s", e)

    def _display(self, data: bytes) -> None:
        if not data:
            return
        out = self._output if self._output is not None else sys.stdout.buffer
        out.write(data)
        out.flush()

    async def __aenter__(self) -> ClientSession:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.close()
