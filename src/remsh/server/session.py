"""Server side of one connected session.

The handler greets the client, then reads one command line per turn
and answers it until the client asks to leave or goes away::

    AWAIT_COMMAND --empty--------> AWAIT_COMMAND   (error line + marker)
    AWAIT_COMMAND --exit/salir---> SEND_FAREWELL -> TERMINATED
    AWAIT_COMMAND --command------> EXECUTE -> STREAM_RESPONSE -> AWAIT_COMMAND
    AWAIT_COMMAND --EOF/error----> TERMINATED
"""

from __future__ import annotations

import asyncio
import logging

from remsh.domain.models import Command, CommandKind, PeerInfo, SessionState, SessionSummary
from remsh.protocol import (
    EMPTY_COMMAND_MESSAGE,
    FAREWELL_MESSAGE,
    INTERNAL_ERROR_MESSAGE,
    MARKER,
    build_greeting,
    classify_command,
    not_found_message,
)
from remsh.server.runner import ProcessRunner, ProgramNotFoundError, RunnerError
from remsh.server.streamer import ResponseStreamer, StreamError
from remsh.server.tokenizer import TokenizeError, tokenize

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_BUFFER_SIZE = 256


class SessionHandler:
    """Owns one accepted connection for the lifetime of the session.

    Commands run one at a time: each child is drained and reaped before
    the next line is read. The connection is closed when :meth:`run`
    returns, whatever the reason.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        peer: PeerInfo,
        runner: ProcessRunner | None = None,
        streamer: ResponseStreamer | None = None,
        command_buffer_size: int = DEFAULT_COMMAND_BUFFER_SIZE,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._runner = runner or ProcessRunner()
        self._streamer = streamer or ResponseStreamer()
        self._command_buffer_size = command_buffer_size
        self._summary = SessionSummary(peer=peer)

    @property
    def summary(self) -> SessionSummary:
        return self._summary

    @property
    def state(self) -> SessionState:
        return self._summary.state

    async def run(self) -> SessionSummary:
        """Serve the connection until exit, disconnect or error."""
        peer = self._summary.peer
        try:
            if await self._send(build_greeting(peer)):
                while self.state is not SessionState.TERMINATED:
                    await self._serve_turn()
        except asyncio.CancelledError:
            self._end("shutdown")
            raise
        finally:
            await self._close()
            logger.info(
                "Session with %s ended (%s): %d commands, %d bytes sent",
                peer.display_name,
                self._summary.ended_by,
                self._summary.commands_executed,
                self._summary.bytes_sent,
            )
        return self._summary

    async def _serve_turn(self) -> None:
        self._summary.state = SessionState.AWAIT_COMMAND
        try:
            data = await self._reader.read(self._command_buffer_size)
        except OSError as e:
            logger.warning("Read from %s failed: %s", self._summary.peer.display_name, e)
            self._end("read_error")
            return
        if not data:
            logger.info("Client %s disconnected", self._summary.peer.display_name)
            self._end("peer_closed")
            return

        command = classify_command(data)
        logger.info("Command received: %r", command.text)

        if command.kind is CommandKind.EMPTY:
            await self._send(EMPTY_COMMAND_MESSAGE.encode("utf-8") + MARKER)
        elif command.kind is CommandKind.EXIT:
            self._summary.state = SessionState.SEND_FAREWELL
            await self._send(FAREWELL_MESSAGE.encode("utf-8"))
            logger.info("Client requested disconnect")
            self._end("exit")
        else:
            await self._execute(command)

    async def _execute(self, command: Command) -> None:
        self._summary.state = SessionState.EXECUTE
        try:
            argv = tokenize(command.text)
            handle = await self._runner.spawn(argv)
        except ProgramNotFoundError as e:
            logger.warning("%s", e)
            await self._send(not_found_message(e.program).encode("utf-8") + MARKER)
            return
        except (TokenizeError, RunnerError) as e:
            logger.error("Cannot run %r: %s", command.text, e)
            await self._send(INTERNAL_ERROR_MESSAGE.encode("utf-8") + MARKER)
            return

        self._summary.state = SessionState.STREAM_RESPONSE
        try:
            sent = await self._streamer.stream(handle, self._writer)
        except StreamError as e:
            self._summary.bytes_sent += e.bytes_sent
            handle.kill()
            self._end("write_error")
        except asyncio.CancelledError:
            handle.kill()
            raise
        else:
            self._summary.bytes_sent += sent
            self._summary.commands_executed += 1
            logger.info("Response sent (%d bytes)", sent)
        finally:
            await handle.wait()

    async def _send(self, data: bytes) -> bool:
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as e:
            logger.warning("Write to %s failed: %s", self._summary.peer.display_name, e)
            self._end("write_error")
            return False
        return True

    def _end(self, reason: str) -> None:
        if self._summary.ended_by is None:
            self._summary.ended_by = reason
        self._summary.state = SessionState.TERMINATED

    async def _close(self) -> None:
        self._summary.state = SessionState.TERMINATED
        if self._writer.is_closing():
            return
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError:
            pass
