"""Forward a child's output to the connection, then the marker."""

from __future__ import annotations

import asyncio
import logging

from remsh.protocol import MARKER, silent_command_message
from remsh.server.runner import ProcessHandle

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 4096


class StreamError(Exception):
    """Raised when the response cannot be written to the connection."""

    def __init__(self, message: str, bytes_sent: int = 0) -> None:
        super().__init__(message)
        self.bytes_sent = bytes_sent


class ResponseStreamer:
    """Drains a :class:`ProcessHandle` into a stream writer.

    Each chunk read from the pipe is written verbatim. Once the pipe
    reports end of data, or reading it fails, the marker follows as a
    separate send. The marker is attempted even when forwarding broke
    off, so the peer is never left waiting on a frame that will not end.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        report_silent_commands: bool = False,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._chunk_size = chunk_size
        self._report_silent_commands = report_silent_commands

    async def stream(self, handle: ProcessHandle, writer: asyncio.StreamWriter) -> int:
        """Forward all output of ``handle`` and terminate the frame.

        Returns:
            Payload bytes forwarded, not counting the marker.

        Raises:
            StreamError: If writing to the connection failed. The marker
                has already been attempted when this is raised.
        """
        total = 0
        write_error: Exception | None = None

        while True:
            try:
                chunk = await handle.read(self._chunk_size)
            except OSError as e:
                logger.warning("Reading output of %s failed: %s", handle.program, e)
                handle.kill()
                break
            if not chunk:
                break
            try:
                writer.write(chunk)
                await writer.drain()
            except OSError as e:
                logger.warning("Sending output of %s failed after %d bytes: %s", handle.program, total, e)
                write_error = e
                break
            total += len(chunk)
            logger.debug("Forwarded %d bytes from %s", len(chunk), handle.program)

        if write_error is None and total == 0 and self._report_silent_commands:
            returncode = await handle.wait()
            notice = silent_command_message(" ".join(handle.args), returncode)
            try:
                writer.write(notice.encode("utf-8"))
                await writer.drain()
            except OSError as e:
                write_error = e

        marker_sent = await send_marker(writer)

        if write_error is not None:
            raise StreamError(f"Connection lost while streaming: {write_error}", bytes_sent=total) from write_error
        if not marker_sent:
            raise StreamError("Connection lost before the end-of-output marker", bytes_sent=total)
        return total


async def send_marker(writer: asyncio.StreamWriter) -> bool:
    """Write the end-of-output marker; returns False if the send failed."""
    try:
        writer.write(MARKER)
        await writer.drain()
    except OSError as e:
        logger.warning("Could not send end-of-output marker: %s", e)
        return False
    return True
