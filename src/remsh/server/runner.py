"""Spawn a command with its merged output captured through a pipe.

The runner creates a pipe, starts the program with both stdout and
stderr attached to the pipe's write end, and hands back a
:class:`ProcessHandle` wrapping the read end. The program is executed
directly from its argument vector (``PATH`` lookup, no shell), with the
privileges of the server process: whatever a client sends is run as-is.
"""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess

logger = logging.getLogger(__name__)

# Errors from exec that mean "nothing runnable at that name".
_NOT_FOUND_ERRORS = (FileNotFoundError, PermissionError, NotADirectoryError)


class RunnerError(Exception):
    """Base class for failures to start a command."""


class PipeCreationError(RunnerError):
    """Raised when the output pipe cannot be created."""


class ProcessCreationError(RunnerError):
    """Raised when the child process cannot be created."""


class ProgramNotFoundError(RunnerError):
    """Raised when the program does not exist or cannot be executed."""

    def __init__(self, message: str, program: str = "") -> None:
        super().__init__(message)
        self.program = program


class ProcessHandle:
    """One spawned child and the read end of its output pipe.

    ``returncode`` stays ``None`` until :meth:`wait` has reaped the
    child. Callers drain the pipe with :meth:`read` first, then wait.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        reader: asyncio.StreamReader,
        transport: asyncio.ReadTransport,
        argv: list[str],
    ) -> None:
        self._process = process
        self._reader = reader
        self._transport = transport
        self._argv = list(argv)
        self._timer: asyncio.TimerHandle | None = None
        self._timed_out = False
        self.returncode: int | None = None

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def program(self) -> str:
        return self._argv[0]

    @property
    def args(self) -> list[str]:
        return list(self._argv)

    @property
    def timed_out(self) -> bool:
        return self._timed_out

    async def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes of output; ``b""`` means end of data."""
        return await self._reader.read(n)

    def kill_after(self, timeout: float) -> None:
        """Kill the child if it is still running after ``timeout`` seconds."""
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(timeout, self._expire)

    def _expire(self) -> None:
        self._timed_out = True
        logger.warning("Command %s (pid=%d) timed out, killing it", self.program, self.pid)
        self.kill()

    def kill(self) -> None:
        if self._process.returncode is None:
            try:
                self._process.kill()
            except ProcessLookupError:
                pass

    async def wait(self) -> int:
        """Reap the child, record its exit status and release the pipe."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.returncode = await self._process.wait()
        self.close()
        logger.debug("Reaped %s (pid=%d) with status %d", self.program, self.pid, self.returncode)
        return self.returncode

    def close(self) -> None:
        """Close the read end of the pipe. Safe to call more than once."""
        if not self._transport.is_closing():
            self._transport.close()


class ProcessRunner:
    """Starts commands as child processes with captured output.

    Example usage::

        runner = ProcessRunner()
        handle = await runner.spawn(["echo", "hello"])
        output = await handle.read(4096)
        await handle.wait()
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout

    async def spawn(self, argv: list[str]) -> ProcessHandle:
        """Start ``argv[0]`` with ``argv[1:]`` as its arguments.

        Raises:
            PipeCreationError: If the pipe cannot be created.
            ProgramNotFoundError: If the program is missing or not executable.
            ProcessCreationError: If the child cannot be created otherwise.
        """
        if not argv:
            raise ProcessCreationError("Empty argument vector")
        program = argv[0]

        try:
            read_fd, write_fd = os.pipe()
        except OSError as e:
            raise PipeCreationError(f"Cannot create output pipe: {e}") from e

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=subprocess.DEVNULL,
                stdout=write_fd,
                stderr=write_fd,
            )
        except _NOT_FOUND_ERRORS as e:
            os.close(read_fd)
            raise ProgramNotFoundError(f"Cannot execute {program!r}: {e}", program=program) from e
        except (OSError, ValueError) as e:
            # ValueError: an argument carries a NUL byte.
            os.close(read_fd)
            raise ProcessCreationError(f"Cannot create process for {program!r}: {e}") from e
        finally:
            # Only the child keeps the write end, so EOF follows its exit.
            os.close(write_fd)

        try:
            reader, transport = await _open_pipe_reader(read_fd)
        except OSError as e:
            process.kill()
            await process.wait()
            raise PipeCreationError(f"Cannot attach to output pipe: {e}") from e

        handle = ProcessHandle(process, reader, transport, argv)
        if self._timeout is not None:
            handle.kill_after(self._timeout)
        logger.debug("Spawned %s (pid=%d)", program, handle.pid)
        return handle


async def _open_pipe_reader(
    read_fd: int,
) -> tuple[asyncio.StreamReader, asyncio.ReadTransport]:
    """Wrap a raw pipe fd in an asyncio stream reader."""
    loop = asyncio.get_running_loop()
    pipe = os.fdopen(read_fd, "rb", buffering=0)
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    try:
        transport, _ = await loop.connect_read_pipe(lambda: protocol, pipe)
    except OSError:
        pipe.close()
        raise
    return reader, transport
