"""Server side of remsh.

Accepts TCP connections and runs a command session on each: every
command line is split into an argument vector, executed as a child
process, and its merged output streamed back followed by the marker.

Public API:
    CommandServer -- Listening socket and connection loop
    SessionHandler -- One connected session
    ProcessRunner -- Spawns commands with captured output
    ResponseStreamer -- Forwards output and terminates the frame
"""

from remsh.server.listener import CommandServer, ServerError
from remsh.server.runner import (
    PipeCreationError,
    ProcessCreationError,
    ProcessHandle,
    ProcessRunner,
    ProgramNotFoundError,
    RunnerError,
)
from remsh.server.session import SessionHandler
from remsh.server.streamer import ResponseStreamer, StreamError
from remsh.server.tokenizer import TokenizeError, tokenize

__all__ = [
    "CommandServer",
    "PipeCreationError",
    "ProcessCreationError",
    "ProcessHandle",
    "ProcessRunner",
    "ProgramNotFoundError",
    "ResponseStreamer",
    "RunnerError",
    "ServerError",
    "SessionHandler",
    "StreamError",
    "TokenizeError",
    "tokenize",
]
