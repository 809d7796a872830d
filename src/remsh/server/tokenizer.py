"""Split a command line into an argument vector."""

from __future__ import annotations


class TokenizeError(Exception):
    """Raised when a command line yields no tokens."""


def tokenize(command: str) -> list[str]:
    """Split on whitespace runs; element 0 is the program name.

    No quoting, globbing or other shell syntax is interpreted, so
    ``ls | wc`` yields three plain arguments.
    """
    argv = command.split()
    if not argv:
        raise TokenizeError(f"No tokens in command {command!r}")
    return argv
