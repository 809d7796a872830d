"""Client side of remsh.

Public API:
    ClientSession -- Connects, sends command lines, reassembles responses
"""

from remsh.client.session import ClientError, ClientSession, ConnectionClosedError

__all__ = ["ClientError", "ClientSession", "ConnectionClosedError"]
