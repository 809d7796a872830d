"""Core domain models for remsh.

These models describe what flows through a session: the classified
command lines read from the wire, the peer that owns the connection,
and the per-session bookkeeping logged when a session ends.
"""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class SessionState(str, enum.Enum):
    """States of the server-side session state machine."""

    AWAIT_COMMAND = "await_command"
    EXECUTE = "execute"
    STREAM_RESPONSE = "stream_response"
    SEND_FAREWELL = "send_farewell"
    TERMINATED = "terminated"


class CommandKind(str, enum.Enum):
    """How the session handler treats a received line."""

    EMPTY = "empty"
    EXIT = "exit"  # exit / salir
    EXECUTE = "execute"


# ---------------------------------------------------------------------------
# Wire-level Models
# ---------------------------------------------------------------------------


class Command(BaseModel):
    """A trimmed command line received from the client."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Command text, trimmed of whitespace and line terminators")
    kind: CommandKind = Field(description="Classification of the line")

    @model_validator(mode="after")
    def _check_not_empty(self) -> Command:
        if self.kind is CommandKind.EXECUTE and not self.text:
            raise ValueError("an executable command cannot be empty")
        return self


class PeerInfo(BaseModel):
    """The remote end of an accepted connection."""

    model_config = ConfigDict(frozen=True)

    address: str = Field(description="Dotted IP address of the peer")
    port: int = Field(default=0, ge=0)
    hostname: str | None = Field(default=None, description="Reverse-resolved name, if any")
    connected_at: datetime = Field(default_factory=datetime.now)

    @property
    def display_name(self) -> str:
        return self.hostname or self.address


# ---------------------------------------------------------------------------
# Session Models
# ---------------------------------------------------------------------------


class SessionSummary(BaseModel):
    """Running tally for one session, logged when it ends."""

    peer: PeerInfo
    state: SessionState = Field(default=SessionState.AWAIT_COMMAND)
    commands_executed: int = Field(default=0, ge=0)
    bytes_sent: int = Field(default=0, ge=0, description="Payload bytes forwarded, markers excluded")
    ended_by: str | None = Field(
        default=None,
        description="exit, peer_closed, read_error, write_error or shutdown",
    )
