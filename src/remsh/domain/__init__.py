"""Domain models for remsh.

All models use Pydantic v2 for validation and serialization.
"""

from remsh.domain.models import (
    Command,
    CommandKind,
    PeerInfo,
    SessionState,
    SessionSummary,
)

__all__ = [
    "Command",
    "CommandKind",
    "PeerInfo",
    "SessionState",
    "SessionSummary",
]
