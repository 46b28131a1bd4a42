"""
Per-peer session negotiation.
"""

from .exceptions import (
    NegotiationTimeoutError,
    SessionClosedError,
    SessionError,
    SessionExistsError,
    SessionStateError,
)
from .negotiator import SessionNegotiator
from .session import (
    Session,
    SessionState,
)

__all__ = [
    "NegotiationTimeoutError",
    "Session",
    "SessionClosedError",
    "SessionError",
    "SessionExistsError",
    "SessionNegotiator",
    "SessionState",
    "SessionStateError",
]
