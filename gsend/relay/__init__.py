"""
Rendezvous relay for gsend.

The relay assigns each connecting peer an id, keeps the live peer set,
broadcasts it on every change and forwards signaling messages by destination
id.
"""

from . import config
from .errors import (
    HandshakeError,
    RelayError,
)
from .registry import PeerRegistry
from .service import RelayService

__all__ = [
    "config",
    "HandshakeError",
    "PeerRegistry",
    "RelayError",
    "RelayService",
]
