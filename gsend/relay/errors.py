"""
Relay error handling.
"""

from gsend.exceptions import (
    BaseGsendError,
)


class RelayError(BaseGsendError):
    """Base exception for relay and signaling errors."""


class HandshakeError(RelayError):
    """Raised when the relay does not assign a peer id."""

    def __init__(self, message: str = "Relay did not send an init message"):
        super().__init__(message)
