from gsend.custom_types import (
    PeerID,
)
from gsend.exceptions import (
    BaseGsendError,
)


class SessionError(BaseGsendError):
    """Base exception for peer session errors."""

    def __init__(self, message: str, peer_id: PeerID | None = None):
        super().__init__(message)
        self.peer_id = peer_id


class SessionExistsError(SessionError):
    """A live session toward the peer already exists."""


class SessionStateError(SessionError):
    """Operation not valid in the session's current state."""

    def __init__(
        self,
        message: str,
        peer_id: PeerID | None = None,
        current_state: str | None = None,
    ):
        super().__init__(message, peer_id)
        self.current_state = current_state


class SessionClosedError(SessionError):
    """The session is closed or no session exists for the peer."""


class NegotiationTimeoutError(SessionError):
    """The session did not connect in time."""
