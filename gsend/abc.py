from abc import (
    ABC,
    abstractmethod,
)
from typing import Any

from gsend.custom_types import (
    PeerID,
    TEventHandler,
)
from gsend.transport.description import (
    SessionDescription,
)

# -------------------------- message connection interface --------------------------


class IMessageConnection(ABC):
    """
    Interface for a message-oriented duplex connection.

    This is the subset of ``trio_websocket.WebSocketConnection`` the relay and
    the signaling client rely on, so an in-memory pair can stand in for a real
    WebSocket. ``get_message`` raises ``trio_websocket.ConnectionClosed`` once
    the remote side has gone away.
    """

    @abstractmethod
    async def get_message(self) -> str | bytes:
        """Wait for and return the next message."""

    @abstractmethod
    async def send_message(self, message: str | bytes) -> None:
        """Send a single message."""

    @abstractmethod
    async def aclose(self, code: int = 1000, reason: str | None = None) -> None:
        """Close the connection."""


# -------------------------- signaling interface --------------------------


class ISignalSender(ABC):
    """Sends negotiation signals to a remote peer through the relay."""

    @abstractmethod
    async def send_signal(self, to: PeerID, signal: dict[str, Any]) -> None:
        """
        Relay ``signal`` to the peer ``to``.

        :param to: destination peer id
        :param signal: an offer, answer or candidate object
        """


# -------------------------- peer transport interface --------------------------


class IPeerTransport(ABC):
    """
    The negotiation primitive of one direct peer-to-peer connection.

    Events are delivered to handlers registered with :meth:`on`:

    * ``"candidate"`` with a candidate dict, once per local ICE candidate;
    * ``"open"`` once the data channel can carry messages;
    * ``"message"`` with a ``str`` or ``bytes`` payload;
    * ``"close"`` once the connection is gone.
    """

    @abstractmethod
    def on(self, event: str, handler: TEventHandler) -> None:
        """Register ``handler`` for ``event``."""

    @abstractmethod
    async def create_offer(self) -> SessionDescription:
        pass

    @abstractmethod
    async def create_answer(self) -> SessionDescription:
        pass

    @abstractmethod
    async def set_local_description(
        self, description: SessionDescription
    ) -> SessionDescription:
        """
        Apply ``description`` locally.

        :return: the description to send to the remote peer, which may carry
            candidates gathered while it was applied
        """

    @abstractmethod
    async def set_remote_description(self, description: SessionDescription) -> None:
        pass

    @abstractmethod
    async def add_candidate(self, candidate: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def send(self, data: str | bytes) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


# -------------------------- transfer sink interface --------------------------


class ITransferSink(ABC):
    """Consumes a completely reassembled file."""

    @abstractmethod
    async def deliver(self, peer_id: PeerID, name: str, data: bytes) -> None:
        """
        Take ownership of a received artifact.

        :param peer_id: the peer the file came from
        :param name: file name announced in the offer
        :param data: the reassembled bytes
        """
