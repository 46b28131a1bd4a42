from enum import (
    Enum,
)
import logging
from typing import Any

import trio

from gsend.abc import (
    IPeerTransport,
)
from gsend.custom_types import (
    PeerID,
)
from gsend.events import (
    EventBus,
)
from gsend.multiplexer import (
    MessageMultiplexer,
)
from gsend.transport.description import (
    SessionDescription,
)

from .config import (
    SESSION_MAILBOX_SIZE,
)
from .exceptions import (
    NegotiationTimeoutError,
    SessionClosedError,
    SessionStateError,
)

logger = logging.getLogger(__name__)

SESSION_CONNECTED = "connected"
SESSION_CLOSED = "closed"


class SessionState(Enum):
    IDLE = "idle"
    OFFERING = "offering"
    ANSWERING = "answering"
    CONNECTED = "connected"
    CLOSED = "closed"


class Session:
    """
    Negotiation and connection state toward one remote peer.

    The session becomes Connected only once both descriptions are set and the
    transport has reported open, whichever comes last. Remote candidates that
    arrive before the remote description are kept in
    :attr:`pending_candidates` and applied in arrival order as soon as it is
    set. Local candidates found by an offerer before its offer is relayed
    wait in :attr:`held_candidates`.
    """

    def __init__(
        self,
        peer_id: PeerID,
        transport: IPeerTransport,
        mailbox_size: int = SESSION_MAILBOX_SIZE,
    ) -> None:
        self.peer_id = peer_id
        self.transport = transport
        self.state = SessionState.IDLE
        self.local_description: SessionDescription | None = None
        self.remote_description: SessionDescription | None = None
        self.pending_candidates: list[dict[str, Any]] = []
        self.held_candidates: list[dict[str, Any]] = []
        self.offer_relayed = False
        self.multiplexer = MessageMultiplexer(peer_id)
        self.events = EventBus()

        self._transport_open = False
        self._settled = trio.Event()
        self.mailbox_send: trio.MemorySendChannel[tuple[str, dict[str, Any]]]
        self.mailbox_receive: trio.MemoryReceiveChannel[tuple[str, dict[str, Any]]]
        self.mailbox_send, self.mailbox_receive = trio.open_memory_channel(
            mailbox_size
        )

    def __repr__(self) -> str:
        return f"<Session peer={self.peer_id} state={self.state.value}>"

    @property
    def is_live(self) -> bool:
        return self.state is not SessionState.CLOSED

    @property
    def is_connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    async def set_local_description(self, description: SessionDescription) -> None:
        if self.local_description is not None:
            raise SessionStateError(
                "Local description already set", self.peer_id, self.state.value
            )
        self.local_description = await self.transport.set_local_description(
            description
        )
        await self._maybe_connected()

    async def set_remote_description(self, description: SessionDescription) -> None:
        if self.remote_description is not None:
            raise SessionStateError(
                "Remote description already set", self.peer_id, self.state.value
            )
        await self.transport.set_remote_description(description)
        self.remote_description = description

        if self.pending_candidates:
            logger.debug(
                "Flushing %d buffered candidates for %s",
                len(self.pending_candidates),
                self.peer_id,
            )
        while self.pending_candidates and self.is_live:
            await self.transport.add_candidate(self.pending_candidates.pop(0))

        await self._maybe_connected()

    async def add_remote_candidate(self, candidate: dict[str, Any]) -> None:
        if not self.is_live:
            return
        if self.remote_description is None:
            self.pending_candidates.append(candidate)
            logger.debug("Buffered candidate from %s", self.peer_id)
            return
        await self.transport.add_candidate(candidate)

    async def handle_transport_open(self) -> None:
        self._transport_open = True
        await self._maybe_connected()

    async def handle_message(self, data: str | bytes) -> None:
        await self.multiplexer.dispatch(data)

    async def _maybe_connected(self) -> None:
        if self.state not in (SessionState.OFFERING, SessionState.ANSWERING):
            return
        if not self._transport_open:
            return
        if self.local_description is None or self.remote_description is None:
            return
        self.state = SessionState.CONNECTED
        self._settled.set()
        logger.info("Session with %s connected", self.peer_id)
        await self.events.publish(SESSION_CONNECTED, self)

    async def wait_connected(self, timeout: float) -> None:
        """
        Wait until the session is Connected.

        :raises SessionClosedError: if the session closed first
        :raises NegotiationTimeoutError: if ``timeout`` elapsed first
        """
        with trio.move_on_after(timeout):
            await self._settled.wait()
        if self.state is SessionState.CONNECTED:
            return
        if self.state is SessionState.CLOSED:
            raise SessionClosedError(
                f"Session with {self.peer_id} closed before connecting", self.peer_id
            )
        raise NegotiationTimeoutError(
            f"Session with {self.peer_id} not connected after {timeout}s",
            self.peer_id,
        )

    async def send(self, data: str | bytes) -> None:
        if self.state is SessionState.CLOSED:
            raise SessionClosedError(
                f"Session with {self.peer_id} is closed", self.peer_id
            )
        if self.state is not SessionState.CONNECTED:
            raise SessionStateError(
                f"Session with {self.peer_id} is not connected",
                self.peer_id,
                self.state.value,
            )
        await self.transport.send(data)

    async def close(self) -> None:
        """Close the session and its transport. Safe to call more than once."""
        if self.state is SessionState.CLOSED:
            return
        previous = self.state
        self.state = SessionState.CLOSED
        self.pending_candidates.clear()
        self.held_candidates.clear()
        self.mailbox_send.close()
        self._settled.set()
        logger.info("Session with %s closed (was %s)", self.peer_id, previous.value)

        with trio.CancelScope(shield=True):
            await self.events.publish(SESSION_CLOSED, self)
            try:
                await self.transport.close()
            except Exception as e:
                logger.warning("Error closing transport to %s: %s", self.peer_id, e)
