"""
In-memory stand-ins for the network.

:func:`memory_connection_pair` gives two connected
:class:`~gsend.abc.IMessageConnection` objects for driving the relay and the
signaling client without sockets. :class:`LoopbackHub` creates
:class:`LoopbackTransport` objects that pair up by peer id and deliver data
channel messages directly, so whole nodes can be wired together in a single
trio run.
"""

from collections import defaultdict
import itertools
import logging
import math
from typing import Any

import trio
from trio_websocket import (
    CloseReason,
    ConnectionClosed,
)

from gsend.abc import (
    IMessageConnection,
    IPeerTransport,
)
from gsend.custom_types import (
    PeerID,
    TEventHandler,
)
from gsend.session.exceptions import (
    SessionClosedError,
)
from gsend.transport.description import (
    ANSWER,
    OFFER,
    SessionDescription,
)

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000


class MemoryMessageConnection(IMessageConnection):
    def __init__(
        self,
        send_channel: trio.MemorySendChannel[str | bytes],
        receive_channel: trio.MemoryReceiveChannel[str | bytes],
    ) -> None:
        self._send_channel = send_channel
        self._receive_channel = receive_channel
        self.peer: MemoryMessageConnection | None = None
        self.closed = False
        self.close_reason: CloseReason | None = None

    async def get_message(self) -> str | bytes:
        try:
            return await self._receive_channel.receive()
        except (trio.EndOfChannel, trio.ClosedResourceError):
            raise ConnectionClosed(self._reason()) from None

    async def send_message(self, message: str | bytes) -> None:
        if self.closed:
            raise ConnectionClosed(self._reason())
        try:
            await self._send_channel.send(message)
        except (trio.BrokenResourceError, trio.ClosedResourceError):
            raise ConnectionClosed(self._reason()) from None

    async def aclose(
        self, code: int = NORMAL_CLOSURE, reason: str | None = None
    ) -> None:
        if self.closed:
            return
        self.closed = True
        self.close_reason = CloseReason(code, reason)
        await self._send_channel.aclose()
        await self._receive_channel.aclose()
        if self.peer is not None and self.peer.close_reason is None:
            self.peer.close_reason = self.close_reason

    def _reason(self) -> CloseReason:
        return self.close_reason or CloseReason(NORMAL_CLOSURE, None)


def memory_connection_pair(
    buffer_size: float = math.inf,
) -> tuple[MemoryMessageConnection, MemoryMessageConnection]:
    """Two message connections, each receiving what the other sends."""
    a_to_b_send: trio.MemorySendChannel[str | bytes]
    a_to_b_receive: trio.MemoryReceiveChannel[str | bytes]
    a_to_b_send, a_to_b_receive = trio.open_memory_channel(buffer_size)
    b_to_a_send: trio.MemorySendChannel[str | bytes]
    b_to_a_receive: trio.MemoryReceiveChannel[str | bytes]
    b_to_a_send, b_to_a_receive = trio.open_memory_channel(buffer_size)
    a = MemoryMessageConnection(a_to_b_send, b_to_a_receive)
    b = MemoryMessageConnection(b_to_a_send, a_to_b_receive)
    a.peer, b.peer = b, a
    return a, b


class LoopbackHub:
    """
    Factory for loopback transports between nodes in one process.

    Each node gets its own factory from :meth:`factory_for`; transports are
    paired by the (local, remote) peer ids they were created for.
    """

    def __init__(self) -> None:
        self.transports: dict[tuple[PeerID, PeerID], "LoopbackTransport"] = {}
        self._sdp_counter = itertools.count(1)

    def factory_for(self, local_id: PeerID) -> "LoopbackFactory":
        return LoopbackFactory(self, local_id)

    def create(self, local_id: PeerID, remote_id: PeerID) -> "LoopbackTransport":
        transport = LoopbackTransport(self, local_id, remote_id)
        self.transports[(local_id, remote_id)] = transport
        return transport

    def counterpart(self, transport: "LoopbackTransport") -> "LoopbackTransport | None":
        candidate = self.transports.get((transport.remote_id, transport.local_id))
        if candidate is None or candidate.closed:
            return None
        return candidate

    def next_sdp(self, sdp_type: str, local_id: PeerID) -> str:
        return f"loopback-{sdp_type}-{local_id}-{next(self._sdp_counter)}"


class LoopbackFactory:
    def __init__(self, hub: LoopbackHub, local_id: PeerID) -> None:
        self.hub = hub
        self.local_id = local_id

    def __call__(self, remote_id: PeerID) -> "LoopbackTransport":
        return self.hub.create(self.local_id, remote_id)


class LoopbackTransport(IPeerTransport):
    """
    Transport that behaves like a data channel without any networking.

    A single fake candidate is emitted once the local description is set.
    The channel opens when both ends hold both descriptions, messages are
    handed straight to the other end's handlers, and closing one end closes
    the other.
    """

    def __init__(self, hub: LoopbackHub, local_id: PeerID, remote_id: PeerID) -> None:
        self.hub = hub
        self.local_id = local_id
        self.remote_id = remote_id
        self.handlers: dict[str, list[TEventHandler]] = defaultdict(list)
        self.local_description: SessionDescription | None = None
        self.remote_description: SessionDescription | None = None
        self.candidates: list[dict[str, Any]] = []
        self.sent: list[str | bytes] = []
        self.opened = False
        self.closed = False

    def __repr__(self) -> str:
        return f"<LoopbackTransport {self.local_id}->{self.remote_id}>"

    def on(self, event: str, handler: TEventHandler) -> None:
        self.handlers[event].append(handler)

    async def emit(self, event: str, *args: Any) -> None:
        for handler in list(self.handlers.get(event, [])):
            await handler(*args)

    async def create_offer(self) -> SessionDescription:
        return SessionDescription(OFFER, self.hub.next_sdp(OFFER, self.local_id))

    async def create_answer(self) -> SessionDescription:
        if self.remote_description is None:
            raise RuntimeError("Cannot answer without a remote offer")
        return SessionDescription(ANSWER, self.hub.next_sdp(ANSWER, self.local_id))

    async def set_local_description(
        self, description: SessionDescription
    ) -> SessionDescription:
        self.local_description = description
        await self.emit(
            "candidate",
            {
                "candidate": f"candidate:1 1 udp 2130706431 127.0.0.1 9 typ host "
                f"generation 0 ufrag {self.local_id}",
                "sdpMid": "0",
                "sdpMLineIndex": 0,
            },
        )
        await self._maybe_open()
        return description

    async def set_remote_description(self, description: SessionDescription) -> None:
        self.remote_description = description
        await self._maybe_open()

    async def add_candidate(self, candidate: dict[str, Any]) -> None:
        if self.remote_description is None:
            raise RuntimeError("Candidate added before the remote description")
        self.candidates.append(candidate)

    async def send(self, data: str | bytes) -> None:
        peer = self.hub.counterpart(self)
        if self.closed or not self.opened or peer is None:
            raise SessionClosedError(
                f"Loopback channel to {self.remote_id} is not open", self.remote_id
            )
        self.sent.append(data)
        await peer.emit("message", data)

    async def close(self) -> None:
        if self.closed:
            return
        peer = self.hub.counterpart(self)
        self.closed = True
        await self.emit("close")
        if peer is not None:
            await peer.close()

    @property
    def _negotiated(self) -> bool:
        return self.local_description is not None and (
            self.remote_description is not None
        )

    async def _maybe_open(self) -> None:
        peer = self.hub.counterpart(self)
        if peer is None or not (self._negotiated and peer._negotiated):
            return
        for transport in (self, peer):
            if not transport.opened:
                transport.opened = True
                logger.debug("Loopback channel %r open", transport)
                await transport.emit("open")
