"""
WebRTC data channel transport backed by aiortc.

aiortc runs on asyncio, so every call into it goes through
``trio_asyncio.aio_as_trio`` and the whole transport must live inside a
``trio_asyncio.open_loop()`` block; :func:`open_aiortc_transport_factory`
takes care of that. aiortc callbacks fire on the asyncio side and only
queue events; a trio task per transport drains the queue and calls the
registered handlers in order.
"""

from collections import defaultdict
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
import logging
import math
from typing import Any

from aiortc import (
    RTCConfiguration,
    RTCDataChannel,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import (
    candidate_from_sdp,
)
import trio
from trio_asyncio import (
    aio_as_trio,
    open_loop,
)

from gsend.abc import (
    IPeerTransport,
)
from gsend.custom_types import (
    PeerID,
    TEventHandler,
)
from gsend.exceptions import (
    ParseError,
)
from gsend.session.exceptions import (
    SessionClosedError,
)

from .config import (
    DATA_CHANNEL_LABEL,
    DEFAULT_ICE_SERVERS,
)
from .description import (
    SessionDescription,
)

logger = logging.getLogger(__name__)

TRANSPORT_EVENTS = ("candidate", "open", "message", "close")


def build_rtc_configuration(
    ice_servers: Sequence[dict[str, Any] | RTCIceServer] | None = None,
) -> RTCConfiguration:
    servers = DEFAULT_ICE_SERVERS if ice_servers is None else ice_servers
    return RTCConfiguration(
        iceServers=[
            RTCIceServer(**s) if not isinstance(s, RTCIceServer) else s
            for s in servers
        ]
    )


class AiortcTransport(IPeerTransport):
    """
    One ``RTCPeerConnection`` with a single ordered, reliable data channel.

    The offerer creates the channel; the answerer adopts the one announced
    by the remote side. aiortc gathers all candidates while the local
    description is applied and embeds them in the SDP, so no separate
    ``"candidate"`` events are produced, but remote candidates are still
    accepted.
    """

    def __init__(
        self,
        peer_id: PeerID,
        nursery: trio.Nursery,
        rtc_config: RTCConfiguration | None = None,
    ) -> None:
        self.peer_id = peer_id
        self.peer_connection = RTCPeerConnection(
            rtc_config or build_rtc_configuration()
        )
        self.data_channel: RTCDataChannel | None = None
        self._handlers: dict[str, list[TEventHandler]] = defaultdict(list)
        self._open = False
        self._closed = False

        self._event_send: trio.MemorySendChannel[tuple[str, tuple[Any, ...]]]
        self._event_receive: trio.MemoryReceiveChannel[tuple[str, tuple[Any, ...]]]
        self._event_send, self._event_receive = trio.open_memory_channel(math.inf)

        self.peer_connection.on("datachannel", self._on_datachannel)
        self.peer_connection.on("connectionstatechange", self._on_state_change)
        nursery.start_soon(self._pump_events)

    def on(self, event: str, handler: TEventHandler) -> None:
        if event not in TRANSPORT_EVENTS:
            raise ValueError(f"Unknown transport event: {event}")
        self._handlers[event].append(handler)

    async def create_offer(self) -> SessionDescription:
        if self.data_channel is None:
            self._attach_channel(
                self.peer_connection.createDataChannel(DATA_CHANNEL_LABEL)
            )
        offer = await aio_as_trio(self.peer_connection.createOffer())
        return SessionDescription(type=offer.type, sdp=offer.sdp)

    async def create_answer(self) -> SessionDescription:
        answer = await aio_as_trio(self.peer_connection.createAnswer())
        return SessionDescription(type=answer.type, sdp=answer.sdp)

    async def set_local_description(
        self, description: SessionDescription
    ) -> SessionDescription:
        await aio_as_trio(
            self.peer_connection.setLocalDescription(
                RTCSessionDescription(sdp=description.sdp, type=description.type)
            )
        )
        local = self.peer_connection.localDescription
        logger.debug("Set local %s for %s", description.type, self.peer_id)
        return SessionDescription(type=local.type, sdp=local.sdp)

    async def set_remote_description(self, description: SessionDescription) -> None:
        await aio_as_trio(
            self.peer_connection.setRemoteDescription(
                RTCSessionDescription(sdp=description.sdp, type=description.type)
            )
        )
        logger.debug("Set remote %s for %s", description.type, self.peer_id)

    async def add_candidate(self, candidate: dict[str, Any]) -> None:
        line = candidate.get("candidate")
        if not isinstance(line, str):
            raise ParseError("Candidate has no candidate line")
        if not line:
            # End-of-candidates marker
            return
        if line.startswith("candidate:"):
            line = line[len("candidate:") :]
        # aiortc asserts on lines with too few fields
        try:
            ice_candidate = candidate_from_sdp(line)
        except (AssertionError, ValueError, IndexError) as e:
            raise ParseError(f"Invalid candidate line {line!r}: {e}") from e
        ice_candidate.sdpMid = candidate.get("sdpMid")
        ice_candidate.sdpMLineIndex = candidate.get("sdpMLineIndex")
        await aio_as_trio(self.peer_connection.addIceCandidate(ice_candidate))

    async def send(self, data: str | bytes) -> None:
        channel = self.data_channel
        if self._closed or channel is None or channel.readyState != "open":
            raise SessionClosedError(
                f"Data channel to {self.peer_id} is not open", self.peer_id
            )
        channel.send(data)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await aio_as_trio(self.peer_connection.close())
        finally:
            self._queue("close")
            self._event_send.close()

    # aiortc callbacks run synchronously on the asyncio side and only queue

    def _queue(self, event: str, *args: Any) -> None:
        try:
            self._event_send.send_nowait((event, args))
        except trio.ClosedResourceError:
            logger.debug(
                "Dropped %s event for closed transport %s", event, self.peer_id
            )

    def _attach_channel(self, channel: RTCDataChannel) -> None:
        self.data_channel = channel
        channel.on("open", self._on_channel_open)
        channel.on("message", lambda message: self._queue("message", message))
        channel.on("close", self._on_channel_close)
        if channel.readyState == "open":
            self._on_channel_open()

    def _on_datachannel(self, channel: RTCDataChannel) -> None:
        if self.data_channel is not None:
            logger.warning(
                "Ignoring extra data channel %s from %s", channel.label, self.peer_id
            )
            return
        self._attach_channel(channel)

    def _on_channel_open(self) -> None:
        if self._open:
            return
        self._open = True
        logger.debug("Data channel to %s open", self.peer_id)
        self._queue("open")

    def _on_channel_close(self) -> None:
        logger.debug("Data channel to %s closed", self.peer_id)
        self._queue("close")

    def _on_state_change(self) -> None:
        state = self.peer_connection.connectionState
        logger.debug("Connection to %s is %s", self.peer_id, state)
        if state in ("failed", "closed"):
            self._queue("close")

    async def _pump_events(self) -> None:
        close_sent = False
        async with self._event_receive:
            async for event, args in self._event_receive:
                if event == "close":
                    if close_sent:
                        continue
                    close_sent = True
                for handler in list(self._handlers.get(event, [])):
                    try:
                        await handler(*args)
                    except Exception:
                        logger.exception(
                            "Transport handler for %s raised an exception", event
                        )


@asynccontextmanager
async def open_aiortc_transport_factory(
    ice_servers: Sequence[dict[str, Any]] | None = None,
) -> AsyncIterator[Callable[[PeerID], AiortcTransport]]:
    """
    Run an asyncio loop for aiortc and yield a per-peer transport factory.

    Transports created by the factory are only usable inside this context.
    """
    rtc_config = build_rtc_configuration(ice_servers)
    async with open_loop():
        async with trio.open_nursery() as nursery:

            def factory(peer_id: PeerID) -> AiortcTransport:
                return AiortcTransport(peer_id, nursery, rtc_config)

            try:
                yield factory
            finally:
                nursery.cancel_scope.cancel()
