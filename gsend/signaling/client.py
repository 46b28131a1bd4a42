"""
Client side of the signaling channel.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging
from typing import Any

import trio
from trio_websocket import (
    ConnectionClosed,
    open_websocket_url,
)

from gsend.abc import (
    IMessageConnection,
    ISignalSender,
)
from gsend.custom_types import (
    PeerID,
    TEventHandler,
    TMessage,
)
from gsend.events import (
    EventBus,
)
from gsend.exceptions import (
    ParseError,
)
from gsend.relay.config import (
    INIT_TIMEOUT,
    MAX_MESSAGE_SIZE,
)
from gsend.relay.errors import (
    HandshakeError,
    RelayError,
)
from gsend.relay.messages import (
    INIT,
    PEER_LIST,
    SIGNAL,
    create_signal_message,
    decode_message,
    encode_message,
    parse_signal_envelope,
)

logger = logging.getLogger(__name__)


class SignalingClient(ISignalSender):
    """
    Owns one connection to the relay.

    The relay's first message assigns :attr:`peer_id`. Later messages are
    published on :attr:`events`:

    * ``"peer-list"`` with the list of other peer ids;
    * ``"signal"`` with a :class:`~gsend.relay.messages.SignalEnvelope`.
    """

    def __init__(self, conn: IMessageConnection) -> None:
        self.conn = conn
        self.events = EventBus()
        self.peer_id: PeerID | None = None
        self.peers: list[PeerID] = []
        self._initialized = trio.Event()
        self._closed = trio.Event()

    def subscribe(self, event: str, handler: TEventHandler) -> None:
        self.events.subscribe(event, handler)

    def unsubscribe(self, event: str, handler: TEventHandler) -> None:
        self.events.unsubscribe(event, handler)

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    async def wait_initialized(self, timeout: float = INIT_TIMEOUT) -> PeerID:
        """Wait until the relay has assigned this client an id."""
        with trio.move_on_after(timeout):
            await self._initialized.wait()
        if self.peer_id is None:
            raise HandshakeError(f"No peer id assigned within {timeout}s")
        return self.peer_id

    async def run(self) -> None:
        """Read relay messages until the connection closes."""
        try:
            while True:
                try:
                    raw = await self.conn.get_message()
                except ConnectionClosed:
                    logger.info("Relay connection closed")
                    break
                await self._handle_message(raw)
        finally:
            self._closed.set()

    async def _handle_message(self, raw: str | bytes) -> None:
        try:
            message = decode_message(raw)
        except ParseError as e:
            logger.warning("Ignoring malformed relay message: %s", e)
            return

        msg_type = message.get("type")
        if msg_type == INIT:
            await self._handle_init(message)
        elif msg_type == PEER_LIST:
            await self._handle_peer_list(message)
        elif msg_type == SIGNAL:
            try:
                envelope = parse_signal_envelope(message)
            except ParseError as e:
                logger.warning("Ignoring malformed signal: %s", e)
                return
            await self.events.publish(SIGNAL, envelope)
        else:
            logger.debug("No handler for relay message type %s", msg_type)

    async def _handle_init(self, message: TMessage) -> None:
        peer_id = message.get("id")
        if not isinstance(peer_id, str):
            logger.warning("Ignoring init message without an id")
            return
        self.peer_id = PeerID(peer_id)
        self._initialized.set()
        logger.info("Relay assigned peer id %s", peer_id)

    async def _handle_peer_list(self, message: TMessage) -> None:
        peers = message.get("peers")
        if not isinstance(peers, list):
            logger.warning("Ignoring peer list without peers")
            return
        # The relay already excludes us; filter anyway in case of a stale id
        self.peers = [
            PeerID(str(peer)) for peer in peers if str(peer) != self.peer_id
        ]
        await self.events.publish(PEER_LIST, list(self.peers))

    async def send(self, to: PeerID, payload: TMessage) -> None:
        """Send ``payload`` addressed to ``to`` through the relay."""
        message = dict(payload)
        message["to"] = to
        try:
            await self.conn.send_message(encode_message(message))
        except ConnectionClosed as e:
            raise RelayError(f"Relay connection closed: {e}") from e

    async def send_signal(self, to: PeerID, signal: dict[str, Any]) -> None:
        await self.send(to, create_signal_message(to, signal))
        logger.debug("Sent %s signal to %s", signal.get("type"), to)

    async def close(self) -> None:
        await self.conn.aclose()


@asynccontextmanager
async def open_signaling_client(
    url: str,
    init_timeout: float = INIT_TIMEOUT,
) -> AsyncIterator[SignalingClient]:
    """
    Connect to the relay at ``url`` and yield a client with an assigned id.

    The read loop runs in a background task for the lifetime of the context.
    """
    async with open_websocket_url(url, max_message_size=MAX_MESSAGE_SIZE) as ws:
        client = SignalingClient(ws)
        async with trio.open_nursery() as nursery:
            nursery.start_soon(client.run)
            await client.wait_initialized(init_timeout)
            try:
                yield client
            finally:
                nursery.cancel_scope.cancel()
