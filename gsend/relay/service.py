"""
Rendezvous relay service: assigns peer ids and forwards signaling messages.
"""

import logging
from typing import Any

import trio
from trio_typing import TaskStatus
from trio_websocket import (
    ConnectionClosed,
    WebSocketRequest,
    serve_websocket,
)

from gsend.abc import (
    IMessageConnection,
)
from gsend.custom_types import (
    PeerID,
)
from gsend.exceptions import (
    ParseError,
)

from .config import (
    RelayConfig,
)
from .messages import (
    create_init_message,
    decode_message,
    encode_message,
)
from .registry import (
    PeerRegistry,
)

logger = logging.getLogger(__name__)


class RelayService:
    """
    Rendezvous relay for hosting a signaling point.

    Every connection gets a fresh peer id, every connect and disconnect
    triggers a peer-list broadcast, and any message carrying a ``to`` field is
    forwarded to that peer with the sender's id injected as ``from``.
    """

    def __init__(
        self,
        registry: PeerRegistry | None = None,
        config: RelayConfig | None = None,
    ) -> None:
        self.registry = registry or PeerRegistry()
        self.config = config or RelayConfig()

    async def serve(
        self, task_status: TaskStatus[Any] = trio.TASK_STATUS_IGNORED
    ) -> None:
        """
        Listen for WebSocket connections until cancelled.

        ``task_status`` receives the ``trio_websocket.WebSocketServer`` so
        callers using ``nursery.start`` can read the bound port.
        """
        logger.info(
            "Relay listening on ws://%s:%d", self.config.host, self.config.port
        )
        await serve_websocket(
            self._handle_request,
            self.config.host,
            self.config.port,
            None,
            max_message_size=self.config.max_message_size,
            connect_timeout=self.config.handshake_timeout,
            task_status=task_status,
        )

    async def _handle_request(self, request: WebSocketRequest) -> None:
        try:
            ws = await request.accept()
        except ConnectionClosed:
            logger.debug("Connection closed during WebSocket handshake")
            return
        try:
            await self.handle_connection(ws)
        except Exception:
            # A failing connection must not take the listener down with it
            logger.exception("Relay connection failed")

    async def handle_connection(self, conn: IMessageConnection) -> None:
        """Serve one peer connection until it closes."""
        peer_id = self.registry.connect(conn)
        try:
            await conn.send_message(encode_message(create_init_message(peer_id)))
            await self.registry.broadcast_peer_set()
            while True:
                try:
                    raw = await conn.get_message()
                except ConnectionClosed:
                    break
                await self._handle_message(peer_id, raw)
        except ConnectionClosed:
            logger.debug("Connection to %s closed while sending", peer_id)
        finally:
            if self.registry.disconnect(peer_id):
                with trio.CancelScope(shield=True):
                    await self.registry.broadcast_peer_set()

    async def _handle_message(self, peer_id: PeerID, raw: str | bytes) -> None:
        try:
            message = decode_message(raw)
        except ParseError as e:
            logger.warning("Dropping malformed message from %s: %s", peer_id, e)
            return

        if not isinstance(message.get("to"), str):
            logger.debug("Dropping message without destination from %s", peer_id)
            return

        try:
            await self.registry.relay(peer_id, message)
        except Exception as e:
            logger.warning(
                "Failed to relay message from %s to %s: %s",
                peer_id,
                message.get("to"),
                e,
            )
