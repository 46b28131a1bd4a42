import logging

from gsend.custom_types import (
    PeerID,
    TMessageHandler,
)
from gsend.events import (
    EventBus,
)
from gsend.exceptions import (
    ParseError,
)

from .messages import (
    MESSAGE_TYPES,
    TEXT,
    create_text_message,
    decode_payload,
)

logger = logging.getLogger(__name__)


class MessageMultiplexer:
    """
    Per-connection dispatch table for transport payloads.

    Handlers subscribe to a payload ``type`` and receive the decoded payload.
    Anything that is not a known tagged payload is handed to the ``text``
    subscribers with the raw string as its message, so a misbehaving peer
    can never break the channel.
    """

    def __init__(self, peer_id: PeerID) -> None:
        self.peer_id = peer_id
        self._dispatch = EventBus()

    def subscribe(self, msg_type: str, handler: TMessageHandler) -> None:
        if msg_type not in MESSAGE_TYPES:
            raise ValueError(f"Unknown message type: {msg_type}")
        self._dispatch.subscribe(msg_type, handler)

    def unsubscribe(self, msg_type: str, handler: TMessageHandler) -> None:
        self._dispatch.unsubscribe(msg_type, handler)

    def clear(self) -> None:
        self._dispatch.clear()

    async def dispatch(self, raw: str | bytes) -> None:
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError:
                logger.error(
                    "Dropping %d bytes of binary data from %s", len(raw), self.peer_id
                )
                return

        try:
            payload = decode_payload(raw)
        except ParseError as e:
            logger.debug("Untagged payload from %s shown as text: %s", self.peer_id, e)
            await self._dispatch.publish(TEXT, create_text_message(raw))
            return

        msg_type = payload["type"]
        if msg_type not in MESSAGE_TYPES:
            logger.warning(
                "Unknown payload type %r from %s shown as text", msg_type, self.peer_id
            )
            await self._dispatch.publish(TEXT, create_text_message(raw))
            return

        if msg_type == TEXT and not isinstance(payload.get("message"), str):
            payload = create_text_message(raw)

        if not await self._dispatch.publish(msg_type, payload):
            logger.debug("No handler for %s payload from %s", msg_type, self.peer_id)
