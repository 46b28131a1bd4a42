import logging
import uuid

import trio

from gsend.abc import (
    IMessageConnection,
)
from gsend.custom_types import (
    PeerID,
    TMessage,
)

from .messages import (
    create_peer_list_message,
    encode_message,
)

logger = logging.getLogger(__name__)


class PeerRegistry:
    """
    The relay's id -> connection table.

    Registration changes never suspend, so the table is consistent by the
    time a broadcast reads it. Broadcasts run one at a time, so the last
    list a peer receives is always the newest one.
    """

    def __init__(self) -> None:
        self._connections: dict[PeerID, IMessageConnection] = {}
        self._broadcast_lock = trio.Lock()

    def __contains__(self, peer_id: object) -> bool:
        return peer_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    def peer_ids(self) -> list[PeerID]:
        return list(self._connections)

    def connect(self, conn: IMessageConnection) -> PeerID:
        """Register ``conn`` under a fresh id and return that id."""
        peer_id = PeerID(str(uuid.uuid4()))
        while peer_id in self._connections:
            peer_id = PeerID(str(uuid.uuid4()))
        self._connections[peer_id] = conn
        logger.info("Peer %s connected (%d live)", peer_id, len(self._connections))
        return peer_id

    def disconnect(self, peer_id: PeerID) -> bool:
        """Deregister ``peer_id``. Returns False if it was not registered."""
        if self._connections.pop(peer_id, None) is None:
            return False
        logger.info(
            "Peer %s disconnected (%d live)", peer_id, len(self._connections)
        )
        return True

    async def relay(self, sender_id: PeerID, message: TMessage) -> bool:
        """
        Forward ``message`` to ``message["to"]`` with ``from`` set to the sender.

        Messages for ids that are not registered are dropped without telling
        the sender.

        :return: True if the message was handed to the destination connection
        """
        to = message.get("to")
        conn = self._connections.get(to) if isinstance(to, str) else None
        if conn is None:
            logger.debug("Dropping message from %s to unknown peer %s", sender_id, to)
            return False
        forwarded = dict(message)
        forwarded["from"] = sender_id
        await conn.send_message(encode_message(forwarded))
        return True

    async def broadcast_peer_set(self) -> None:
        """Send every live connection the id set minus its own id."""
        async with self._broadcast_lock:
            snapshot = list(self._connections.items())
            peer_ids = [peer_id for peer_id, _ in snapshot]
            for peer_id, conn in snapshot:
                others = [other for other in peer_ids if other != peer_id]
                try:
                    await conn.send_message(
                        encode_message(create_peer_list_message(others))
                    )
                except Exception as e:
                    logger.warning(
                        "Failed to send peer list to %s: %s", peer_id, e
                    )
