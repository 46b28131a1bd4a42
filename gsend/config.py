"""
Settings for a peer node.
"""

from dataclasses import (
    dataclass,
    field,
)
from typing import Any

from gsend.relay.config import (
    DEFAULT_RELAY_URL,
    INIT_TIMEOUT,
)
from gsend.session.config import (
    DEFAULT_CONNECT_TIMEOUT,
    SESSION_MAILBOX_SIZE,
)
from gsend.transfer.config import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_RESPONSE_TIMEOUT,
)
from gsend.transport.config import (
    DEFAULT_ICE_SERVERS,
)


@dataclass
class PeerConfig:
    """
    Settings for one :class:`~gsend.node.PeerNode`.

    Attributes:
        relay_url: WebSocket URL of the relay
        init_timeout: seconds to wait for the relay to assign an id
        connect_timeout: seconds to wait for a session to reach Connected
        chunk_size: bytes per file-chunk payload
        response_timeout: seconds a sender waits for accept/reject
        mailbox_size: signals queued per session
        ice_servers: STUN/TURN servers handed to the WebRTC transport

    """

    relay_url: str = DEFAULT_RELAY_URL
    init_timeout: float = INIT_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    response_timeout: float = DEFAULT_RESPONSE_TIMEOUT
    mailbox_size: int = SESSION_MAILBOX_SIZE
    ice_servers: list[dict[str, Any]] = field(
        default_factory=lambda: list(DEFAULT_ICE_SERVERS)
    )
