"""
Configuration constants for the rendezvous relay.
"""

from dataclasses import (
    dataclass,
)

# Network Configuration
DEFAULT_RELAY_HOST = "0.0.0.0"
DEFAULT_RELAY_PORT = 3001
DEFAULT_RELAY_URL = f"ws://localhost:{DEFAULT_RELAY_PORT}"

# WebSocket Configuration
HANDSHAKE_TIMEOUT = 15.0
MAX_MESSAGE_SIZE = 1024 * 1024  # 1 MiB, matches trio_websocket's default

# Client Configuration
INIT_TIMEOUT = 10.0  # seconds to wait for the relay to assign an id


@dataclass
class RelayConfig:
    """
    Settings for a relay server process.

    Attributes:
        host: interface to bind
        port: TCP port to listen on, 0 picks a free port
        handshake_timeout: seconds allowed for the WebSocket handshake
        max_message_size: largest accepted signaling frame in bytes

    """

    host: str = DEFAULT_RELAY_HOST
    port: int = DEFAULT_RELAY_PORT
    handshake_timeout: float = HANDSHAKE_TIMEOUT
    max_message_size: int = MAX_MESSAGE_SIZE
