"""gsend: peer-to-peer chat and file transfer brokered by a rendezvous relay."""

from importlib.metadata import version as __version

from gsend.config import (
    PeerConfig,
)
from gsend.node import (
    PeerNode,
    open_peer_node,
    serve_peer_node,
)
from gsend.relay import (
    RelayService,
)
from gsend.relay.config import (
    RelayConfig,
)
from gsend.utils.logging import (
    setup_logging,
)

# Initialize logging configuration
setup_logging()

__all__ = [
    "PeerConfig",
    "PeerNode",
    "RelayConfig",
    "RelayService",
    "open_peer_node",
    "serve_peer_node",
]

__version__ = __version("gsend")
