from .client import (
    SignalingClient,
    open_signaling_client,
)

__all__ = [
    "SignalingClient",
    "open_signaling_client",
]
