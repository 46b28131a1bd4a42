"""
Peer transports.

``description`` holds the offer/answer value type. The aiortc-backed
transport lives in ``gsend.transport.aiortc_transport`` and is imported
explicitly, so that the rest of the package does not need aiortc.
"""

from .description import (
    ANSWER,
    OFFER,
    SessionDescription,
)

__all__ = [
    "ANSWER",
    "OFFER",
    "SessionDescription",
]
