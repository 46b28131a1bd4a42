from . import messages
from .multiplexer import MessageMultiplexer

__all__ = [
    "MessageMultiplexer",
    "messages",
]
