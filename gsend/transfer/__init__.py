"""
Chunked file transfer over a connected session.

The protocol is four tagged payloads on the session's data channel:
``file-offer``, then ``file-accept`` or ``file-reject``, then any number of
``file-chunk`` and a closing ``file-done``.
"""

from .errors import (
    TransferAbortedError,
    TransferError,
    TransferRejectedError,
    TransferTimeoutError,
)
from .manager import (
    TransferManager,
)
from .receiver import (
    TRANSFER_OFFER,
    FileReceiver,
)
from .records import (
    FileOffer,
    TransferDirection,
    TransferRecord,
    TransferState,
)
from .sender import (
    TRANSFER_ABORTED,
    TRANSFER_COMPLETE,
    TRANSFER_PROGRESS,
    FileSender,
)
from .sink import (
    DirectorySink,
    MemorySink,
)

__all__ = [
    "DirectorySink",
    "FileOffer",
    "FileReceiver",
    "FileSender",
    "MemorySink",
    "TRANSFER_ABORTED",
    "TRANSFER_COMPLETE",
    "TRANSFER_OFFER",
    "TRANSFER_PROGRESS",
    "TransferAbortedError",
    "TransferDirection",
    "TransferError",
    "TransferManager",
    "TransferRecord",
    "TransferRejectedError",
    "TransferState",
    "TransferTimeoutError",
]
