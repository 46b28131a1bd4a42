from dataclasses import (
    dataclass,
    field,
)
from enum import (
    Enum,
)
from typing import Any

from gsend.custom_types import (
    TransferID,
)
from gsend.exceptions import (
    ParseError,
)


class TransferDirection(Enum):
    SEND = "send"
    RECEIVE = "receive"


class TransferState(Enum):
    OFFERED = "offered"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    ABORTED = "aborted"


FINAL_STATES = frozenset(
    {TransferState.REJECTED, TransferState.COMPLETE, TransferState.ABORTED}
)


@dataclass(frozen=True)
class FileOffer:
    """A file a remote peer proposes to send; no transfer exists yet."""

    id: TransferID
    name: str
    size: int

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "FileOffer":
        transfer_id = payload.get("id")
        name = payload.get("name")
        size = payload.get("size")
        if not isinstance(transfer_id, str) or not transfer_id:
            raise ParseError("File offer has no id")
        if not isinstance(name, str):
            raise ParseError("File offer has no name")
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise ParseError(f"File offer has an invalid size: {size!r}")
        return cls(id=TransferID(transfer_id), name=name, size=size)


@dataclass
class TransferRecord:
    """State of one file transfer on one session."""

    id: TransferID
    name: str
    size: int
    direction: TransferDirection
    state: TransferState = TransferState.OFFERED
    received_bytes: int = 0
    chunks: list[bytes] = field(default_factory=list, repr=False)

    @property
    def is_finished(self) -> bool:
        return self.state in FINAL_STATES

    @property
    def progress(self) -> float:
        """Fraction of :attr:`size` moved so far."""
        if self.size <= 0:
            return 1.0 if self.state is TransferState.COMPLETE else 0.0
        return self.received_bytes / self.size

    def append_chunk(self, chunk: bytes) -> None:
        self.chunks.append(chunk)
        self.received_bytes += len(chunk)

    def assemble(self) -> bytes:
        return b"".join(self.chunks)
