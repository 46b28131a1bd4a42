import logging
from pathlib import Path

from gsend.abc import (
    ITransferSink,
)
from gsend.custom_types import (
    PeerID,
    TransferID,
    TSendFn,
)
from gsend.events import (
    EventBus,
)
from gsend.multiplexer import (
    MessageMultiplexer,
)
from gsend.multiplexer.messages import (
    FILE_ACCEPT,
    FILE_CHUNK,
    FILE_DONE,
    FILE_OFFER,
    FILE_REJECT,
)

from .config import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_RESPONSE_TIMEOUT,
)
from .pending import (
    PendingResponseTable,
)
from .receiver import (
    FileReceiver,
)
from .records import (
    TransferRecord,
)
from .sender import (
    TRANSFER_ABORTED,
    FileSender,
)

logger = logging.getLogger(__name__)


class TransferManager:
    """
    Both halves of the file transfer protocol for one session.

    Sender and receiver share a single :class:`EventBus`, so a subscriber
    sees ``"file-offer"``, ``"progress"``, ``"complete"`` and ``"aborted"``
    for every transfer on the session regardless of direction.
    """

    def __init__(
        self,
        peer_id: PeerID,
        send: TSendFn,
        sink: ITransferSink | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        response_timeout: float = DEFAULT_RESPONSE_TIMEOUT,
    ) -> None:
        self.peer_id = peer_id
        self.events = EventBus()
        self.pending = PendingResponseTable()
        self.sender = FileSender(
            send, self.pending, self.events, chunk_size, response_timeout
        )
        self.receiver = FileReceiver(peer_id, send, self.events, sink)

    def attach(self, multiplexer: MessageMultiplexer) -> None:
        multiplexer.subscribe(FILE_OFFER, self.receiver.handle_offer)
        multiplexer.subscribe(FILE_ACCEPT, self.sender.handle_response)
        multiplexer.subscribe(FILE_REJECT, self.sender.handle_response)
        multiplexer.subscribe(FILE_CHUNK, self.receiver.handle_chunk)
        multiplexer.subscribe(FILE_DONE, self.receiver.handle_done)

    def detach(self, multiplexer: MessageMultiplexer) -> None:
        multiplexer.unsubscribe(FILE_OFFER, self.receiver.handle_offer)
        multiplexer.unsubscribe(FILE_ACCEPT, self.sender.handle_response)
        multiplexer.unsubscribe(FILE_REJECT, self.sender.handle_response)
        multiplexer.unsubscribe(FILE_CHUNK, self.receiver.handle_chunk)
        multiplexer.unsubscribe(FILE_DONE, self.receiver.handle_done)

    async def send_file(self, name: str, data: bytes) -> TransferRecord:
        return await self.sender.send_file(name, data)

    async def send_path(
        self, path: str | Path, name: str | None = None
    ) -> TransferRecord:
        return await self.sender.send_path(path, name)

    async def accept(self, transfer_id: TransferID) -> TransferRecord:
        return await self.receiver.accept(transfer_id)

    async def reject(self, transfer_id: TransferID) -> None:
        await self.receiver.reject(transfer_id)

    async def abort_all(self, *_: object) -> None:
        """
        Abort everything in flight on this session.

        Senders blocked on a response are released as rejected; the extra
        positional arguments let this be subscribed to a session's
        ``"closed"`` event directly.
        """
        sent = self.sender.abort_all()
        received = self.receiver.abort_all()
        if sent or received:
            logger.info(
                "Aborted %d outgoing and %d incoming transfers with %s",
                len(sent),
                len(received),
                self.peer_id,
            )
        # Outgoing records publish their own abort once their task unwinds
        for record in received:
            await self.events.publish(TRANSFER_ABORTED, record)
