from collections.abc import Iterable
import logging
from pathlib import Path
import uuid

import trio

from gsend.custom_types import (
    TMessage,
    TransferID,
    TSendFn,
)
from gsend.events import (
    EventBus,
)
from gsend.multiplexer.messages import (
    FILE_ACCEPT,
    FILE_REJECT,
    create_file_chunk_message,
    create_file_done_message,
    create_file_offer_message,
    encode_payload,
)
from gsend.session.exceptions import (
    SessionError,
)

from .chunker import (
    chunk_bytes,
    chunk_file,
    encode_chunk,
)
from .config import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_RESPONSE_TIMEOUT,
)
from .errors import (
    TransferAbortedError,
    TransferRejectedError,
    TransferTimeoutError,
)
from .pending import (
    PendingResponseTable,
)
from .records import (
    TransferDirection,
    TransferRecord,
    TransferState,
)

logger = logging.getLogger(__name__)

TRANSFER_PROGRESS = "progress"
TRANSFER_COMPLETE = "complete"
TRANSFER_ABORTED = "aborted"


class FileSender:
    """
    Sending half of the transfer protocol.

    An offer is followed by a wait for the peer's decision; on accept every
    chunk is sent back-to-back in order and a ``file-done`` closes the
    transfer. The transport's ordering and flow control are relied on, no
    chunk is acknowledged.
    """

    def __init__(
        self,
        send: TSendFn,
        pending: PendingResponseTable,
        events: EventBus,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        response_timeout: float = DEFAULT_RESPONSE_TIMEOUT,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._send = send
        self.pending = pending
        self.events = events
        self.chunk_size = chunk_size
        self.response_timeout = response_timeout
        self.transfers: dict[TransferID, TransferRecord] = {}

    async def send_file(self, name: str, data: bytes) -> TransferRecord:
        """
        Offer ``data`` under ``name`` and stream it if the peer accepts.

        :raises TransferRejectedError: the peer declined
        :raises TransferAbortedError: the session closed first
        :raises TransferTimeoutError: the peer never answered
        """
        return await self._transfer(
            name, len(data), chunk_bytes(data, self.chunk_size)
        )

    async def send_path(
        self, path: str | Path, name: str | None = None
    ) -> TransferRecord:
        path = Path(path)
        size = path.stat().st_size
        return await self._transfer(
            name or path.name, size, chunk_file(path, self.chunk_size)
        )

    async def handle_response(self, payload: TMessage) -> None:
        msg_type = payload.get("type")
        if msg_type not in (FILE_ACCEPT, FILE_REJECT):
            return
        transfer_id = payload.get("id")
        if not isinstance(transfer_id, str):
            logger.warning("Ignoring %s without an id", msg_type)
            return
        if not self.pending.resolve(TransferID(transfer_id), msg_type == FILE_ACCEPT):
            logger.debug("No pending offer %s for %s", transfer_id, msg_type)

    def abort_all(self) -> list[TransferRecord]:
        """Resolve pending offers as rejected and mark live transfers Aborted."""
        self.pending.cancel_all()
        aborted = []
        for record in self.transfers.values():
            if not record.is_finished:
                record.state = TransferState.ABORTED
                aborted.append(record)
        return aborted

    async def _transfer(
        self, name: str, size: int, chunks: Iterable[bytes]
    ) -> TransferRecord:
        transfer_id = TransferID(str(uuid.uuid4()))
        record = TransferRecord(
            id=transfer_id, name=name, size=size, direction=TransferDirection.SEND
        )
        self.transfers[transfer_id] = record
        self.pending.register(transfer_id)
        try:
            await self._send_payload(
                create_file_offer_message(transfer_id, name, size)
            )
            logger.info("Offered %s (%d bytes) as %s", name, size, transfer_id)

            response = await self.pending.wait(transfer_id, self.response_timeout)
            if response.cancelled:
                record.state = TransferState.ABORTED
                raise TransferAbortedError(
                    f"Session closed before {name} was answered", record
                )
            if not response.accepted:
                record.state = TransferState.REJECTED
                raise TransferRejectedError(f"Peer rejected {name}", record)

            record.state = TransferState.ACCEPTED
            logger.info("Peer accepted %s", name)
            record.state = TransferState.IN_PROGRESS

            for chunk in chunks:
                if record.state is TransferState.ABORTED:
                    raise TransferAbortedError(f"Transfer of {name} aborted", record)
                await self._send_payload(
                    create_file_chunk_message(transfer_id, encode_chunk(chunk))
                )
                # Outgoing transfers count sent bytes in received_bytes
                record.received_bytes += len(chunk)
                await self.events.publish(TRANSFER_PROGRESS, record)

            if record.state is TransferState.ABORTED:
                raise TransferAbortedError(f"Transfer of {name} aborted", record)
            await self._send_payload(create_file_done_message(transfer_id))
            record.state = TransferState.COMPLETE
            logger.info("Finished sending %s", name)
            await self.events.publish(TRANSFER_COMPLETE, record)
            return record
        except TransferTimeoutError as e:
            record.state = TransferState.ABORTED
            e.record = record
            raise
        except SessionError as e:
            record.state = TransferState.ABORTED
            raise TransferAbortedError(
                f"Session closed while sending {name}", record
            ) from e
        finally:
            self.pending.discard(transfer_id)
            del self.transfers[transfer_id]
            if record.state is TransferState.ABORTED:
                with trio.CancelScope(shield=True):
                    await self.events.publish(TRANSFER_ABORTED, record)

    async def _send_payload(self, payload: TMessage) -> None:
        await self._send(encode_payload(payload))
