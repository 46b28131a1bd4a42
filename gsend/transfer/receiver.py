import logging

from gsend.abc import (
    ITransferSink,
)
from gsend.custom_types import (
    PeerID,
    TMessage,
    TransferID,
    TSendFn,
)
from gsend.events import (
    EventBus,
)
from gsend.exceptions import (
    ParseError,
)
from gsend.multiplexer.messages import (
    create_file_response_message,
    encode_payload,
)

from .chunker import (
    decode_chunk,
)
from .errors import (
    TransferError,
)
from .records import (
    FileOffer,
    TransferDirection,
    TransferRecord,
    TransferState,
)
from .sender import (
    TRANSFER_COMPLETE,
    TRANSFER_PROGRESS,
)

logger = logging.getLogger(__name__)

TRANSFER_OFFER = "file-offer"


class FileReceiver:
    """
    Receiving half of the transfer protocol.

    Offers are surfaced on :attr:`events` and wait for :meth:`accept` or
    :meth:`reject`; a record only exists once an offer is accepted. Chunks
    are appended in arrival order and handed to the sink on ``file-done``.
    """

    def __init__(
        self,
        peer_id: PeerID,
        send: TSendFn,
        events: EventBus,
        sink: ITransferSink | None = None,
    ) -> None:
        self.peer_id = peer_id
        self._send = send
        self.events = events
        self.sink = sink
        self.offers: dict[TransferID, FileOffer] = {}
        self.transfers: dict[TransferID, TransferRecord] = {}

    async def handle_offer(self, payload: TMessage) -> None:
        try:
            offer = FileOffer.from_payload(payload)
        except ParseError as e:
            logger.warning("Ignoring malformed file offer from %s: %s", self.peer_id, e)
            return
        if offer.id in self.offers or offer.id in self.transfers:
            logger.warning("Ignoring duplicate file offer %s", offer.id)
            return
        self.offers[offer.id] = offer
        logger.info(
            "%s offers %s (%d bytes) as %s",
            self.peer_id,
            offer.name,
            offer.size,
            offer.id,
        )
        await self.events.publish(TRANSFER_OFFER, offer)

    async def accept(self, transfer_id: TransferID) -> TransferRecord:
        offer = self._pop_offer(transfer_id)
        record = TransferRecord(
            id=offer.id,
            name=offer.name,
            size=offer.size,
            direction=TransferDirection.RECEIVE,
            state=TransferState.ACCEPTED,
        )
        # The record must exist before the peer can start sending chunks
        self.transfers[offer.id] = record
        try:
            await self._send_payload(create_file_response_message(offer.id, True))
        except Exception:
            del self.transfers[offer.id]
            raise
        logger.info("Accepted %s from %s", offer.name, self.peer_id)
        return record

    async def reject(self, transfer_id: TransferID) -> None:
        offer = self._pop_offer(transfer_id)
        await self._send_payload(create_file_response_message(offer.id, False))
        logger.info("Rejected %s from %s", offer.name, self.peer_id)

    async def respond(self, transfer_id: TransferID, accept: bool) -> None:
        if accept:
            await self.accept(transfer_id)
        else:
            await self.reject(transfer_id)

    async def handle_chunk(self, payload: TMessage) -> None:
        record = self._get_record(payload)
        if record is None:
            return
        data = payload.get("data")
        if not isinstance(data, str):
            logger.warning("Dropping chunk for %s without data", record.id)
            return
        try:
            chunk = decode_chunk(data)
        except ParseError as e:
            logger.warning("Dropping undecodable chunk for %s: %s", record.id, e)
            return

        record.state = TransferState.IN_PROGRESS
        record.append_chunk(chunk)
        logger.debug("Receiving %s: %.1f%%", record.name, record.progress * 100)
        await self.events.publish(TRANSFER_PROGRESS, record)

    async def handle_done(self, payload: TMessage) -> None:
        record = self._get_record(payload)
        if record is None:
            return
        del self.transfers[record.id]

        if record.received_bytes != record.size:
            logger.warning(
                "Transfer %s finished with %d of %d bytes",
                record.id,
                record.received_bytes,
                record.size,
            )
        data = record.assemble()
        record.chunks.clear()
        record.state = TransferState.COMPLETE
        logger.info("Received %s (%d bytes)", record.name, len(data))

        if self.sink is not None:
            await self.sink.deliver(self.peer_id, record.name, data)
        await self.events.publish(TRANSFER_COMPLETE, record)

    def abort_all(self) -> list[TransferRecord]:
        """Drop undecided offers and mark in-flight transfers Aborted."""
        aborted = list(self.transfers.values())
        for record in aborted:
            record.state = TransferState.ABORTED
            record.chunks.clear()
        self.transfers.clear()
        self.offers.clear()
        return aborted

    def _pop_offer(self, transfer_id: TransferID) -> FileOffer:
        try:
            return self.offers.pop(transfer_id)
        except KeyError:
            raise TransferError(f"No pending offer {transfer_id}") from None

    def _get_record(self, payload: TMessage) -> TransferRecord | None:
        transfer_id = payload.get("id")
        record = None
        if isinstance(transfer_id, str):
            record = self.transfers.get(TransferID(transfer_id))
        if record is None:
            logger.warning(
                "Dropping %s for unknown transfer %s", payload.get("type"), transfer_id
            )
        return record

    async def _send_payload(self, payload: TMessage) -> None:
        await self._send(encode_payload(payload))
