from dataclasses import (
    dataclass,
)
import logging

import trio

from gsend.custom_types import (
    TransferID,
)

from .errors import (
    TransferTimeoutError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OfferResponse:
    accepted: bool
    cancelled: bool = False


class _PendingEntry:
    def __init__(self) -> None:
        self.event = trio.Event()
        self.response: OfferResponse | None = None


class PendingResponseTable:
    """
    Correlates file offers with their accept/reject responses.

    Only the first response for an entry counts. A response may arrive
    before the sender starts waiting; the waiter then returns at once.
    Entries are removed when their wait ends or on :meth:`discard`.
    Cancelled waits resolve as rejections.
    """

    def __init__(self) -> None:
        self._pending: dict[TransferID, _PendingEntry] = {}

    def __contains__(self, transfer_id: object) -> bool:
        return transfer_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def register(self, transfer_id: TransferID) -> None:
        if transfer_id in self._pending:
            raise ValueError(f"Transfer {transfer_id} is already awaiting a response")
        self._pending[transfer_id] = _PendingEntry()

    def resolve(self, transfer_id: TransferID, accepted: bool) -> bool:
        """
        Deliver the response for ``transfer_id``.

        :return: False if nothing was waiting, e.g. for a repeated response
        """
        entry = self._pending.get(transfer_id)
        if entry is None or entry.response is not None:
            return False
        entry.response = OfferResponse(accepted=accepted)
        entry.event.set()
        return True

    def discard(self, transfer_id: TransferID) -> None:
        self._pending.pop(transfer_id, None)

    def cancel_all(self) -> int:
        """Resolve every outstanding wait as a cancelled rejection."""
        entries = [e for e in self._pending.values() if e.response is None]
        for entry in entries:
            entry.response = OfferResponse(accepted=False, cancelled=True)
            entry.event.set()
        if entries:
            logger.debug("Cancelled %d pending offer responses", len(entries))
        return len(entries)

    async def wait(self, transfer_id: TransferID, timeout: float) -> OfferResponse:
        """
        Wait for the response to ``transfer_id``.

        :raises KeyError: if ``transfer_id`` was never registered
        :raises TransferTimeoutError: if no response arrives within ``timeout``
        """
        if timeout is None or timeout <= 0:
            raise ValueError("A positive response timeout is required")
        entry = self._pending[transfer_id]

        try:
            with trio.move_on_after(timeout):
                await entry.event.wait()
        finally:
            if self._pending.get(transfer_id) is entry:
                del self._pending[transfer_id]

        if entry.response is None:
            raise TransferTimeoutError(
                f"No response to offer {transfer_id} within {timeout}s"
            )
        return entry.response
