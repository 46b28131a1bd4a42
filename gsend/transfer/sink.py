from dataclasses import (
    dataclass,
)
import logging
from pathlib import (
    Path,
    PurePath,
)

import trio

from gsend.abc import (
    ITransferSink,
)
from gsend.custom_types import (
    PeerID,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Delivery:
    peer_id: PeerID
    name: str
    data: bytes


class MemorySink(ITransferSink):
    """Keeps every received file in memory, in delivery order."""

    def __init__(self) -> None:
        self.deliveries: list[Delivery] = []

    async def deliver(self, peer_id: PeerID, name: str, data: bytes) -> None:
        self.deliveries.append(Delivery(peer_id, name, data))


class DirectorySink(ITransferSink):
    """
    Writes received files into a directory.

    Only the final component of the announced name is used, so a peer cannot
    write outside ``directory``. Existing files are never overwritten; a
    numeric suffix is added instead.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    async def deliver(self, peer_id: PeerID, name: str, data: bytes) -> None:
        target_dir = trio.Path(self.directory)
        await target_dir.mkdir(parents=True, exist_ok=True)
        target = await self._free_path(target_dir, safe_name(name))
        await target.write_bytes(data)
        logger.info("Saved %s from %s to %s", name, peer_id, target)

    @staticmethod
    async def _free_path(directory: trio.Path, name: str) -> trio.Path:
        candidate = directory / name
        stem, suffix = PurePath(name).stem, PurePath(name).suffix
        counter = 1
        while await candidate.exists():
            candidate = directory / f"{stem} ({counter}){suffix}"
            counter += 1
        return candidate


def safe_name(name: str) -> str:
    """
    Reduce an announced file name to a bare file name.

    >>> safe_name("../../etc/passwd")
    'passwd'
    >>> safe_name("")
    'unnamed'
    """
    base = PurePath(name.replace("\\", "/")).name
    if base in ("", ".", ".."):
        return "unnamed"
    return base
