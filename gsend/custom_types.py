from collections.abc import (
    Awaitable,
    Callable,
)
from typing import TYPE_CHECKING, Any, NewType, cast

if TYPE_CHECKING:
    from gsend.transfer.records import (
        FileOffer,
    )
else:
    FileOffer = cast(type, object)

PeerID = NewType("PeerID", str)
TransferID = NewType("TransferID", str)

# A JSON object as carried on the signaling and transport channels
TMessage = dict[str, Any]
TMessageHandler = Callable[[TMessage], Awaitable[None]]
TEventHandler = Callable[..., Awaitable[None]]
TSendFn = Callable[[str], Awaitable[None]]
TOfferDecider = Callable[[PeerID, FileOffer], Awaitable[bool]]
