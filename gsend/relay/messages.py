"""
Message construction helpers for the signaling channel.
"""

from dataclasses import (
    dataclass,
)
import json
from typing import Any

from gsend.custom_types import (
    PeerID,
    TMessage,
)
from gsend.exceptions import (
    ParseError,
)

INIT = "init"
PEER_LIST = "peer-list"
SIGNAL = "signal"

SIGNAL_OFFER = "offer"
SIGNAL_ANSWER = "answer"
SIGNAL_CANDIDATE = "candidate"
SIGNAL_TYPES = (SIGNAL_OFFER, SIGNAL_ANSWER, SIGNAL_CANDIDATE)


@dataclass(frozen=True)
class SignalEnvelope:
    """A relayed negotiation message with the relay-assigned sender id."""

    to: PeerID
    sender: PeerID
    type: str
    payload: dict[str, Any]


def encode_message(message: TMessage) -> str:
    return json.dumps(message)


def decode_message(raw: str | bytes) -> TMessage:
    """Decode one signaling frame into a JSON object."""
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        message = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as e:
        raise ParseError(f"Invalid signaling frame: {e}") from e
    if not isinstance(message, dict):
        raise ParseError("Signaling frame is not a JSON object")
    return message


def create_init_message(peer_id: PeerID) -> TMessage:
    """Create the INIT message announcing a peer its own id."""
    return {"type": INIT, "id": peer_id}


def create_peer_list_message(peers: list[PeerID]) -> TMessage:
    """Create a PEER_LIST message."""
    return {"type": PEER_LIST, "peers": list(peers)}


def create_signal_message(to: PeerID, signal: dict[str, Any]) -> TMessage:
    """Create a client->relay SIGNAL message."""
    return {"to": to, "type": SIGNAL, "signal": signal}


def parse_signal_envelope(message: TMessage) -> SignalEnvelope:
    """
    Parse a relayed SIGNAL message.

    :raises ParseError: if the message is not a well-formed signal
    """
    if message.get("type") != SIGNAL:
        raise ParseError(f"Not a signal message: {message.get('type')!r}")
    sender = message.get("from")
    if not isinstance(sender, str):
        raise ParseError("Signal message has no sender")
    signal = message.get("signal")
    if not isinstance(signal, dict):
        raise ParseError("Signal message has no signal object")
    signal_type = signal.get("type")
    if signal_type not in SIGNAL_TYPES:
        raise ParseError(f"Unknown signal type: {signal_type!r}")
    return SignalEnvelope(
        to=PeerID(str(message.get("to", ""))),
        sender=PeerID(sender),
        type=signal_type,
        payload=signal,
    )
