"""
Payloads carried on the peer-to-peer transport.
"""

import json

from gsend.custom_types import (
    TMessage,
    TransferID,
)
from gsend.exceptions import (
    ParseError,
)

TEXT = "text"
FILE_OFFER = "file-offer"
FILE_ACCEPT = "file-accept"
FILE_REJECT = "file-reject"
FILE_CHUNK = "file-chunk"
FILE_DONE = "file-done"

MESSAGE_TYPES = (TEXT, FILE_OFFER, FILE_ACCEPT, FILE_REJECT, FILE_CHUNK, FILE_DONE)


def encode_payload(payload: TMessage) -> str:
    return json.dumps(payload)


def decode_payload(raw: str) -> TMessage:
    """
    Decode a tagged transport payload.

    :raises ParseError: if ``raw`` is not a JSON object with a string ``type``
    """
    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise ParseError(f"Payload is not JSON: {e}") from e
    if not isinstance(payload, dict) or not isinstance(payload.get("type"), str):
        raise ParseError("Payload is not a tagged object")
    return payload


def create_text_message(message: str) -> TMessage:
    return {"type": TEXT, "message": message}


def create_file_offer_message(
    transfer_id: TransferID, name: str, size: int
) -> TMessage:
    return {"type": FILE_OFFER, "id": transfer_id, "name": name, "size": size}


def create_file_response_message(transfer_id: TransferID, accepted: bool) -> TMessage:
    return {"type": FILE_ACCEPT if accepted else FILE_REJECT, "id": transfer_id}


def create_file_chunk_message(transfer_id: TransferID, data: str) -> TMessage:
    return {"type": FILE_CHUNK, "id": transfer_id, "data": data}


def create_file_done_message(transfer_id: TransferID) -> TMessage:
    return {"type": FILE_DONE, "id": transfer_id}
