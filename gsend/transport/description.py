from dataclasses import (
    dataclass,
)
from typing import Any

from gsend.exceptions import (
    ParseError,
)

OFFER = "offer"
ANSWER = "answer"

DESCRIPTION_TYPES = (OFFER, ANSWER)


@dataclass(frozen=True)
class SessionDescription:
    """An SDP blob together with its role in the offer/answer exchange."""

    type: str
    sdp: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "sdp": self.sdp}

    @classmethod
    def from_dict(cls, data: Any) -> "SessionDescription":
        if not isinstance(data, dict):
            raise ParseError(f"Session description must be an object, got {data!r}")
        sdp_type = data.get("type")
        sdp = data.get("sdp")
        if sdp_type not in DESCRIPTION_TYPES:
            raise ParseError(f"Unknown session description type: {sdp_type!r}")
        if not isinstance(sdp, str):
            raise ParseError("Session description is missing its sdp")
        return cls(type=sdp_type, sdp=sdp)
