"""
File transfer errors.
"""

from typing import TYPE_CHECKING

from gsend.exceptions import (
    BaseGsendError,
)

if TYPE_CHECKING:
    from .records import TransferRecord


class TransferError(BaseGsendError):
    """Base exception for file transfer errors."""

    def __init__(self, message: str, record: "TransferRecord | None" = None):
        super().__init__(message)
        self.record = record


class TransferRejectedError(TransferError):
    """The receiving peer declined the offer."""


class TransferAbortedError(TransferRejectedError):
    """The session closed before the transfer finished."""


class TransferTimeoutError(TransferError):
    """The receiving peer did not answer the offer in time."""
