"""
File chunking utilities for the transfer protocol.

Chunks travel inside JSON text messages, so each one is base64 encoded on
the way out and decoded on the way in.
"""

import base64
import binascii
from collections.abc import Iterator
from pathlib import Path

from gsend.exceptions import (
    ParseError,
)

from .config import (
    DEFAULT_CHUNK_SIZE,
)


def chunk_bytes(data: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[bytes]:
    """
    Split bytes into fixed-size chunks.

    Args:
        data: Data to chunk
        chunk_size: Size of each chunk in bytes

    Returns:
        List of chunks, the last one possibly shorter

    Example:
        >>> chunks = chunk_bytes(b"x" * 40000, chunk_size=16384)
        >>> [len(chunk) for chunk in chunks]
        [16384, 16384, 7232]

    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [
        data[offset : offset + chunk_size]
        for offset in range(0, len(data), chunk_size)
    ]


def chunk_file(
    file_path: str | Path, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> Iterator[bytes]:
    """
    Stream a file in chunks without loading it into memory.

    Raises:
        FileNotFoundError: If file doesn't exist

    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            yield chunk


def encode_chunk(chunk: bytes) -> str:
    return base64.b64encode(chunk).decode("ascii")


def decode_chunk(data: str) -> bytes:
    """
    Decode one chunk payload.

    :raises ParseError: if ``data`` is not valid base64
    """
    try:
        return base64.b64decode(data.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, AttributeError) as e:
        raise ParseError(f"Invalid chunk data: {e}") from e
