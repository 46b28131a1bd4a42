"""Tests for file chunking."""

from pathlib import Path
import tempfile

import pytest

from gsend.exceptions import ParseError
from gsend.transfer.chunker import (
    chunk_bytes,
    chunk_file,
    decode_chunk,
    encode_chunk,
)
from gsend.transfer.config import DEFAULT_CHUNK_SIZE


class TestChunkBytes:
    def test_default_chunk_size(self):
        assert DEFAULT_CHUNK_SIZE == 16384

    def test_chunk_with_remainder(self):
        """40000 bytes split into two full chunks and one short one."""
        data = bytes(range(256)) * 156 + b"\x00" * 64
        assert len(data) == 40000

        chunks = chunk_bytes(data)

        assert [len(chunk) for chunk in chunks] == [16384, 16384, 7232]
        assert b"".join(chunks) == data

    def test_chunk_exact_fit(self):
        chunks = chunk_bytes(b"x" * 32, chunk_size=8)
        assert [len(chunk) for chunk in chunks] == [8, 8, 8, 8]

    def test_chunk_empty_data(self):
        assert chunk_bytes(b"") == []

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            chunk_bytes(b"data", chunk_size=0)


class TestChunkFile:
    def test_chunk_file_matches_chunk_bytes(self):
        data = b"abcdefghij" * 5000
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "data.bin"
            path.write_bytes(data)

            chunks = list(chunk_file(path, chunk_size=16384))

        assert chunks == chunk_bytes(data, chunk_size=16384)

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            list(chunk_file("/nonexistent/file.bin"))


class TestChunkEncoding:
    def test_encode_is_base64_text(self):
        assert encode_chunk(b"hello") == "aGVsbG8="

    def test_decode(self):
        assert decode_chunk("aGVsbG8=") == b"hello"

    @pytest.mark.parametrize("data", ["not base64!", "aGVsbG8", "é"])
    def test_decode_rejects_invalid(self, data):
        with pytest.raises(ParseError):
            decode_chunk(data)
