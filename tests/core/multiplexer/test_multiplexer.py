import json
from unittest.mock import AsyncMock

import pytest

from gsend.custom_types import PeerID
from gsend.exceptions import ParseError
from gsend.multiplexer import MessageMultiplexer
from gsend.multiplexer.messages import (
    FILE_CHUNK,
    FILE_OFFER,
    TEXT,
    create_file_offer_message,
    create_file_response_message,
    create_text_message,
    decode_payload,
    encode_payload,
)


@pytest.fixture
def multiplexer():
    return MessageMultiplexer(PeerID("peer-a"))


class TestPayloads:
    def test_text_roundtrip(self):
        payload = create_text_message("hello")
        assert decode_payload(encode_payload(payload)) == payload

    def test_file_response_types(self):
        assert create_file_response_message("t1", True) == {
            "type": "file-accept",
            "id": "t1",
        }
        assert create_file_response_message("t1", False)["type"] == "file-reject"

    def test_offer_payload(self):
        assert create_file_offer_message("t1", "notes.txt", 40000) == {
            "type": "file-offer",
            "id": "t1",
            "name": "notes.txt",
            "size": 40000,
        }

    @pytest.mark.parametrize("raw", ["hello", "[]", '{"message": "x"}', '{"type": 1}'])
    def test_decode_rejects_untagged(self, raw):
        with pytest.raises(ParseError):
            decode_payload(raw)


class TestMessageMultiplexer:
    @pytest.mark.trio
    async def test_routes_by_type(self, multiplexer):
        text_handler, offer_handler = AsyncMock(), AsyncMock()
        multiplexer.subscribe(TEXT, text_handler)
        multiplexer.subscribe(FILE_OFFER, offer_handler)

        offer = create_file_offer_message("t1", "a.bin", 3)
        await multiplexer.dispatch(encode_payload(offer))

        offer_handler.assert_awaited_once_with(offer)
        text_handler.assert_not_awaited()

    @pytest.mark.trio
    async def test_multiple_subscribers(self, multiplexer):
        first, second = AsyncMock(), AsyncMock()
        multiplexer.subscribe(TEXT, first)
        multiplexer.subscribe(TEXT, second)

        await multiplexer.dispatch(encode_payload(create_text_message("hi")))

        first.assert_awaited_once()
        second.assert_awaited_once()

    @pytest.mark.trio
    async def test_untagged_payload_becomes_text(self, multiplexer):
        handler = AsyncMock()
        multiplexer.subscribe(TEXT, handler)

        await multiplexer.dispatch("just some words")

        handler.assert_awaited_once_with({"type": TEXT, "message": "just some words"})

    @pytest.mark.trio
    async def test_unknown_type_becomes_raw_text(self, multiplexer):
        handler = AsyncMock()
        multiplexer.subscribe(TEXT, handler)
        raw = json.dumps({"type": "emoji", "value": ":)"})

        await multiplexer.dispatch(raw)

        handler.assert_awaited_once_with({"type": TEXT, "message": raw})

    @pytest.mark.trio
    async def test_text_without_string_message(self, multiplexer):
        handler = AsyncMock()
        multiplexer.subscribe(TEXT, handler)
        raw = json.dumps({"type": TEXT, "message": 42})

        await multiplexer.dispatch(raw)

        handler.assert_awaited_once_with({"type": TEXT, "message": raw})

    @pytest.mark.trio
    async def test_bytes_are_decoded(self, multiplexer):
        handler = AsyncMock()
        multiplexer.subscribe(TEXT, handler)

        await multiplexer.dispatch(encode_payload(create_text_message("hé")).encode())

        handler.assert_awaited_once_with({"type": TEXT, "message": "hé"})

    @pytest.mark.trio
    async def test_invalid_utf8_is_dropped(self, multiplexer):
        handler = AsyncMock()
        multiplexer.subscribe(TEXT, handler)

        await multiplexer.dispatch(b"\xff\xfe\xfd")

        handler.assert_not_awaited()

    @pytest.mark.trio
    async def test_handler_error_does_not_stop_dispatch(self, multiplexer):
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        multiplexer.subscribe(FILE_CHUNK, failing)
        multiplexer.subscribe(FILE_CHUNK, healthy)

        await multiplexer.dispatch(json.dumps({"type": FILE_CHUNK, "id": "t"}))

        healthy.assert_awaited_once()

    @pytest.mark.trio
    async def test_unsubscribe(self, multiplexer):
        handler = AsyncMock()
        multiplexer.subscribe(TEXT, handler)
        multiplexer.unsubscribe(TEXT, handler)

        await multiplexer.dispatch("hello")

        handler.assert_not_awaited()

    def test_subscribe_rejects_unknown_type(self, multiplexer):
        with pytest.raises(ValueError):
            multiplexer.subscribe("emoji", AsyncMock())
