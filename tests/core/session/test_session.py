from unittest.mock import AsyncMock, Mock

import pytest
import trio

from gsend.abc import IPeerTransport
from gsend.custom_types import PeerID
from gsend.session import (
    NegotiationTimeoutError,
    Session,
    SessionClosedError,
    SessionState,
    SessionStateError,
)
from gsend.transport.description import ANSWER, OFFER, SessionDescription

OFFER_SDP = SessionDescription(OFFER, "offer-sdp")
ANSWER_SDP = SessionDescription(ANSWER, "answer-sdp")


def make_transport():
    transport = Mock(spec=IPeerTransport)
    transport.set_local_description = AsyncMock(side_effect=lambda d: d)
    transport.set_remote_description = AsyncMock()
    transport.add_candidate = AsyncMock()
    transport.send = AsyncMock()
    transport.close = AsyncMock()
    return transport


def make_session(state=SessionState.OFFERING):
    session = Session(PeerID("remote"), make_transport())
    session.state = state
    return session


def candidate(n):
    return {"candidate": f"candidate:{n}", "sdpMid": "0", "sdpMLineIndex": 0}


class TestCandidateBuffering:
    @pytest.mark.trio
    async def test_candidates_before_remote_description_are_buffered(self):
        session = make_session()
        await session.add_remote_candidate(candidate(1))
        await session.add_remote_candidate(candidate(2))

        session.transport.add_candidate.assert_not_awaited()
        assert session.pending_candidates == [candidate(1), candidate(2)]

    @pytest.mark.trio
    async def test_buffer_is_flushed_in_arrival_order(self):
        session = make_session()
        for n in range(3):
            await session.add_remote_candidate(candidate(n))

        await session.set_remote_description(ANSWER_SDP)

        applied = [c.args[0] for c in session.transport.add_candidate.await_args_list]
        assert applied == [candidate(0), candidate(1), candidate(2)]
        assert session.pending_candidates == []

    @pytest.mark.trio
    async def test_candidates_after_remote_description_apply_directly(self):
        session = make_session()
        await session.set_remote_description(ANSWER_SDP)
        await session.add_remote_candidate(candidate(7))

        session.transport.add_candidate.assert_awaited_once_with(candidate(7))
        assert session.pending_candidates == []

    @pytest.mark.trio
    async def test_remote_description_precedes_flushed_candidates(self):
        session = make_session()
        order = []
        session.transport.set_remote_description.side_effect = (
            lambda d: order.append("description")
        )
        session.transport.add_candidate.side_effect = (
            lambda c: order.append("candidate")
        )
        await session.add_remote_candidate(candidate(1))

        await session.set_remote_description(ANSWER_SDP)

        assert order == ["description", "candidate"]

    @pytest.mark.trio
    async def test_candidates_ignored_once_closed(self):
        session = make_session()
        await session.close()
        await session.add_remote_candidate(candidate(1))
        assert session.pending_candidates == []


class TestConnectedTransition:
    @pytest.mark.trio
    async def test_connected_needs_both_descriptions_and_open(self):
        session = make_session()
        on_connected = AsyncMock()
        session.events.subscribe("connected", on_connected)

        await session.set_local_description(OFFER_SDP)
        await session.handle_transport_open()
        assert session.state is SessionState.OFFERING

        await session.set_remote_description(ANSWER_SDP)
        assert session.state is SessionState.CONNECTED
        on_connected.assert_awaited_once_with(session)

    @pytest.mark.trio
    async def test_open_arriving_last(self):
        session = make_session(SessionState.ANSWERING)
        await session.set_remote_description(OFFER_SDP)
        await session.set_local_description(ANSWER_SDP)
        assert not session.is_connected

        await session.handle_transport_open()
        assert session.is_connected

    @pytest.mark.trio
    async def test_local_description_is_what_transport_reports(self):
        session = make_session()
        gathered = SessionDescription(OFFER, "offer-sdp with candidates")
        session.transport.set_local_description.side_effect = None
        session.transport.set_local_description.return_value = gathered

        await session.set_local_description(OFFER_SDP)

        assert session.local_description == gathered

    @pytest.mark.trio
    async def test_descriptions_are_set_once(self):
        session = make_session()
        await session.set_local_description(OFFER_SDP)
        await session.set_remote_description(ANSWER_SDP)

        with pytest.raises(SessionStateError):
            await session.set_local_description(OFFER_SDP)
        with pytest.raises(SessionStateError):
            await session.set_remote_description(ANSWER_SDP)

    @pytest.mark.trio
    async def test_wait_connected_times_out(self):
        session = make_session()
        with pytest.raises(NegotiationTimeoutError):
            await session.wait_connected(timeout=0.05)

    @pytest.mark.trio
    async def test_wait_connected_wakes_on_close(self):
        session = make_session()
        async with trio.open_nursery() as nursery:
            nursery.start_soon(session.close)
            with pytest.raises(SessionClosedError):
                await session.wait_connected(timeout=5)


class TestSendAndClose:
    @pytest.mark.trio
    async def test_send_requires_connected(self):
        session = make_session()
        with pytest.raises(SessionStateError):
            await session.send("hello")
        session.transport.send.assert_not_awaited()

    @pytest.mark.trio
    async def test_send_when_connected(self):
        session = make_session()
        await session.set_local_description(OFFER_SDP)
        await session.set_remote_description(ANSWER_SDP)
        await session.handle_transport_open()

        await session.send("hello")

        session.transport.send.assert_awaited_once_with("hello")

    @pytest.mark.trio
    async def test_send_after_close(self):
        session = make_session()
        await session.close()
        with pytest.raises(SessionClosedError):
            await session.send("hello")

    @pytest.mark.trio
    async def test_close_is_idempotent(self):
        session = make_session()
        on_closed = AsyncMock()
        session.events.subscribe("closed", on_closed)

        await session.close()
        await session.close()

        assert session.state is SessionState.CLOSED
        on_closed.assert_awaited_once_with(session)
        session.transport.close.assert_awaited_once()

    @pytest.mark.trio
    async def test_close_survives_transport_error(self):
        session = make_session()
        session.transport.close.side_effect = RuntimeError("already gone")

        await session.close()

        assert not session.is_live

    @pytest.mark.trio
    async def test_close_drops_mailbox(self):
        session = make_session()
        await session.close()
        with pytest.raises(trio.ClosedResourceError):
            await session.mailbox_send.send(("offer", {}))
