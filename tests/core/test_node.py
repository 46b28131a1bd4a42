import base64
from contextlib import AsyncExitStack, asynccontextmanager
import json
from unittest.mock import AsyncMock

import pytest
import trio

from gsend import PeerConfig, serve_peer_node
from gsend.relay import RelayService
from gsend.session import SessionClosedError
from gsend.signaling import SignalingClient
from gsend.tools.loopback import LoopbackHub, memory_connection_pair
from gsend.transfer import (
    TransferAbortedError,
    TransferRejectedError,
    TransferState,
)
from gsend.transfer.sink import MemorySink


async def join_relay(service, nursery):
    relay_side, client_side = memory_connection_pair()
    nursery.start_soon(service.handle_connection, relay_side)
    client = SignalingClient(client_side)
    nursery.start_soon(client.run)
    await client.wait_initialized(timeout=1)
    return client


@asynccontextmanager
async def running_nodes(count=2, deciders=None, config=None):
    """Yield ``count`` nodes sharing an in-memory relay and loopback transport."""
    service = RelayService()
    hub = LoopbackHub()
    deciders = deciders or [None] * count
    async with trio.open_nursery() as nursery:
        async with AsyncExitStack() as stack:
            nodes = []
            for decider in deciders:
                client = await join_relay(service, nursery)
                node = await stack.enter_async_context(
                    serve_peer_node(
                        client,
                        hub.factory_for(client.peer_id),
                        sink=MemorySink(),
                        offer_decider=decider,
                        config=config,
                    )
                )
                nodes.append(node)
            for node in nodes:
                for other in nodes:
                    if other is not node:
                        await node.wait_for_peer(other.peer_id, timeout=2)
            yield nodes, hub
        nursery.cancel_scope.cancel()


async def connected(a, b):
    await a.connect(b.peer_id, timeout=2)
    with trio.fail_after(2):
        while not (
            b.negotiator.get_session(a.peer_id) is not None
            and b.negotiator.get_session(a.peer_id).is_connected
        ):
            await trio.sleep(0.01)


def sent_chunk_lengths(hub, a, b):
    transport = hub.transports[(a.peer_id, b.peer_id)]
    lengths = []
    for raw in transport.sent:
        payload = json.loads(raw)
        if payload["type"] == "file-chunk":
            lengths.append(len(base64.b64decode(payload["data"])))
    return lengths


def always(answer):
    async def decide(peer_id, offer):
        return answer

    return decide


class TestPeerNode:
    @pytest.mark.trio
    async def test_nodes_discover_each_other(self):
        async with running_nodes(3) as (nodes, _):
            a, b, c = nodes
            assert sorted(a.peers) == sorted([b.peer_id, c.peer_id])
            assert a.peer_id not in a.peers

    @pytest.mark.trio
    async def test_text_chat(self):
        async with running_nodes() as ((a, b), _):
            text = AsyncMock()
            b.subscribe("text", text)

            await connected(a, b)
            await a.send_text(b.peer_id, "hello there")

            text.assert_awaited_once_with(a.peer_id, "hello there")

    @pytest.mark.trio
    async def test_connect_reuses_live_session(self):
        async with running_nodes() as ((a, b), _):
            first = await a.connect(b.peer_id, timeout=2)
            second = await a.connect(b.peer_id, timeout=2)
            assert first is second

    @pytest.mark.trio
    async def test_accepted_file_is_delivered_in_chunks(self):
        async with running_nodes(deciders=[None, always(True)]) as (
            (a, b),
            hub,
        ):
            complete = AsyncMock()
            b.subscribe("complete", complete)
            await connected(a, b)

            data = bytes(range(256)) * 156 + b"\x00" * 64
            assert len(data) == 40000
            record = await a.send_file(b.peer_id, "notes.txt", data)

            assert record.state is TransferState.COMPLETE
            assert sent_chunk_lengths(hub, a, b) == [16384, 16384, 7232]
            (delivery,) = b.sink.deliveries
            assert delivery.name == "notes.txt"
            assert delivery.data == data
            assert delivery.peer_id == a.peer_id
            (peer_id, received), _ = complete.await_args
            assert peer_id == a.peer_id
            assert received.state is TransferState.COMPLETE

    @pytest.mark.trio
    async def test_rejected_file_sends_no_chunks(self):
        async with running_nodes(deciders=[None, always(False)]) as (
            (a, b),
            hub,
        ):
            await connected(a, b)

            with pytest.raises(TransferRejectedError):
                await a.send_file(b.peer_id, "notes.txt", b"n" * 40000)

            assert sent_chunk_lengths(hub, a, b) == []
            assert b.sink.deliveries == []

    @pytest.mark.trio
    async def test_manual_accept(self):
        async with running_nodes() as ((a, b), _):
            offers = []

            async def on_offer(peer_id, offer):
                offers.append((peer_id, offer))

            b.subscribe("file-offer", on_offer)
            await connected(a, b)
            records = []

            async def send():
                records.append(await a.send_file(b.peer_id, "a.txt", b"abc"))

            async with trio.open_nursery() as nursery:
                nursery.start_soon(send)
                with trio.fail_after(2):
                    while not offers:
                        await trio.sleep(0.01)
                peer_id, offer = offers[0]
                assert peer_id == a.peer_id
                assert offer.name == "a.txt"
                assert offer.size == 3
                await b.accept(peer_id, offer.id)

            assert records[0].state is TransferState.COMPLETE
            assert b.sink.deliveries[0].data == b"abc"

    @pytest.mark.trio
    async def test_disconnect_aborts_waiting_sender(self):
        async with running_nodes() as ((a, b), _):
            aborted, closed = AsyncMock(), AsyncMock()
            a.subscribe("aborted", aborted)
            a.subscribe("closed", closed)
            offered = trio.Event()

            async def on_offer(peer_id, offer):
                offered.set()

            b.subscribe("file-offer", on_offer)
            await connected(a, b)
            errors = []

            async def send():
                try:
                    await a.send_file(b.peer_id, "a.txt", b"abc")
                except TransferAbortedError as e:
                    errors.append(e)

            async with trio.open_nursery() as nursery:
                nursery.start_soon(send)
                with trio.fail_after(2):
                    await offered.wait()
                await b.disconnect(a.peer_id)

            assert len(errors) == 1
            assert errors[0].record.state is TransferState.ABORTED
            aborted.assert_awaited_once()
            closed.assert_awaited_once_with(b.peer_id)
            assert b.peer_id not in a.transfers

    @pytest.mark.trio
    async def test_commands_without_session(self):
        async with running_nodes() as ((a, b), _):
            with pytest.raises(SessionClosedError):
                await a.send_text(b.peer_id, "anyone?")
            with pytest.raises(SessionClosedError):
                await a.send_file(b.peer_id, "x", b"x")

    @pytest.mark.trio
    async def test_wait_for_unknown_peer_times_out(self):
        async with running_nodes() as ((a, _), _):
            with pytest.raises(trio.TooSlowError):
                await a.wait_for_peer("nobody", timeout=0.05)

    @pytest.mark.trio
    async def test_departed_peer_closes_session(self):
        async with running_nodes(config=PeerConfig(connect_timeout=2)) as (
            (a, b),
            _,
        ):
            closed = AsyncMock()
            a.subscribe("closed", closed)
            await connected(a, b)

            await b.signaling.close()

            with trio.fail_after(2):
                while not closed.await_count:
                    await trio.sleep(0.01)
            assert b.peer_id not in a.peers
            closed.assert_awaited_once_with(b.peer_id)
