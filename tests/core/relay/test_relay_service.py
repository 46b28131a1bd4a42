import json

import pytest
import trio
from trio_websocket import open_websocket_url

from gsend.relay import PeerRegistry, RelayService
from gsend.relay.config import RelayConfig
from gsend.tools.loopback import memory_connection_pair


async def receive_json(conn):
    with trio.fail_after(2):
        return json.loads(await conn.get_message())


async def join(nursery, service):
    server_side, client_side = memory_connection_pair()
    nursery.start_soon(service.handle_connection, server_side)
    init = await receive_json(client_side)
    assert init["type"] == "init"
    return init["id"], client_side


class TestRelayService:
    @pytest.mark.trio
    async def test_init_then_peer_list(self):
        service = RelayService()
        async with trio.open_nursery() as nursery:
            a, a_conn = await join(nursery, service)
            assert await receive_json(a_conn) == {"type": "peer-list", "peers": []}

            b, b_conn = await join(nursery, service)
            assert await receive_json(b_conn) == {"type": "peer-list", "peers": [a]}
            assert await receive_json(a_conn) == {"type": "peer-list", "peers": [b]}

            assert a != b
            assert len(service.registry) == 2

            await a_conn.aclose()
            await b_conn.aclose()

    @pytest.mark.trio
    async def test_disconnect_rebroadcasts(self):
        service = RelayService()
        async with trio.open_nursery() as nursery:
            a, a_conn = await join(nursery, service)
            await receive_json(a_conn)
            b, b_conn = await join(nursery, service)
            await receive_json(b_conn)
            await receive_json(a_conn)

            await b_conn.aclose()

            assert await receive_json(a_conn) == {"type": "peer-list", "peers": []}
            assert b not in service.registry
            await a_conn.aclose()

        assert len(service.registry) == 0

    @pytest.mark.trio
    async def test_signal_is_forwarded_with_sender(self):
        service = RelayService()
        async with trio.open_nursery() as nursery:
            a, a_conn = await join(nursery, service)
            await receive_json(a_conn)
            b, b_conn = await join(nursery, service)
            await receive_json(b_conn)
            await receive_json(a_conn)

            signal = {"type": "offer", "sdp": {"type": "offer", "sdp": "v=0"}}
            await a_conn.send_message(
                json.dumps({"to": b, "type": "signal", "signal": signal})
            )

            assert await receive_json(b_conn) == {
                "to": b,
                "from": a,
                "type": "signal",
                "signal": signal,
            }
            await a_conn.aclose()
            await b_conn.aclose()

    @pytest.mark.trio
    async def test_bad_messages_do_not_break_connection(self):
        service = RelayService()
        async with trio.open_nursery() as nursery:
            a, a_conn = await join(nursery, service)
            await receive_json(a_conn)
            b, b_conn = await join(nursery, service)
            await receive_json(b_conn)
            await receive_json(a_conn)

            await a_conn.send_message("this is not json")
            await a_conn.send_message(json.dumps({"type": "signal"}))
            await a_conn.send_message(json.dumps({"to": "nobody", "type": "x"}))
            await a_conn.send_message(json.dumps({"to": b, "type": "ping"}))

            assert await receive_json(b_conn) == {"to": b, "from": a, "type": "ping"}
            assert a in service.registry
            await a_conn.aclose()
            await b_conn.aclose()

    @pytest.mark.trio
    async def test_shared_registry(self):
        registry = PeerRegistry()
        service = RelayService(registry=registry)
        assert service.registry is registry
        assert service.config == RelayConfig()


@pytest.mark.trio
async def test_relay_over_websocket():
    service = RelayService(config=RelayConfig(host="127.0.0.1", port=0))
    async with trio.open_nursery() as nursery:
        server = await nursery.start(service.serve)
        url = f"ws://127.0.0.1:{server.port}"

        async with open_websocket_url(url) as ws_a:
            a = (await receive_json(ws_a))["id"]
            assert await receive_json(ws_a) == {"type": "peer-list", "peers": []}

            async with open_websocket_url(url) as ws_b:
                b = (await receive_json(ws_b))["id"]
                assert await receive_json(ws_b) == {"type": "peer-list", "peers": [a]}
                assert await receive_json(ws_a) == {"type": "peer-list", "peers": [b]}

                await ws_b.send_message(
                    json.dumps({"to": a, "type": "signal", "signal": {"type": "x"}})
                )
                relayed = await receive_json(ws_a)
                assert relayed["from"] == b

            assert await receive_json(ws_a) == {"type": "peer-list", "peers": []}

        nursery.cancel_scope.cancel()
