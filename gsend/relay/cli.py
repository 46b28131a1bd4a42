import argparse
from collections.abc import Sequence
import logging

import trio

from .config import (
    DEFAULT_RELAY_HOST,
    DEFAULT_RELAY_PORT,
    HANDSHAKE_TIMEOUT,
    RelayConfig,
)
from .service import (
    RelayService,
)


async def run(config: RelayConfig) -> None:
    service = RelayService(config=config)
    async with trio.open_nursery() as nursery:
        server = await nursery.start(service.serve)
        print(f"Relay listening on ws://{config.host}:{server.port}")


def main(argv: Sequence[str] | None = None) -> None:
    description = """
    Run the gsend rendezvous relay. Peers connect to it over WebSocket, receive
    an id and the list of other peers, and exchange offer/answer/candidate
    signals through it.
    """
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument(
        "--host", default=DEFAULT_RELAY_HOST, type=str, help="interface to bind"
    )
    parser.add_argument(
        "-p", "--port", default=DEFAULT_RELAY_PORT, type=int, help="port to listen on"
    )
    parser.add_argument(
        "--handshake-timeout",
        default=HANDSHAKE_TIMEOUT,
        type=float,
        help="seconds allowed for the WebSocket handshake",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="log relay activity to stderr"
    )
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO)
        logging.getLogger("gsend").setLevel(logging.INFO)
        logging.getLogger("gsend").propagate = True

    config = RelayConfig(
        host=args.host, port=args.port, handshake_timeout=args.handshake_timeout
    )
    try:
        trio.run(run, config)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
