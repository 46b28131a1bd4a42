"""
A gsend peer: relay connection, sessions and transfers behind one object.
"""

from collections.abc import AsyncIterator, Sequence
from contextlib import AsyncExitStack, asynccontextmanager
from functools import partial
import logging
from pathlib import Path

import trio

from gsend.abc import (
    ITransferSink,
)
from gsend.config import (
    PeerConfig,
)
from gsend.custom_types import (
    PeerID,
    TEventHandler,
    TMessage,
    TOfferDecider,
    TransferID,
)
from gsend.events import (
    EventBus,
)
from gsend.multiplexer.messages import (
    TEXT,
    create_text_message,
    encode_payload,
)
from gsend.relay.messages import (
    PEER_LIST,
    SIGNAL,
    SignalEnvelope,
)
from gsend.session import (
    Session,
    SessionClosedError,
    SessionError,
    SessionNegotiator,
)
from gsend.session.negotiator import (
    SESSION_CREATED,
    TTransportFactory,
)
from gsend.session.session import (
    SESSION_CLOSED,
    SESSION_CONNECTED,
)
from gsend.signaling import (
    SignalingClient,
    open_signaling_client,
)
from gsend.transfer import (
    TRANSFER_ABORTED,
    TRANSFER_COMPLETE,
    TRANSFER_OFFER,
    TRANSFER_PROGRESS,
    FileOffer,
    TransferError,
    TransferManager,
    TransferRecord,
)

logger = logging.getLogger(__name__)

NODE_PEERS = "peers"
NODE_TEXT = "text"
NODE_FILE_OFFER = TRANSFER_OFFER
NODE_PROGRESS = TRANSFER_PROGRESS
NODE_COMPLETE = TRANSFER_COMPLETE
NODE_ABORTED = TRANSFER_ABORTED
NODE_CONNECTED = SESSION_CONNECTED
NODE_CLOSED = SESSION_CLOSED


class PeerNode:
    """
    Everything one user of gsend needs, keyed by remote peer id.

    Events published on :attr:`events`, every handler receiving the remote
    peer id first except for ``"peers"``:

    * ``"peers"`` with the current list of other peers on the relay;
    * ``"connected"`` and ``"closed"`` as sessions come and go;
    * ``"text"`` with the message string;
    * ``"file-offer"`` with a :class:`~gsend.transfer.FileOffer`;
    * ``"progress"``, ``"complete"`` and ``"aborted"`` with a
      :class:`~gsend.transfer.TransferRecord`.

    Offers wait for :meth:`accept` or :meth:`reject` unless an
    ``offer_decider`` is given, in which case it is called for each offer in
    a background task and its answer is sent back.
    """

    def __init__(
        self,
        signaling: SignalingClient,
        transport_factory: TTransportFactory,
        sink: ITransferSink | None = None,
        offer_decider: TOfferDecider | None = None,
        config: PeerConfig | None = None,
    ) -> None:
        self.config = config or PeerConfig()
        self.signaling = signaling
        self.sink = sink
        self.offer_decider = offer_decider
        self.events = EventBus()
        self.negotiator = SessionNegotiator(
            signaling, transport_factory, self.config.mailbox_size
        )
        self.transfers: dict[PeerID, TransferManager] = {}
        self._nursery: trio.Nursery | None = None
        self._peers_changed = trio.Event()

        signaling.subscribe(PEER_LIST, self._on_peer_list)
        signaling.subscribe(SIGNAL, self._on_signal)
        self.negotiator.events.subscribe(SESSION_CREATED, self._on_session_created)
        self.negotiator.events.subscribe(SESSION_CONNECTED, self._on_connected)
        self.negotiator.events.subscribe(SESSION_CLOSED, self._on_closed)

    @property
    def peer_id(self) -> PeerID | None:
        return self.signaling.peer_id

    @property
    def peers(self) -> list[PeerID]:
        return list(self.signaling.peers)

    def set_nursery(self, nursery: trio.Nursery) -> None:
        self._nursery = nursery
        self.negotiator.set_nursery(nursery)

    def subscribe(self, event: str, handler: TEventHandler) -> None:
        self.events.subscribe(event, handler)

    def unsubscribe(self, event: str, handler: TEventHandler) -> None:
        self.events.unsubscribe(event, handler)

    async def wait_for_peer(self, peer_id: PeerID, timeout: float) -> None:
        """
        Wait until ``peer_id`` is on the relay.

        :raises trio.TooSlowError: if it does not show up within ``timeout``
        """
        with trio.fail_after(timeout):
            while peer_id not in self.signaling.peers:
                await self._peers_changed.wait()

    # -------------------------- commands --------------------------

    async def connect(self, peer_id: PeerID, timeout: float | None = None) -> Session:
        """
        Return a Connected session with ``peer_id``, negotiating one if needed.

        :raises NegotiationTimeoutError: if not connected within ``timeout``
        :raises SessionClosedError: if negotiation failed
        """
        session = self.negotiator.get_session(peer_id)
        if session is None or not session.is_live:
            session = await self.negotiator.connect(peer_id)
        if not session.is_connected:
            await session.wait_connected(
                self.config.connect_timeout if timeout is None else timeout
            )
        return session

    async def disconnect(self, peer_id: PeerID) -> None:
        await self.negotiator.close_session(peer_id)

    async def send_text(self, peer_id: PeerID, message: str) -> None:
        session = self._require_session(peer_id)
        await session.send(encode_payload(create_text_message(message)))

    async def send_file(
        self, peer_id: PeerID, name: str, data: bytes
    ) -> TransferRecord:
        """
        Offer ``data`` to ``peer_id`` and send it once accepted.

        :raises TransferRejectedError: the peer declined
        :raises TransferAbortedError: the session closed first
        :raises TransferTimeoutError: the peer did not answer
        """
        return await self._require_manager(peer_id).send_file(name, data)

    async def send_path(
        self, peer_id: PeerID, path: str | Path, name: str | None = None
    ) -> TransferRecord:
        return await self._require_manager(peer_id).send_path(path, name)

    async def accept(self, peer_id: PeerID, offer_id: TransferID) -> TransferRecord:
        return await self._require_manager(peer_id).accept(offer_id)

    async def reject(self, peer_id: PeerID, offer_id: TransferID) -> None:
        await self._require_manager(peer_id).reject(offer_id)

    async def close(self) -> None:
        await self.negotiator.close()

    def _require_session(self, peer_id: PeerID) -> Session:
        session = self.negotiator.get_session(peer_id)
        if session is None:
            raise SessionClosedError(f"No session with {peer_id}", peer_id)
        return session

    def _require_manager(self, peer_id: PeerID) -> TransferManager:
        self._require_session(peer_id)
        manager = self.transfers.get(peer_id)
        if manager is None:
            raise SessionClosedError(f"No session with {peer_id}", peer_id)
        return manager

    # -------------------------- signaling handlers --------------------------

    async def _on_peer_list(self, peers: Sequence[PeerID]) -> None:
        await self.negotiator.handle_peer_list(peers)
        self._peers_changed.set()
        self._peers_changed = trio.Event()
        await self.events.publish(NODE_PEERS, list(peers))

    async def _on_signal(self, envelope: SignalEnvelope) -> None:
        await self.negotiator.handle_signal(envelope)

    # -------------------------- session handlers --------------------------

    async def _on_session_created(self, session: Session) -> None:
        peer_id = session.peer_id
        manager = TransferManager(
            peer_id,
            session.send,
            self.sink,
            self.config.chunk_size,
            self.config.response_timeout,
        )
        manager.attach(session.multiplexer)
        manager.events.subscribe(
            TRANSFER_OFFER, partial(self._on_file_offer, peer_id)
        )
        for event in (TRANSFER_PROGRESS, TRANSFER_COMPLETE, TRANSFER_ABORTED):
            manager.events.subscribe(
                event, partial(self.events.publish, event, peer_id)
            )
        session.multiplexer.subscribe(TEXT, partial(self._on_text, peer_id))
        session.events.subscribe(SESSION_CLOSED, manager.abort_all)
        self.transfers[peer_id] = manager

    async def _on_connected(self, session: Session) -> None:
        await self.events.publish(NODE_CONNECTED, session.peer_id)

    async def _on_closed(self, session: Session) -> None:
        manager = self.transfers.pop(session.peer_id, None)
        if manager is not None:
            manager.detach(session.multiplexer)
        await self.events.publish(NODE_CLOSED, session.peer_id)

    async def _on_text(self, peer_id: PeerID, payload: TMessage) -> None:
        await self.events.publish(NODE_TEXT, peer_id, payload["message"])

    async def _on_file_offer(self, peer_id: PeerID, offer: FileOffer) -> None:
        await self.events.publish(NODE_FILE_OFFER, peer_id, offer)
        if self.offer_decider is None:
            return
        if self._nursery is None:
            raise RuntimeError("PeerNode has no nursery, call set_nursery")
        self._nursery.start_soon(self._decide, peer_id, offer)

    async def _decide(self, peer_id: PeerID, offer: FileOffer) -> None:
        assert self.offer_decider is not None
        try:
            accepted = await self.offer_decider(peer_id, offer)
            manager = self._require_manager(peer_id)
            if accepted:
                await manager.accept(offer.id)
            else:
                await manager.reject(offer.id)
        except (TransferError, SessionError) as e:
            logger.warning(
                "Could not answer offer %s from %s: %s", offer.id, peer_id, e
            )
        except Exception:
            logger.exception("Offer decider failed for %s", offer.id)


@asynccontextmanager
async def serve_peer_node(
    signaling: SignalingClient,
    transport_factory: TTransportFactory,
    sink: ITransferSink | None = None,
    offer_decider: TOfferDecider | None = None,
    config: PeerConfig | None = None,
) -> AsyncIterator[PeerNode]:
    """
    Run a :class:`PeerNode` on an already initialized signaling client.

    Sessions are closed when the context exits.
    """
    node = PeerNode(signaling, transport_factory, sink, offer_decider, config)
    async with trio.open_nursery() as nursery:
        node.set_nursery(nursery)
        try:
            yield node
        finally:
            with trio.CancelScope(shield=True):
                await node.close()
            nursery.cancel_scope.cancel()


@asynccontextmanager
async def open_peer_node(
    relay_url: str | None = None,
    transport_factory: TTransportFactory | None = None,
    sink: ITransferSink | None = None,
    offer_decider: TOfferDecider | None = None,
    config: PeerConfig | None = None,
) -> AsyncIterator[PeerNode]:
    """
    Connect to a relay and yield a running :class:`PeerNode`.

    Without a ``transport_factory`` sessions use aiortc data channels.
    """
    config = config or PeerConfig()
    url = relay_url or config.relay_url
    async with AsyncExitStack() as stack:
        if transport_factory is None:
            from gsend.transport.aiortc_transport import (
                open_aiortc_transport_factory,
            )

            transport_factory = await stack.enter_async_context(
                open_aiortc_transport_factory(config.ice_servers)
            )
        signaling = await stack.enter_async_context(
            open_signaling_client(url, config.init_timeout)
        )
        node = await stack.enter_async_context(
            serve_peer_node(
                signaling, transport_factory, sink, offer_decider, config
            )
        )
        logger.info("Peer node %s connected to %s", node.peer_id, url)
        yield node
