"""
Turns relayed offer/answer/candidate signals into connected sessions.
"""

from collections.abc import Callable, Sequence
from functools import partial
import logging
from typing import Any

import trio

from gsend.abc import (
    IPeerTransport,
    ISignalSender,
)
from gsend.custom_types import (
    PeerID,
)
from gsend.events import (
    EventBus,
)
from gsend.exceptions import (
    ParseError,
)
from gsend.relay.messages import (
    SIGNAL_ANSWER,
    SIGNAL_CANDIDATE,
    SIGNAL_OFFER,
    SignalEnvelope,
)
from gsend.transport.description import (
    ANSWER,
    OFFER,
    SessionDescription,
)

from .config import (
    DEFAULT_CONNECT_TIMEOUT,
    SESSION_MAILBOX_SIZE,
)
from .exceptions import (
    SessionClosedError,
    SessionExistsError,
)
from .session import (
    SESSION_CLOSED,
    SESSION_CONNECTED,
    Session,
    SessionState,
)

logger = logging.getLogger(__name__)

SESSION_CREATED = "session"

TTransportFactory = Callable[[PeerID], IPeerTransport]


class SessionNegotiator:
    """
    Keeps at most one live :class:`Session` per remote peer.

    Remote signals are queued on the owning session's mailbox and applied by
    that session's worker task, so negotiation toward one peer never holds up
    signal dispatch for another. Events published on :attr:`events`:

    * ``"session"`` when a session is created, before negotiation starts;
    * ``"connected"`` when a session reaches Connected;
    * ``"closed"`` when a session is closed.
    """

    def __init__(
        self,
        signaling: ISignalSender,
        transport_factory: TTransportFactory,
        mailbox_size: int = SESSION_MAILBOX_SIZE,
    ) -> None:
        self.signaling = signaling
        self.transport_factory = transport_factory
        self.mailbox_size = mailbox_size
        self.sessions: dict[PeerID, Session] = {}
        self.events = EventBus()
        self._nursery: trio.Nursery | None = None

    def set_nursery(self, nursery: trio.Nursery) -> None:
        """Set the nursery that runs the per-session worker tasks."""
        self._nursery = nursery

    def get_session(self, peer_id: PeerID) -> Session | None:
        return self.sessions.get(peer_id)

    async def connect(self, peer_id: PeerID) -> Session:
        """
        Start negotiating a session toward ``peer_id`` as the offerer.

        Returns once the offer has been relayed; use :meth:`wait_connected`
        to wait for the transport to open.

        :raises SessionExistsError: if a live session toward the peer exists
        """
        existing = self.sessions.get(peer_id)
        if existing is not None and existing.is_live:
            raise SessionExistsError(
                f"Session with {peer_id} already {existing.state.value}", peer_id
            )

        session = await self._create_session(peer_id, SessionState.OFFERING)
        try:
            offer = await session.transport.create_offer()
            await session.set_local_description(offer)
            await self.signaling.send_signal(
                peer_id, {"type": SIGNAL_OFFER, "sdp": _local_sdp(session)}
            )
            session.offer_relayed = True
            await self._flush_held_candidates(session)
        except Exception as e:
            logger.error("Failed to send offer to %s: %s", peer_id, e)
            await session.close()
            raise
        logger.debug("Sent offer to %s", peer_id)
        return session

    async def wait_connected(
        self, peer_id: PeerID, timeout: float = DEFAULT_CONNECT_TIMEOUT
    ) -> Session:
        session = self.sessions.get(peer_id)
        if session is None:
            raise SessionClosedError(f"No session with {peer_id}", peer_id)
        await session.wait_connected(timeout)
        return session

    async def close_session(self, peer_id: PeerID) -> None:
        session = self.sessions.get(peer_id)
        if session is not None:
            await session.close()

    async def close(self) -> None:
        for peer_id in list(self.sessions):
            await self.close_session(peer_id)

    async def handle_peer_list(self, peers: Sequence[PeerID]) -> None:
        """Close sessions whose peer has left the relay."""
        live = set(peers)
        for peer_id in list(self.sessions):
            if peer_id not in live:
                logger.info("Peer %s left the relay, closing its session", peer_id)
                await self.close_session(peer_id)

    async def handle_signal(self, envelope: SignalEnvelope) -> None:
        """Route a relayed signal to its session's mailbox."""
        peer_id = envelope.sender
        session = self.sessions.get(peer_id)

        if envelope.type == SIGNAL_OFFER:
            if session is not None and session.is_live:
                logger.warning(
                    "Ignoring offer from %s: session already %s",
                    peer_id,
                    session.state.value,
                )
                return
            session = await self._create_session(peer_id, SessionState.ANSWERING)
        elif envelope.type == SIGNAL_ANSWER:
            if session is None or session.state is not SessionState.OFFERING:
                logger.debug("Ignoring answer from %s without an offer", peer_id)
                return
        elif envelope.type == SIGNAL_CANDIDATE:
            if session is None or not session.is_live:
                logger.debug("Ignoring candidate from %s without a session", peer_id)
                return
        else:
            logger.debug("Ignoring %s signal from %s", envelope.type, peer_id)
            return

        try:
            await session.mailbox_send.send((envelope.type, envelope.payload))
        except (trio.ClosedResourceError, trio.BrokenResourceError):
            logger.debug("Session with %s closed before %s", peer_id, envelope.type)

    async def _create_session(self, peer_id: PeerID, state: SessionState) -> Session:
        if self._nursery is None:
            raise RuntimeError("SessionNegotiator has no nursery, call set_nursery")

        transport = self.transport_factory(peer_id)
        session = Session(peer_id, transport, self.mailbox_size)
        session.state = state

        transport.on("candidate", partial(self._on_local_candidate, session))
        transport.on("open", session.handle_transport_open)
        transport.on("message", session.handle_message)
        transport.on("close", session.close)
        session.events.subscribe(SESSION_CONNECTED, self._on_session_connected)
        session.events.subscribe(SESSION_CLOSED, self._on_session_closed)

        self.sessions[peer_id] = session
        logger.debug("Created session with %s (%s)", peer_id, state.value)
        await self.events.publish(SESSION_CREATED, session)
        self._nursery.start_soon(self._session_worker, session)
        return session

    async def _session_worker(self, session: Session) -> None:
        async with session.mailbox_receive:
            async for signal_type, payload in session.mailbox_receive:
                try:
                    await self._apply_signal(session, signal_type, payload)
                except ParseError as e:
                    logger.warning(
                        "Ignoring malformed %s from %s: %s",
                        signal_type,
                        session.peer_id,
                        e,
                    )
                except Exception as e:
                    logger.error(
                        "Negotiation with %s failed on %s: %s",
                        session.peer_id,
                        signal_type,
                        e,
                    )
                    await session.close()

    async def _apply_signal(
        self, session: Session, signal_type: str, payload: dict[str, Any]
    ) -> None:
        if not session.is_live:
            return

        if signal_type == SIGNAL_OFFER:
            offer = SessionDescription.from_dict(payload.get("sdp"))
            if offer.type != OFFER:
                raise ParseError(f"Offer carries a {offer.type} description")
            await session.set_remote_description(offer)
            answer = await session.transport.create_answer()
            await session.set_local_description(answer)
            await self.signaling.send_signal(
                session.peer_id, {"type": SIGNAL_ANSWER, "sdp": _local_sdp(session)}
            )
            logger.debug("Sent answer to %s", session.peer_id)

        elif signal_type == SIGNAL_ANSWER:
            if session.remote_description is not None:
                logger.debug("Ignoring repeated answer from %s", session.peer_id)
                return
            answer = SessionDescription.from_dict(payload.get("sdp"))
            if answer.type != ANSWER:
                raise ParseError(f"Answer carries a {answer.type} description")
            await session.set_remote_description(answer)

        elif signal_type == SIGNAL_CANDIDATE:
            candidate = payload.get("candidate")
            if not isinstance(candidate, dict):
                raise ParseError("Candidate signal has no candidate object")
            await session.add_remote_candidate(candidate)

    async def _on_local_candidate(
        self, session: Session, candidate: dict[str, Any]
    ) -> None:
        if not session.is_live:
            return
        # The answerer has no session until our offer reaches it
        if session.state is SessionState.OFFERING and not session.offer_relayed:
            session.held_candidates.append(candidate)
            return
        await self._relay_candidate(session, candidate)

    async def _flush_held_candidates(self, session: Session) -> None:
        while session.held_candidates and session.is_live:
            await self._relay_candidate(session, session.held_candidates.pop(0))

    async def _relay_candidate(
        self, session: Session, candidate: dict[str, Any]
    ) -> None:
        try:
            await self.signaling.send_signal(
                session.peer_id, {"type": SIGNAL_CANDIDATE, "candidate": candidate}
            )
        except Exception as e:
            logger.warning("Failed to relay candidate to %s: %s", session.peer_id, e)

    async def _on_session_connected(self, session: Session) -> None:
        await self.events.publish(SESSION_CONNECTED, session)

    async def _on_session_closed(self, session: Session) -> None:
        if self.sessions.get(session.peer_id) is session:
            del self.sessions[session.peer_id]
        await self.events.publish(SESSION_CLOSED, session)


def _local_sdp(session: Session) -> dict[str, Any]:
    assert session.local_description is not None
    return session.local_description.to_dict()
