"""Call lifecycle state machine.

    IDLE --place_call--> DIALING --progress--> PROGRESS
    DIALING|PROGRESS --started--> ACTIVE --ended--> ENDED
    any non-terminal --failed--> FAILED

ENDED and FAILED are terminal; :meth:`SessionController.reset` starts a
fresh session.  The POP is chosen once, the first time a call is placed,
and then reused for every later call unless the caller overrides it.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from popcall.auth import AuthClient
from popcall.exceptions import InvalidStateError
from popcall.models import (
    AgentConfig,
    AuthData,
    CallOptions,
    ClientConfig,
    Credentials,
    Session,
    SessionEvent,
    SessionState,
)
from popcall.protocols import Agent, AgentFactory, MediaSink
from popcall.selector import PopSelector

logger = logging.getLogger(__name__)

EventHandler = Callable[[SessionEvent], None]

_IN_CALL = (SessionState.DIALING, SessionState.PROGRESS, SessionState.ACTIVE)
_RINGING = (SessionState.DIALING, SessionState.PROGRESS)


def _noop(event: SessionEvent) -> None:
    pass


class SessionController:
    """Places calls through the session layer and tracks their state.

    Parameters
    ----------
    agent_factory:
        Builds the session-layer agent once credentials are known.
    sink:
        Receives the inbound media stream when a call starts.
    selector:
        Source of the best POP.  A fresh one is created when omitted.
    auth_client:
        Used by :meth:`initialize`.
    config:
        Client settings (sinks, video, headers, fallback POP...).
    """

    def __init__(
        self,
        agent_factory: AgentFactory,
        sink: MediaSink | None = None,
        selector: PopSelector | None = None,
        auth_client: AuthClient | None = None,
        config: ClientConfig | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self._owns_selector = selector is None
        self.selector = selector or PopSelector(
            fallback_pop=self.config.fallback_pop,
            timeout_ms=self.config.probe_timeout_ms,
        )
        self.auth_client = auth_client or AuthClient(url=self.config.auth_server_url)
        self.agent_config = AgentConfig()
        self._agent_factory = agent_factory
        self._sink = sink
        self._agent: Optional[Agent] = None
        self._preferred_pop: Optional[str] = None
        self._session = Session()
        self._handlers: dict[str, EventHandler] = {
            "progress": _noop,
            "started": _noop,
            "failed": _noop,
            "ended": _noop,
        }

    # ── Properties ────────────────────────────────────────────────────

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def preferred_pop(self) -> Optional[str]:
        return self._preferred_pop

    @property
    def is_muted(self) -> bool:
        return self._session.muted

    @property
    def agent(self) -> Optional[Agent]:
        return self._agent

    # ── Caller handlers ───────────────────────────────────────────────

    def on_progress(self, handler: EventHandler) -> EventHandler:
        self._handlers["progress"] = handler
        return handler

    def on_started(self, handler: EventHandler) -> EventHandler:
        self._handlers["started"] = handler
        return handler

    def on_failed(self, handler: EventHandler) -> EventHandler:
        self._handlers["failed"] = handler
        return handler

    def on_ended(self, handler: EventHandler) -> EventHandler:
        self._handlers["ended"] = handler
        return handler

    # ── Setup ─────────────────────────────────────────────────────────

    async def __aenter__(self) -> SessionController:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop outstanding probes and close the selector this controller created."""
        if self._owns_selector:
            await self.selector.aclose()

    async def initialize(self, credentials: Credentials) -> AuthData:
        """Authenticate, start the agent and kick off POP probing."""
        auth = await self.auth_client.authenticate(credentials)
        self.process_auth_data(auth)
        return auth

    def process_auth_data(self, auth: AuthData) -> None:
        """Start the agent from *auth* and probe its POPs unless one is pinned.

        Probing is fire-and-forget and needs a running event loop; without
        one ``RuntimeError`` is raised before the agent is created.
        """
        if self._preferred_pop is None:
            logger.info("Preferred POP undefined, probing %d POPs", len(auth.targets))
            self.selector.start_probing(auth.targets)
        else:
            logger.info("Preferred POP already set to %s", self._preferred_pop)

        self.agent_config = AgentConfig(
            authorization_user=auth.username,
            password=auth.password,
            ws_servers=auth.servers(self.config.use_secure_socket),
        )
        self._agent = self._agent_factory(self.agent_config)
        self._agent.start()

    def set_preferred_pop(self, name: str) -> None:
        """Pin *name* as the POP for subsequent calls, bypassing probing."""
        self._preferred_pop = name

    def reset(self) -> Session:
        """Replace a finished session with a fresh idle one."""
        if self._session.state in _IN_CALL:
            raise InvalidStateError("reset", self._session.state)
        self._session = Session()
        return self._session

    # ── Call control ──────────────────────────────────────────────────

    def build_headers(self, pop: str, context: Optional[str] = None) -> list[str]:
        headers = [f"{self.config.pop_header}: {pop}"]
        if context:
            headers.append(f"{self.config.context_header}: {context}")
        return headers

    def place_call(self, destination: str, context: Optional[str] = None) -> Session:
        """Dial *destination* through the best (or pinned) POP.

        Origination errors raised by the agent are reported through the
        ``failed`` handler rather than raised.
        """
        session = self._session
        if session.state is not SessionState.IDLE:
            raise InvalidStateError("place a call", session.state)
        if self._agent is None:
            raise InvalidStateError("place a call", "not initialized")

        pop = self._pin_pop()
        if context is None:
            context = self.config.context

        session.selected_pop = pop
        session.remote_context = context
        options = CallOptions(
            extra_headers=self.build_headers(pop, context),
            media={"audio": True, "video": self.config.allow_video},
            event_handlers=self._bind_handlers(session),
        )
        address = f"sip:{destination}@{self.config.call_domain}"

        session.state = SessionState.DIALING
        logger.info("Calling %s via POP %s", address, pop)
        try:
            handle = self._agent.call(address, options)
        except Exception as exc:
            self._handle_failed(session, SessionEvent(cause=str(exc) or type(exc).__name__))
            return session

        if session.handle is None and handle is not None:
            session.handle = handle
            self._flush_hangup(session)
        return session

    def hangup(self) -> None:
        session = self._session
        if session.state not in _IN_CALL:
            logger.debug("Hangup ignored in state %s", session.state)
            return
        if session.handle is None:
            logger.debug("Hangup deferred until the session layer returns a call")
            session.hangup_pending = True
            return
        session.handle.terminate()

    def mute(self) -> None:
        self._set_muted(True)

    def unmute(self) -> None:
        self._set_muted(False)

    def send_signal_tone(self, tone: str) -> None:
        session = self._session
        if session.state is not SessionState.ACTIVE or session.handle is None:
            raise InvalidStateError("send a tone", session.state)
        session.handle.send_tone(tone)

    # ── Internals ─────────────────────────────────────────────────────

    def _pin_pop(self) -> str:
        if self._preferred_pop is None:
            best = self.selector.get_best_pop()
            self._preferred_pop = best.name
            logger.info("Selected POP %s (%dms)", best.name, best.latency_ms)
        return self._preferred_pop

    def _set_muted(self, muted: bool) -> None:
        session = self._session
        if session.state is not SessionState.ACTIVE or session.handle is None:
            logger.debug("Mute change ignored in state %s", session.state)
            return
        try:
            for track in session.handle.get_local_audio_tracks():
                track.enabled = not muted
        except Exception:
            logger.warning("Could not update local audio tracks", exc_info=True)
        session.muted = muted

    def _bind_handlers(self, session: Session) -> dict[str, EventHandler]:
        return {
            "progress": lambda event: self._handle_progress(session, event),
            "started": lambda event: self._handle_started(session, event),
            "failed": lambda event: self._handle_failed(session, event),
            "ended": lambda event: self._handle_ended(session, event),
        }

    def _accepts(self, session: Session, event_name: str, allowed: tuple[SessionState, ...]) -> bool:
        if session is not self._session or session.state not in allowed:
            logger.debug("Ignoring %s event in state %s", event_name, session.state)
            return False
        return True

    def _adopt(self, session: Session, event: SessionEvent) -> None:
        if event.session is not None:
            session.handle = event.session

    def _flush_hangup(self, session: Session) -> None:
        if session.hangup_pending and session.handle is not None and session.state in _IN_CALL:
            session.hangup_pending = False
            session.handle.terminate()

    def _handle_progress(self, session: Session, event: SessionEvent) -> None:
        if not self._accepts(session, "progress", _RINGING):
            return
        self._adopt(session, event)
        session.state = SessionState.PROGRESS
        self._handlers["progress"](event)
        self._flush_hangup(session)

    def _handle_started(self, session: Session, event: SessionEvent) -> None:
        if not self._accepts(session, "started", _RINGING):
            return
        self._adopt(session, event)
        session.state = SessionState.ACTIVE
        self._attach_remote_media(session)
        self._handlers["started"](event)
        self._flush_hangup(session)

    def _handle_failed(self, session: Session, event: SessionEvent) -> None:
        if not self._accepts(session, "failed", _IN_CALL):
            return
        session.state = SessionState.FAILED
        session.failure_cause = event.cause or "unknown"
        logger.error("Call failed, failure cause is %s", session.failure_cause)
        self._handlers["failed"](event)

    def _handle_ended(self, session: Session, event: SessionEvent) -> None:
        if not self._accepts(session, "ended", _IN_CALL):
            return
        session.state = SessionState.ENDED
        logger.info("Call ended")
        self._handlers["ended"](event)

    def _attach_remote_media(self, session: Session) -> None:
        if session.handle is None or self._sink is None:
            return
        streams = session.handle.get_remote_streams()
        if not streams:
            return
        if self.config.allow_video:
            self._sink.attach_stream(self.config.video_sink, "video", streams[0])
        else:
            self._sink.attach_stream(self.config.audio_sink, "audio", streams[0])
