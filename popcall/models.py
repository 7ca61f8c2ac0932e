"""Data models for popcall."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from popcall.config import (
    AGENT_URI,
    AUDIO_SINK,
    AUTH_SERVER_URL,
    CALL_DOMAIN,
    CONTEXT_HEADER,
    DEFAULT_PROBE_TIMEOUT_MS,
    FALLBACK_POP,
    POP_HEADER,
    UNREACHABLE_LATENCY,
    VIDEO_SINK,
)


@dataclass(frozen=True)
class ProbeTarget:
    """A candidate POP as announced by the authentication service."""

    name: str
    endpoint: str


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one latency probe.

    ``latency_ms`` is strictly positive on success and
    ``UNREACHABLE_LATENCY`` (-1) when the POP timed out or errored.
    """

    name: str
    latency_ms: int = UNREACHABLE_LATENCY

    @property
    def is_reachable(self) -> bool:
        return self.latency_ms > 0


@dataclass
class Credentials:
    """Request sent to the authentication service."""

    username: str
    key: str
    expires: Optional[int] = None


@dataclass
class AuthData:
    """Parsed authentication service response."""

    username: str
    password: str
    ws_servers: list[str] = field(default_factory=list)
    wss_servers: list[str] = field(default_factory=list)
    targets: list[ProbeTarget] = field(default_factory=list)

    def servers(self, secure: bool = True) -> list[str]:
        return self.wss_servers if secure else self.ws_servers


class SessionState(str, enum.Enum):
    IDLE = "idle"
    DIALING = "dialing"
    PROGRESS = "progress"
    ACTIVE = "active"
    ENDED = "ended"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.ENDED, SessionState.FAILED)

    def __str__(self) -> str:
        return self.value


@dataclass
class Session:
    """Lifecycle record of a single call."""

    state: SessionState = SessionState.IDLE
    selected_pop: Optional[str] = None
    remote_context: Optional[str] = None
    failure_cause: Optional[str] = None
    handle: Any = None  # Session-layer call object
    muted: bool = False
    hangup_pending: bool = False  # Hangup requested before a call handle existed


@dataclass
class SessionEvent:
    """Event emitted by the session layer for an ongoing call."""

    session: Any = None
    cause: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class AgentConfig:
    """Configuration handed to the session-layer agent factory."""

    authorization_user: Optional[str] = None
    password: Optional[str] = None
    ws_servers: list[str] = field(default_factory=list)
    uri: str = AGENT_URI
    trace_sip: bool = True
    register: bool = False


@dataclass
class CallOptions:
    """Options passed along with an outgoing call."""

    extra_headers: list[str] = field(default_factory=list)
    media: dict[str, bool] = field(default_factory=lambda: {"audio": True, "video": False})
    event_handlers: dict[str, Callable[[SessionEvent], None]] = field(default_factory=dict)


@dataclass
class ClientConfig:
    """Client-side settings for authentication, probing and calls."""

    auth_server_url: str = AUTH_SERVER_URL
    use_secure_socket: bool = True
    allow_video: bool = False
    audio_sink: str = AUDIO_SINK
    video_sink: str = VIDEO_SINK
    call_domain: str = CALL_DOMAIN
    probe_timeout_ms: int = DEFAULT_PROBE_TIMEOUT_MS
    fallback_pop: str = FALLBACK_POP
    pop_header: str = POP_HEADER
    context_header: str = CONTEXT_HEADER
    context: Optional[str] = None  # Carried transparently on every call


@dataclass
class Environment:
    """Runtime description used to decide whether calls can be placed."""

    user_agent: str = ""
    app_version: str = ""
    has_media_capture: bool = True
    opera_object: bool = False  # Legacy window.opera present
    chrome_object: bool = False  # window.chrome present
