"""Structural types for the collaborators the session controller drives.

The signaling stack and the media sink live outside this package; any
object with the right methods can be plugged in.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Protocol

from popcall.models import AgentConfig, CallOptions


class AudioTrack(Protocol):
    """A local audio track that can be switched on and off."""

    enabled: bool


class CallSession(Protocol):
    """An established or in-progress call owned by the session layer."""

    def terminate(self) -> None:
        """Ask the session layer to tear the call down.

        The session layer is expected to emit an ``ended`` event afterwards.
        """
        ...

    def send_tone(self, tone: str) -> None: ...

    def get_local_audio_tracks(self) -> Iterable[AudioTrack]: ...

    def get_remote_streams(self) -> list[Any]: ...


class Agent(Protocol):
    """Session-layer user agent."""

    def start(self) -> None: ...

    def call(self, address: str, options: CallOptions) -> CallSession:
        """Originate a call to *address*.

        Lifecycle events are delivered through ``options.event_handlers``.
        """
        ...


AgentFactory = Callable[[AgentConfig], Agent]


class MediaSink(Protocol):
    """Destination that renders inbound media."""

    def attach_stream(self, sink_id: str, kind: str, stream: Any) -> None:
        """Bind *stream* to the sink named *sink_id*, creating it if absent."""
        ...
