"""
Media stream state management for a single WebSocket connection.

States:
- IDLE: WebSocket accepted, nothing received yet
- CONNECTED: 'connected' received, waiting for 'start'
- STREAMING: 'start' received, media flowing
- STOPPED: 'stop' received, peer closed, or transport failed
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
import logging

from src.twilio.models import StartEvent

logger = logging.getLogger(__name__)

class StreamState(Enum):
    """Stream lifecycle states"""
    IDLE = "idle"
    CONNECTED = "connected"
    STREAMING = "streaming"
    STOPPED = "stopped"

@dataclass
class StreamSession:
    """
    Context for a single media stream.

    Created from the 'start' event and released on stop.
    """
    stream_sid: str
    call_sid: str = ""
    account_sid: str = ""
    encoding: str = ""
    sample_rate: int = 0
    channels: int = 0
    tracks: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)

    # Audio tracking
    audio_received_count: int = 0
    audio_sent_count: int = 0

@dataclass
class StreamStats:
    """Per-connection counters, reported to metrics on teardown"""
    frames_received: int = 0
    frames_dropped: int = 0
    media_relayed: int = 0
    media_dropped: int = 0
    send_failures: int = 0

class StreamStateManager:
    """
    Tracks the state of one media stream connection.

    One instance per WebSocket; nothing here is shared between calls.
    """

    def __init__(self, log: Optional[logging.Logger] = None):
        self.logger = log or logger
        self.state = StreamState.IDLE
        self.session: Optional[StreamSession] = None
        self.protocol = ""
        self.version = ""
        self.stop_reason: Optional[str] = None

    @property
    def stream_sid(self) -> str:
        """Active stream identifier, or "" before 'start'"""
        return self.session.stream_sid if self.session else ""

    @property
    def is_stopped(self) -> bool:
        return self.state is StreamState.STOPPED

    def on_connected(self, protocol: str, version: str) -> StreamState:
        """
        Handle the 'connected' message.

        Protocol and version are kept for diagnostics only.
        """
        if self.state is not StreamState.IDLE:
            self.logger.warning(
                f"Unexpected 'connected' in state {self.state.value}, ignoring"
            )
            return self.state

        self.protocol = protocol
        self.version = version
        self.state = StreamState.CONNECTED
        self.logger.info(f"Media stream connected: protocol={protocol}, version={version}")
        return self.state

    def on_start(self, event: StartEvent) -> StreamSession:
        """
        Handle the 'start' message.

        Args:
            event: Decoded start event

        Returns:
            StreamSession now owned by this connection
        """
        if self.state is StreamState.IDLE:
            self.logger.warning("Stream started without 'connected', continuing")
        elif self.state is StreamState.STREAMING:
            self.logger.warning(
                f"Stream restarted: replacing session {self.stream_sid} with {event.stream_sid}"
            )

        metadata = event.start
        media_format = metadata.mediaFormat
        self.session = StreamSession(
            stream_sid=event.stream_sid,
            call_sid=metadata.callSid,
            account_sid=metadata.accountSid,
            encoding=media_format.encoding,
            sample_rate=media_format.sampleRate,
            channels=media_format.channels,
            tracks=list(metadata.tracks),
        )
        self.state = StreamState.STREAMING

        self.logger.info(
            f"Stream started: {self.session.stream_sid}, "
            f"Call: {self.session.call_sid}, Account: {self.session.account_sid}"
        )
        self.logger.info(
            f"Media format: encoding={media_format.encoding}, "
            f"sample_rate={media_format.sampleRate}, channels={media_format.channels}"
        )
        return self.session

    def on_stop(self, stream_sid: str) -> Optional[StreamSession]:
        """
        Handle the 'stop' message.

        Releases the session and transitions to STOPPED.

        Returns:
            The released StreamSession, if one was active
        """
        if stream_sid and self.session and stream_sid != self.session.stream_sid:
            self.logger.warning(
                f"Stop for stream {stream_sid} but active stream is {self.session.stream_sid}"
            )
        return self._release("stop received")

    def on_close(self, reason: str) -> Optional[StreamSession]:
        """Peer closed the socket or the transport failed."""
        if self.is_stopped:
            return None
        return self._release(reason)

    def _release(self, reason: str) -> Optional[StreamSession]:
        session = self.session
        self.session = None
        self.state = StreamState.STOPPED
        self.stop_reason = reason

        if session:
            duration = (datetime.now() - session.started_at).total_seconds()
            self.logger.info(
                f"Stream stopped: {session.stream_sid} ({reason}), "
                f"Duration: {duration:.1f}s, "
                f"Audio received: {session.audio_received_count}, "
                f"Audio sent: {session.audio_sent_count}"
            )
        else:
            self.logger.info(f"Stream stopped before start ({reason})")
        return session
