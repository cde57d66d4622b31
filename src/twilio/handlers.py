"""
Twilio Media Streams session handler.

One MediaStreamHandler owns one WebSocket for the life of one call's media
stream. Frames are read and handled strictly in arrival order; for each
media chunk the audio hook runs and the result is sent straight back on
the same socket.

Frame-level problems (bad JSON, unknown events, bad base64, a failing
audio hook, a failed send) cost only that frame. Transport errors end the
session.
"""
import base64
import binascii
import logging
from typing import Awaitable, Callable, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from src.audio.processing import AudioProcessor, passthrough
from src.state.manager import StreamSession, StreamState, StreamStateManager, StreamStats
from src.twilio.frames import FrameSender
from src.twilio.models import (
    ConnectedEvent,
    DtmfEvent,
    MarkEvent,
    MediaEvent,
    ProtocolError,
    StartEvent,
    StopEvent,
    parse_event,
)

logger = logging.getLogger(__name__)


class MediaStreamHandler:
    def __init__(
        self,
        websocket: WebSocket,
        processor: AudioProcessor = passthrough,
        log: Optional[logging.Logger] = None,
    ):
        self.websocket = websocket
        self.processor = processor
        self.logger = log or logger
        self.state_manager = StreamStateManager(log=self.logger)
        self.sender = FrameSender(websocket, log=self.logger)
        self.stats = StreamStats()

        self._handlers: Dict[str, Callable[..., Awaitable[None]]] = {
            "connected": self._handle_connected,
            "start": self._handle_start,
            "media": self._handle_media,
            "stop": self._handle_stop,
            "mark": self._handle_mark,
            "dtmf": self._handle_dtmf,
        }

    @property
    def state(self) -> StreamState:
        return self.state_manager.state

    @property
    def session(self) -> Optional[StreamSession]:
        return self.state_manager.session

    @property
    def stream_sid(self) -> str:
        return self.state_manager.stream_sid

    async def run(self):
        """
        Read and handle frames until the stream stops.

        The WebSocket must already be accepted. It is closed on exit unless
        the peer already closed it.
        """
        try:
            while not self.state_manager.is_stopped:
                try:
                    message = await self.websocket.receive()
                except WebSocketDisconnect as e:
                    self.state_manager.on_close(f"peer disconnected (code {e.code})")
                    break
                except Exception as e:
                    self.logger.error(f"[{self.stream_sid}] WebSocket error: {e}", exc_info=True)
                    self.state_manager.on_close(f"transport error: {e}")
                    break

                if message["type"] == "websocket.disconnect":
                    self.state_manager.on_close(
                        f"peer disconnected (code {message.get('code', 1000)})"
                    )
                    break

                text = message.get("text")
                if text is None:
                    self.stats.frames_dropped += 1
                    self.logger.warning(f"[{self.stream_sid}] Ignoring non-text frame")
                    continue

                try:
                    await self.handle_frame(text)
                except Exception as e:
                    # Bugs in a handler must not take the call down
                    self.stats.frames_dropped += 1
                    self.logger.error(f"Error handling message: {e}", exc_info=True)
        finally:
            self.state_manager.on_close("connection closing")
            self.stats.send_failures = self.sender.send_failures
            await self._close()

    async def handle_frame(self, raw_text: str):
        """
        Decode one text frame and dispatch it.

        Never raises for malformed or unexpected frames; those are logged
        and dropped.
        """
        self.stats.frames_received += 1

        if self.state_manager.is_stopped:
            self.stats.frames_dropped += 1
            self.logger.debug(f"[{self.stream_sid}] Frame after stop ignored")
            return

        try:
            event = parse_event(raw_text)
        except ProtocolError as e:
            self.stats.frames_dropped += 1
            self.logger.error(f"Failed to parse message: {e}")
            return

        if event is None:
            self.logger.debug(f"Received message without event type: {raw_text[:100]}")
            return

        handler = self._handlers.get(event.event)
        if handler is None:
            self.logger.warning(f"No handler for event type: {event.event}")
            return

        await handler(event)

    async def send_mark(self, name: str) -> bool:
        """Send a named mark on the active stream."""
        return await self.sender.send_mark(self.stream_sid, name)

    async def send_clear(self) -> bool:
        """Flush Twilio's buffered outbound audio on the active stream."""
        return await self.sender.send_clear(self.stream_sid)

    async def _handle_connected(self, event: ConnectedEvent):
        self.state_manager.on_connected(event.protocol, event.version)

    async def _handle_start(self, event: StartEvent):
        self.state_manager.on_start(event)

    async def _handle_media(self, event: MediaEvent):
        """
        Relay one audio chunk.

        Flow:
        1. Decode base64 payload
        2. Run the audio processor
        3. Re-encode and send back on the outbound track, echoing the
           inbound chunk counter and timestamp
        """
        media = event.media
        session = self.state_manager.session

        if not media.payload:
            self.logger.warning(f"[{self.stream_sid}] Received media event with no payload")
            return

        if self.state is not StreamState.STREAMING:
            self.logger.warning(
                f"Media chunk {media.chunk or '?'} received before stream start "
                f"(state: {self.state.value})"
            )

        if session:
            session.audio_received_count += 1

        try:
            # Line breaks and other whitespace are tolerated; anything else
            # outside the base64 alphabet is not
            audio = base64.b64decode("".join(media.payload.split()), validate=True)
        except (binascii.Error, ValueError) as e:
            self.stats.media_dropped += 1
            self.logger.warning(
                f"[{self.stream_sid}] Dropping chunk {media.chunk or '?'}: invalid base64 payload ({e})"
            )
            return

        self.logger.debug(
            f"[{self.stream_sid}] Received audio: {len(audio)} bytes, "
            f"track={media.track}, chunk={media.chunk}, timestamp={media.timestamp}"
        )

        try:
            # b64encode rejects anything that isn't bytes-like (None, str)
            payload = base64.b64encode(self.processor(audio)).decode("ascii")
        except Exception as e:
            self.stats.media_dropped += 1
            self.logger.error(
                f"[{self.stream_sid}] Audio processor failed on chunk {media.chunk or '?'}: {e}",
                exc_info=True,
            )
            return

        sent = await self.sender.send_media(
            self.stream_sid,
            payload,
            chunk=media.chunk,
            timestamp=media.timestamp,
        )
        if sent:
            self.stats.media_relayed += 1
            if session:
                session.audio_sent_count += 1

    async def _handle_stop(self, event: StopEvent):
        self.state_manager.on_stop(event.streamSid)

    async def _handle_mark(self, event: MarkEvent):
        self.logger.info(f"[{self.stream_sid}] Playback reached mark: {event.mark.name}")

    async def _handle_dtmf(self, event: DtmfEvent):
        self.logger.info(f"[{self.stream_sid}] DTMF digit: {event.dtmf.digit}")

    async def _close(self):
        """Close the socket unless either side already has."""
        if (
            self.websocket.client_state is WebSocketState.DISCONNECTED
            or self.websocket.application_state is WebSocketState.DISCONNECTED
        ):
            return
        try:
            await self.websocket.close()
        except Exception as e:
            self.logger.debug(f"WebSocket close failed (already closed?): {e}")
