"""
Outbound Media Streams frames.

Builders produce the three messages Twilio accepts on a bidirectional
stream (media, mark, clear). FrameSender serializes one frame per
WebSocket message and never lets a send failure escape to the caller.
"""
import logging
import time
from typing import Optional

from fastapi import WebSocket

from src.twilio.models import (
    MarkLabel,
    OutboundClear,
    OutboundFrame,
    OutboundMark,
    OutboundMedia,
    OutboundMediaChunk,
)

logger = logging.getLogger(__name__)


def current_timestamp_ms() -> str:
    """Wall-clock milliseconds since the epoch, as Twilio-style string."""
    return str(int(time.time() * 1000))


def build_media_frame(
    stream_sid: str,
    payload: str,
    chunk: Optional[str] = None,
    timestamp: Optional[str] = None,
) -> OutboundMedia:
    """
    Build an outbound media frame.

    Args:
        stream_sid: Active stream identifier ("" before the stream starts)
        payload: Base64-encoded audio
        chunk: Chunk counter of the triggering inbound chunk, if any
        timestamp: Timestamp of the triggering inbound chunk, if any.
            Falls back to the current wall-clock time when absent or
            empty; an empty string is not echoed, since "" is not a
            usable timestamp.

    Returns:
        OutboundMedia record on the outbound track
    """
    return OutboundMedia(
        streamSid=stream_sid,
        media=OutboundMediaChunk(
            chunk=chunk or "",
            timestamp=timestamp or current_timestamp_ms(),
            payload=payload,
        ),
    )


def build_mark_frame(stream_sid: str, name: str) -> OutboundMark:
    return OutboundMark(streamSid=stream_sid, mark=MarkLabel(name=name))


def build_clear_frame(stream_sid: str) -> OutboundClear:
    return OutboundClear(streamSid=stream_sid)


class FrameSender:
    """
    Writes outbound frames to a single Twilio WebSocket.

    Every send is one complete text message. Failures (socket already
    closed, transport reset) are logged and reported as False.
    """

    def __init__(self, websocket: WebSocket, log: Optional[logging.Logger] = None):
        self.websocket = websocket
        self.logger = log or logger
        self.frames_sent = 0
        self.send_failures = 0

    async def send(self, frame: OutboundFrame) -> bool:
        """Serialize and send one frame. Returns True if it was written."""
        try:
            await self.websocket.send_text(frame.model_dump_json())
        except Exception as e:
            self.send_failures += 1
            self.logger.warning(
                f"[{frame.streamSid}] Failed to send {frame.event} frame: {e}"
            )
            return False

        self.frames_sent += 1
        return True

    async def send_media(
        self,
        stream_sid: str,
        payload: str,
        chunk: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> bool:
        return await self.send(build_media_frame(stream_sid, payload, chunk, timestamp))

    async def send_mark(self, stream_sid: str, name: str) -> bool:
        """Ask Twilio to echo `name` back once queued audio before it has played."""
        sent = await self.send(build_mark_frame(stream_sid, name))
        if sent:
            self.logger.debug(f"[{stream_sid}] Sent mark: {name}")
        return sent

    async def send_clear(self, stream_sid: str) -> bool:
        """Flush audio Twilio has buffered but not yet played (barge-in)."""
        sent = await self.send(build_clear_frame(stream_sid))
        if sent:
            self.logger.info(f"[{stream_sid}] Sent clear")
        return sent
