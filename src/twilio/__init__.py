"""Twilio Media Streams relay"""
from .frames import FrameSender, build_clear_frame, build_mark_frame, build_media_frame
from .models import InboundEvent, OutboundFrame, ProtocolError, parse_event
from .twiml import generate_twiml, stream_url

__all__ = [
    "FrameSender",
    "build_clear_frame",
    "build_mark_frame",
    "build_media_frame",
    "InboundEvent",
    "OutboundFrame",
    "ProtocolError",
    "parse_event",
    "generate_twiml",
    "stream_url",
]
