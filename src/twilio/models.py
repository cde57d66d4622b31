"""
Twilio Media Streams wire models.

Inbound frames decode into one record per event type. Every field except
the discriminator has a default, so missing or null fields become empty
values here instead of presence checks in the handlers.
"""
import json
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

OUTBOUND_TRACK = "outbound"


class ProtocolError(ValueError):
    """Raised when a frame can't be decoded into a Media Streams event."""


class TwilioModel(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data):
        # null means "not sent"
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


# Inbound

class MediaFormat(TwilioModel):
    encoding: str = ""  # "audio/x-mulaw"
    sampleRate: int = 0  # 8000
    channels: int = 0  # 1


class StartMetadata(TwilioModel):
    accountSid: str = ""
    callSid: str = ""
    streamSid: str = ""
    tracks: list[str] = Field(default_factory=list)
    mediaFormat: MediaFormat = Field(default_factory=MediaFormat)


class MediaChunk(TwilioModel):
    track: str = ""
    chunk: str = ""
    timestamp: str = ""  # ms since stream start
    payload: str = ""  # base64-encoded audio


class StopMetadata(TwilioModel):
    accountSid: str = ""
    callSid: str = ""


class MarkLabel(TwilioModel):
    name: str = ""


class DtmfDigit(TwilioModel):
    track: str = ""
    digit: str = ""


class ConnectedEvent(TwilioModel):
    event: Literal["connected"]
    protocol: str = ""
    version: str = ""


class StartEvent(TwilioModel):
    event: Literal["start"]
    streamSid: str = ""
    sequenceNumber: str = ""
    start: StartMetadata = Field(default_factory=StartMetadata)

    @property
    def stream_sid(self) -> str:
        return self.streamSid or self.start.streamSid


class MediaEvent(TwilioModel):
    event: Literal["media"]
    streamSid: str = ""
    sequenceNumber: str = ""
    media: MediaChunk = Field(default_factory=MediaChunk)


class StopEvent(TwilioModel):
    event: Literal["stop"]
    streamSid: str = ""
    sequenceNumber: str = ""
    stop: StopMetadata = Field(default_factory=StopMetadata)


class MarkEvent(TwilioModel):
    event: Literal["mark"]
    streamSid: str = ""
    sequenceNumber: str = ""
    mark: MarkLabel = Field(default_factory=MarkLabel)


class DtmfEvent(TwilioModel):
    event: Literal["dtmf"]
    streamSid: str = ""
    sequenceNumber: str = ""
    dtmf: DtmfDigit = Field(default_factory=DtmfDigit)


class UnknownEvent(TwilioModel):
    event: str


InboundEvent = Union[
    ConnectedEvent, StartEvent, MediaEvent, StopEvent, MarkEvent, DtmfEvent, UnknownEvent
]

EVENT_MODELS: dict[str, type[TwilioModel]] = {
    "connected": ConnectedEvent,
    "start": StartEvent,
    "media": MediaEvent,
    "stop": StopEvent,
    "mark": MarkEvent,
    "dtmf": DtmfEvent,
}


def parse_event(raw_text: str) -> Optional[InboundEvent]:
    """
    Decode one text frame into a typed event.

    Args:
        raw_text: One complete WebSocket text frame

    Returns:
        The decoded event, an UnknownEvent for unrecognised event names,
        or None when the frame has no usable "event" field

    Raises:
        ProtocolError: If the frame isn't a JSON object or a known event
            carries fields of the wrong type
    """
    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError(f"expected a JSON object, got {type(data).__name__}")

    event = data.get("event")
    if not event or not isinstance(event, str):
        return None

    model = EVENT_MODELS.get(event)
    if model is None:
        return UnknownEvent(event=event)

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(f"invalid '{event}' event: {e.error_count()} field error(s): {e}") from e


# Outbound

class OutboundMediaChunk(TwilioModel):
    track: str = OUTBOUND_TRACK
    chunk: str = ""
    timestamp: str
    payload: str


class OutboundMedia(TwilioModel):
    event: Literal["media"] = "media"
    streamSid: str
    media: OutboundMediaChunk


class OutboundMark(TwilioModel):
    event: Literal["mark"] = "mark"
    streamSid: str
    mark: MarkLabel


class OutboundClear(TwilioModel):
    event: Literal["clear"] = "clear"
    streamSid: str


OutboundFrame = Union[OutboundMedia, OutboundMark, OutboundClear]
