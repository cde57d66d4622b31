"""Tests for outbound frame building and sending."""

import json
import time
import pytest
from unittest.mock import AsyncMock

from src.twilio.frames import (
    FrameSender,
    build_clear_frame,
    build_mark_frame,
    build_media_frame,
    current_timestamp_ms,
)


def _sent(mock_ws):
    return [json.loads(call.args[0]) for call in mock_ws.send_text.call_args_list]


class TestBuilders:
    """Builders produce the exact wire shapes Twilio expects."""

    def test_media_frame_shape(self):
        frame = build_media_frame("MZ1", "AAA=", chunk="4", timestamp="80")

        assert json.loads(frame.model_dump_json()) == {
            "event": "media",
            "streamSid": "MZ1",
            "media": {"track": "outbound", "chunk": "4", "timestamp": "80", "payload": "AAA="},
        }

    def test_media_frame_defaults(self):
        before = int(time.time() * 1000)
        frame = build_media_frame("MZ1", "AAA=")
        after = int(time.time() * 1000)

        assert frame.media.chunk == ""
        assert frame.media.timestamp.isdigit()
        assert before <= int(frame.media.timestamp) <= after

    def test_empty_timestamp_uses_wall_clock(self):
        frame = build_media_frame("MZ1", "AAA=", chunk="1", timestamp="")

        assert frame.media.timestamp.isdigit()
        assert frame.media.chunk == "1"

    def test_mark_frame_shape(self):
        frame = build_mark_frame("MZ1", "end-of-reply")

        assert json.loads(frame.model_dump_json()) == {
            "event": "mark",
            "streamSid": "MZ1",
            "mark": {"name": "end-of-reply"},
        }

    def test_clear_frame_shape(self):
        frame = build_clear_frame("MZ1")

        assert json.loads(frame.model_dump_json()) == {"event": "clear", "streamSid": "MZ1"}

    def test_current_timestamp_is_epoch_ms(self):
        ts = current_timestamp_ms()
        assert ts.isdigit()
        assert len(ts) >= 13


class TestFrameSender:
    """Each send is a single text message; failures never raise."""

    @pytest.mark.asyncio
    async def test_send_media(self):
        mock_ws = AsyncMock()
        sender = FrameSender(mock_ws)

        assert await sender.send_media("MZ1", "AAA=", chunk="1", timestamp="100") is True

        mock_ws.send_text.assert_awaited_once()
        assert _sent(mock_ws) == [{
            "event": "media",
            "streamSid": "MZ1",
            "media": {"track": "outbound", "chunk": "1", "timestamp": "100", "payload": "AAA="},
        }]
        assert sender.frames_sent == 1

    @pytest.mark.asyncio
    async def test_mark_and_clear_are_standalone(self):
        """No inbound trigger is needed for mark or clear."""
        mock_ws = AsyncMock()
        sender = FrameSender(mock_ws)

        assert await sender.send_mark("any-stream", "checkpoint") is True
        assert await sender.send_clear("any-stream") is True

        assert _sent(mock_ws) == [
            {"event": "mark", "streamSid": "any-stream", "mark": {"name": "checkpoint"}},
            {"event": "clear", "streamSid": "any-stream"},
        ]

    @pytest.mark.asyncio
    async def test_send_failure_is_swallowed(self):
        mock_ws = AsyncMock()
        mock_ws.send_text.side_effect = RuntimeError("Cannot call send once a close message has been sent")
        sender = FrameSender(mock_ws)

        assert await sender.send_media("MZ1", "AAA=") is False
        assert await sender.send_mark("MZ1", "m") is False
        assert await sender.send_clear("MZ1") is False

        assert sender.send_failures == 3
        assert sender.frames_sent == 0

    @pytest.mark.asyncio
    async def test_send_continues_after_failure(self):
        mock_ws = AsyncMock()
        mock_ws.send_text.side_effect = [ConnectionResetError("reset"), None]
        sender = FrameSender(mock_ws)

        assert await sender.send_clear("MZ1") is False
        assert await sender.send_clear("MZ1") is True
        assert sender.send_failures == 1
        assert sender.frames_sent == 1
