"""Tests for per-connection stream state."""

from src.state.manager import StreamState, StreamStateManager
from src.twilio.models import StartEvent


def _start(stream_sid="MZ1", call_sid="CA1"):
    return StartEvent.model_validate({
        "event": "start",
        "streamSid": stream_sid,
        "start": {
            "accountSid": "AC1",
            "callSid": call_sid,
            "tracks": ["inbound"],
            "mediaFormat": {"encoding": "audio/x-mulaw", "sampleRate": 8000, "channels": 1},
        },
    })


class TestTransitions:
    """Idle → Connected → Streaming → Stopped."""

    def test_initial_state(self):
        mgr = StreamStateManager()

        assert mgr.state is StreamState.IDLE
        assert mgr.session is None
        assert mgr.stream_sid == ""

    def test_full_lifecycle(self):
        mgr = StreamStateManager()

        mgr.on_connected("Call", "1.0.0")
        assert mgr.state is StreamState.CONNECTED
        assert mgr.protocol == "Call"

        session = mgr.on_start(_start())
        assert mgr.state is StreamState.STREAMING
        assert session.stream_sid == "MZ1"
        assert session.call_sid == "CA1"
        assert session.account_sid == "AC1"
        assert session.encoding == "audio/x-mulaw"
        assert session.sample_rate == 8000
        assert session.channels == 1
        assert mgr.stream_sid == "MZ1"

        released = mgr.on_stop("MZ1")
        assert released is session
        assert mgr.state is StreamState.STOPPED
        assert mgr.session is None
        assert mgr.stop_reason == "stop received"

    def test_start_without_connected(self):
        mgr = StreamStateManager()

        mgr.on_start(_start())

        assert mgr.state is StreamState.STREAMING

    def test_repeated_connected_ignored(self):
        mgr = StreamStateManager()
        mgr.on_connected("Call", "1.0.0")
        mgr.on_start(_start())

        assert mgr.on_connected("Call", "2.0.0") is StreamState.STREAMING
        assert mgr.version == "1.0.0"

    def test_restart_replaces_session(self):
        mgr = StreamStateManager()
        mgr.on_start(_start("MZ1"))
        mgr.on_start(_start("MZ2"))

        assert mgr.stream_sid == "MZ2"
        assert mgr.state is StreamState.STREAMING

    def test_stop_with_mismatched_sid_still_stops(self):
        mgr = StreamStateManager()
        mgr.on_start(_start("MZ1"))

        mgr.on_stop("MZ-other")

        assert mgr.is_stopped

    def test_stop_from_connected(self):
        mgr = StreamStateManager()
        mgr.on_connected("Call", "1.0.0")

        assert mgr.on_stop("") is None
        assert mgr.is_stopped


class TestClose:
    """Peer close and transport errors stop from any state."""

    def test_close_from_streaming(self):
        mgr = StreamStateManager()
        mgr.on_start(_start())

        session = mgr.on_close("peer disconnected")

        assert session.stream_sid == "MZ1"
        assert mgr.is_stopped
        assert mgr.stop_reason == "peer disconnected"

    def test_close_after_stop_keeps_reason(self):
        mgr = StreamStateManager()
        mgr.on_start(_start())
        mgr.on_stop("MZ1")

        assert mgr.on_close("connection closing") is None
        assert mgr.stop_reason == "stop received"
