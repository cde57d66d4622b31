import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import PlainTextResponse, Response

from src.audio.processing import load_processor
from src.config import settings
from src.state.manager import StreamStats
from src.twilio.handlers import MediaStreamHandler
from src.twilio.twiml import generate_twiml, stream_url

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# Stream metrics for /metrics endpoint
class StreamMetrics:
    def __init__(self):
        self.total_streams: int = 0
        self.active_streams: int = 0
        self.total_errors: int = 0
        self.frames_received: int = 0
        self.frames_dropped: int = 0
        self.media_relayed: int = 0
        self.media_dropped: int = 0
        self.send_failures: int = 0

    def on_stream_start(self):
        self.total_streams += 1
        self.active_streams += 1

    def on_stream_end(self, stats: StreamStats):
        self.active_streams = max(0, self.active_streams - 1)
        self.frames_received += stats.frames_received
        self.frames_dropped += stats.frames_dropped
        self.media_relayed += stats.media_relayed
        self.media_dropped += stats.media_dropped
        self.send_failures += stats.send_failures

    def on_error(self):
        self.total_errors += 1


metrics = StreamMetrics()

audio_processor = load_processor(settings.audio_processor)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info(
        f"Media relay starting: stream_path={settings.stream_path}, "
        f"processor={settings.audio_processor}, "
        f"max_streams={settings.max_concurrent_streams}"
    )

    yield

    # Shutdown: let active streams finish
    if metrics.active_streams > 0:
        logger.info(f"Graceful shutdown: waiting for {metrics.active_streams} active stream(s)")
        for _ in range(settings.shutdown_grace_seconds):
            if metrics.active_streams == 0:
                break
            await asyncio.sleep(1)
    logger.info("Media relay shut down")


app = FastAPI(title="Twilio Media Relay", lifespan=lifespan)


@app.get("/health")
async def health_check():
    """Health check with stream count."""
    return {
        "status": "healthy",
        "active_streams": metrics.active_streams,
        "max_concurrent_streams": settings.max_concurrent_streams,
        "audio_processor": settings.audio_processor,
    }


@app.get("/metrics")
async def metrics_endpoint():
    """Prometheus-compatible metrics."""
    lines = [
        "# HELP media_relay_streams_total Total media streams handled",
        "# TYPE media_relay_streams_total counter",
        f"media_relay_streams_total {metrics.total_streams}",
        "# HELP media_relay_streams_active Currently active media streams",
        "# TYPE media_relay_streams_active gauge",
        f"media_relay_streams_active {metrics.active_streams}",
        "# HELP media_relay_frames_received_total Inbound frames received",
        "# TYPE media_relay_frames_received_total counter",
        f"media_relay_frames_received_total {metrics.frames_received}",
        "# HELP media_relay_frames_dropped_total Inbound frames dropped as malformed",
        "# TYPE media_relay_frames_dropped_total counter",
        f"media_relay_frames_dropped_total {metrics.frames_dropped}",
        "# HELP media_relay_media_relayed_total Media chunks sent back to the caller",
        "# TYPE media_relay_media_relayed_total counter",
        f"media_relay_media_relayed_total {metrics.media_relayed}",
        "# HELP media_relay_media_dropped_total Media chunks dropped before relay",
        "# TYPE media_relay_media_dropped_total counter",
        f"media_relay_media_dropped_total {metrics.media_dropped}",
        "# HELP media_relay_send_failures_total Outbound frames that failed to send",
        "# TYPE media_relay_send_failures_total counter",
        f"media_relay_send_failures_total {metrics.send_failures}",
        "# HELP media_relay_errors_total Unexpected errors",
        "# TYPE media_relay_errors_total counter",
        f"media_relay_errors_total {metrics.total_errors}",
    ]
    return PlainTextResponse("\n".join(lines) + "\n", media_type="text/plain")


@app.post(settings.voice_webhook_path)
async def voice_webhook(request: Request):
    """Serve TwiML that connects the call to the Media Stream."""
    host = settings.public_host or request.headers.get("host", settings.server_host)
    twiml = generate_twiml(
        stream_url(host, settings.stream_path),
        greeting=settings.greeting,
    )
    return Response(content=twiml, media_type="text/xml")


@app.get(settings.stream_path)
async def media_stream_http_fallback():
    """Plain HTTP on the stream path is a client error."""
    return PlainTextResponse("WebSocket upgrade required", status_code=400)


@app.websocket(settings.stream_path)
async def media_stream_endpoint(websocket: WebSocket):
    """WebSocket endpoint for Twilio Media Streams."""
    # Connection limiting: reject if at capacity
    if metrics.active_streams >= settings.max_concurrent_streams:
        logger.warning(
            f"Connection rejected: at capacity "
            f"({settings.max_concurrent_streams} concurrent streams)"
        )
        await websocket.close(code=1013)  # 1013 = Try Again Later
        return

    await websocket.accept()
    handler = MediaStreamHandler(websocket, processor=audio_processor)
    metrics.on_stream_start()

    try:
        await handler.run()
    except Exception as e:
        logger.error(f"Media stream error: {e}", exc_info=True)
        metrics.on_error()
    finally:
        metrics.on_stream_end(handler.stats)
        logger.info(
            f"Media stream closed: {handler.state_manager.stop_reason}, "
            f"relayed={handler.stats.media_relayed}, dropped={handler.stats.media_dropped}"
        )


if __name__ == "__main__":
    import os
    import uvicorn
    port = int(os.environ.get("PORT", settings.server_port))
    uvicorn.run(
        "src.main:app",
        host=settings.server_host,
        port=port,
        log_level=settings.log_level.lower()
    )
