"""
TwiML for the voice webhook.

Tells Twilio to open a bidirectional Media Stream to the relay's
WebSocket endpoint.
"""
from twilio.twiml.voice_response import VoiceResponse, Connect, Stream
import logging

logger = logging.getLogger(__name__)

# <Connect><Stream> (bidirectional) only supports the inbound track
STREAM_TRACK = "inbound_track"

def stream_url(host: str, stream_path: str) -> str:
    """
    Build the WSS URL Twilio should connect to.

    Args:
        host: Public host (and optional port) of this server, e.g. "relay.example.com"
        stream_path: WebSocket route, e.g. "/stream"
    """
    return f"wss://{host.rstrip('/')}/{stream_path.lstrip('/')}"

def generate_twiml(websocket_url: str, greeting: str = "") -> str:
    """
    Generate TwiML for Media Streams connection.

    Args:
        websocket_url: Full WSS URL for Twilio to connect to (e.g., wss://your-domain.com/stream)
        greeting: Optional text spoken before the stream opens

    Returns:
        TwiML XML string
    """
    response = VoiceResponse()
    if greeting:
        response.say(greeting)
    connect = Connect()
    stream = Stream(url=websocket_url, track=STREAM_TRACK)
    connect.append(stream)
    response.append(connect)

    twiml_str = str(response)
    logger.debug(f"Generated TwiML: {twiml_str}")
    return twiml_str
