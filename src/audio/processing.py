"""
Pluggable audio processing hook.

The relay hands every decoded inbound chunk to a processor and sends
whatever it returns back to the caller. Processors work on raw payload
bytes in the stream's negotiated format (mu-law 8kHz for Twilio); any
transcoding is the processor's own business.

The default processor echoes the caller's audio unchanged.
"""
import importlib
import logging
from typing import Callable

logger = logging.getLogger(__name__)

AudioProcessor = Callable[[bytes], bytes]


def passthrough(audio: bytes) -> bytes:
    """Return the audio unchanged."""
    return audio


def load_processor(path: str) -> AudioProcessor:
    """
    Resolve an audio processor from a "module:attribute" import path.

    Args:
        path: e.g. "src.audio.processing:passthrough"

    Returns:
        The callable found at that path

    Raises:
        ValueError: If the path is malformed, can't be imported, or isn't callable
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Audio processor must be 'module:attribute', got {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Cannot import audio processor module {module_name!r}: {e}") from e

    processor = getattr(module, attr, None)
    if processor is None:
        raise ValueError(f"Module {module_name!r} has no attribute {attr!r}")
    if not callable(processor):
        raise ValueError(f"Audio processor {path!r} is not callable")

    logger.info(f"Loaded audio processor: {path}")
    return processor
