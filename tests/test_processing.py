import pytest

from src.audio.processing import load_processor, passthrough


def test_passthrough_returns_input():
    audio = b"\xff\x7f\x00" * 50
    assert passthrough(audio) is audio


def test_load_default_processor():
    assert load_processor("src.audio.processing:passthrough") is passthrough


def test_load_stdlib_callable():
    """Any importable callable works, e.g. a byte transform."""
    processor = load_processor("builtins:bytes")
    assert processor(b"abc") == b"abc"


@pytest.mark.parametrize("path", [
    "src.audio.processing",
    ":passthrough",
    "src.audio.processing:",
    "no_such_module_xyz:process",
    "src.audio.processing:does_not_exist",
    "src.audio.processing:logger",
])
def test_bad_processor_paths(path):
    with pytest.raises(ValueError):
        load_processor(path)
