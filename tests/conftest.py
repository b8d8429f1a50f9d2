"""Pytest configuration and fixtures for MedScribe tests."""

import asyncio
import logging
import tempfile
from pathlib import Path
from unittest.mock import Mock, patch

import numpy as np
import pytest
import yaml

from medscribe.audio.capture import AudioSource
from medscribe.config import MedScribeConfig
from medscribe.errors import ParseError
from medscribe.models.audio import AudioStats
from medscribe.transcription.base import AbstractTranscriptionBackend, TranscriptionStream

# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_END = object()


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests with no hardware or network")
    config.addinivalue_line("markers", "slow: tests that wait on real timeouts")


class FakeStream(TranscriptionStream):
    """In-memory stream: tests push payloads in, frames sent out are recorded.

    A payload is a list of TranscriptEvents; the string "garbage" fails to decode.
    """

    def __init__(self, end_on_close_send: bool = True):
        self.sent = []
        self.send_closed = False
        self.closed = False
        self.end_on_close_send = end_on_close_send
        self.send_gate = None
        self._inbox = asyncio.Queue()

    def push(self, *events) -> None:
        self._inbox.put_nowait(list(events))

    def push_raw(self, raw) -> None:
        self._inbox.put_nowait(raw)

    def fail(self, exc: Exception) -> None:
        self._inbox.put_nowait(exc)

    def end(self) -> None:
        self._inbox.put_nowait(_END)

    async def send(self, frame) -> None:
        if self.send_gate is not None:
            await self.send_gate.wait()
        self.sent.append(frame)

    async def close_send(self) -> None:
        self.send_closed = True
        if self.end_on_close_send:
            self.end()

    async def responses(self):
        while True:
            item = await self._inbox.get()
            if item is _END:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    def decode(self, raw):
        if raw == "garbage":
            raise ParseError("undecodable payload")
        return list(raw)

    async def aclose(self) -> None:
        self.closed = True


class FakeBackend(AbstractTranscriptionBackend):
    """Backend handing out FakeStreams, optionally slow or failing to open."""

    service_name = "fake"

    def __init__(self):
        self.streams = []
        self.configs = []
        self.open_error = None
        self.open_delay = 0.0
        self.end_on_close_send = True

    @property
    def last_stream(self) -> FakeStream:
        return self.streams[-1]

    async def open_stream(self, config, session_id=None):
        self.configs.append(config)
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.open_error is not None:
            raise self.open_error
        stream = FakeStream(self.end_on_close_send)
        self.streams.append(stream)
        return stream


class FakeAudioSource(AudioSource):
    """Audio source driven by the test instead of a microphone."""

    def __init__(self):
        self.loop = None
        self.on_block = None
        self.on_error = None
        self.started = False
        self.close_calls = 0

    def start(self, loop, on_block, on_error=None) -> None:
        self.loop = loop
        self.on_block = on_block
        self.on_error = on_error
        self.started = True

    def close(self) -> None:
        self.close_calls += 1

    def get_recording_stats(self) -> AudioStats:
        return AudioStats(is_recording=self.started, duration_seconds=0.0, sample_rate=16000,
                          block_size=2048, total_blocks=0)

    def emit(self, samples) -> None:
        self.on_block(samples)


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def config_file(temp_data_dir):
    """YAML config pointing data and logs at the temp directory."""
    path = Path(temp_data_dir) / "medscribe.yaml"
    with open(path, 'w') as f:
        yaml.safe_dump({
            "session": {"drain_timeout_seconds": 0.5, "handshake_timeout_seconds": 0.5},
            "storage": {"data_directory": "data"},
            "logging": {"file_path": "logs/test.log"},
        }, f)
    return str(path)


@pytest.fixture
def config(config_file):
    return MedScribeConfig(config_file)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def microphones():
    """Microphone factory that records every FakeAudioSource it opens."""
    opened = []

    def factory(constraints):
        source = FakeAudioSource()
        opened.append(source)
        return source

    factory.opened = opened
    return factory


@pytest.fixture
def sine_block():
    """One 2048-sample float32 block of a 440 Hz sine wave."""
    t = np.arange(2048) / 16000
    return (0.5 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Silent float32 audio, one block per read
        mock_stream.read.return_value = np.zeros(2048, dtype=np.float32).tobytes()
        mock_stream.is_active.return_value = True

        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.get_default_input_device_info.return_value = {
            "index": 0, "name": "Test Mic", "maxInputChannels": 1,
        }
        mock_pyaudio_instance.is_format_supported.return_value = True

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }
