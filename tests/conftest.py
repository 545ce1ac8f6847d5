"""Pytest configuration and fixtures for kwscapture tests."""

import io
import logging
import threading
from typing import Callable, Optional
from unittest.mock import Mock, patch

import numpy as np
import pytest
import soundfile as sf

from kwscapture.config import KwsCaptureConfig
from kwscapture.storage.playback import PlaybackStore


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def tone(duration_ms: int, sample_rate: int = 16000, amplitude: float = 0.3,
         freq: float = 440.0) -> np.ndarray:
    """Sine tone as float32."""
    n = sample_rate * duration_ms // 1000
    t = np.arange(n) / sample_rate
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def burst(start_ms: int, end_ms: int, amplitude: float = 0.3, total_ms: int = 2000,
          sample_rate: int = 16000, square: bool = False) -> np.ndarray:
    """Silence with a tone between start_ms and end_ms."""
    samples = np.zeros(sample_rate * total_ms // 1000, dtype=np.float32)
    start = sample_rate * start_ms // 1000
    end = sample_rate * end_ms // 1000
    segment = tone(end_ms - start_ms, sample_rate, amplitude)
    if square:
        segment = (np.sign(segment) * amplitude).astype(np.float32)
    samples[start:end] = segment[:end - start]
    return samples


def encode(samples: np.ndarray, sample_rate: int, format: str = "WAV",
           subtype: str = "PCM_16") -> bytes:
    """Encode samples (1-D or frames x channels) into a container blob."""
    buffer = io.BytesIO()
    sf.write(buffer, samples, sample_rate, format=format, subtype=subtype)
    return buffer.getvalue()


def to_pcm16(samples: np.ndarray) -> bytes:
    return (np.clip(samples, -1.0, 1.0) * 32767).astype('<i2').tobytes()


class FakeDeviceHandle:
    """In-memory input stream that delivers prepared PCM as soon as it starts."""

    def __init__(self, pcm: bytes = b"", sample_rate: int = 16000, channels: int = 1,
                 block_bytes: int = 2048, start_error: Optional[Exception] = None):
        self.pcm = pcm
        self.sample_rate = sample_rate
        self.channels = channels
        self.device_name = "fake-mic"
        self.block_bytes = block_bytes
        self.start_error = start_error
        self.released = False
        self.start_calls = 0
        self.stop_calls = 0

    @property
    def is_live(self) -> bool:
        return not self.released

    def start(self, sink: Callable[[bytes, int], None]) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.start_calls += 1
        frame_bytes = 2 * self.channels
        for i in range(0, len(self.pcm), self.block_bytes):
            block = self.pcm[i:i + self.block_bytes]
            sink(block, len(block) // frame_bytes)

    def stop(self) -> None:
        self.stop_calls += 1

    def release(self) -> None:
        self.released = True


class FakePlatform:
    """Microphone platform returning FakeDeviceHandles (or raising)."""

    def __init__(self, handle_factory: Optional[Callable[[], FakeDeviceHandle]] = None,
                 supported: bool = True, error: Optional[BaseException] = None,
                 gate: Optional[threading.Event] = None):
        self.handle_factory = handle_factory or FakeDeviceHandle
        self.supported = supported
        self.error = error
        self.gate = gate
        self.opened = []

    def is_supported(self) -> bool:
        return self.supported

    def open_input(self) -> FakeDeviceHandle:
        if self.gate is not None:
            self.gate.wait(5.0)
        if self.error is not None:
            raise self.error
        handle = self.handle_factory()
        self.opened.append(handle)
        return handle


@pytest.fixture
def speech_pcm():
    """Two seconds of 16 kHz PCM with a centered one-second tone."""
    return to_pcm16(burst(500, 1500, amplitude=0.3))


@pytest.fixture
def speech_platform(speech_pcm):
    return FakePlatform(lambda: FakeDeviceHandle(speech_pcm))


@pytest.fixture
def config():
    """Default configuration without touching disk."""
    return KwsCaptureConfig.from_dict({"capture": {"state_topic": "test_capture_state"}})


@pytest.fixture
def playback(tmp_path):
    return PlaybackStore(str(tmp_path / "playback"))


@pytest.fixture
def wav_codec_probe():
    """Forces the platform default WAV container."""
    return lambda: None


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.is_active.return_value = True
        mock_stream.start_stream.return_value = None
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance with a single input device
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_host_api_count.return_value = 1
        mock_pyaudio_instance.get_device_count.return_value = 1
        mock_pyaudio_instance.get_device_info_by_index.return_value = {
            'name': 'Mock Microphone', 'maxInputChannels': 1,
        }
        mock_pyaudio_instance.get_default_input_device_info.return_value = {
            'name': 'Mock Microphone', 'maxInputChannels': 1,
        }

        # Configure mock PyAudio class
        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }
