"""Microphone platform abstraction and the exclusively-owned input handle."""

import logging
import threading
from typing import Callable, Optional, Protocol

import pyaudio

from ..errors import DeviceNotFoundError

logger = logging.getLogger(__name__)

PcmSink = Callable[[bytes, int], None]


class DeviceHandle(Protocol):
    """An exclusively-owned audio input stream."""

    sample_rate: int
    channels: int
    device_name: Optional[str]

    @property
    def is_live(self) -> bool:
        ...

    def start(self, sink: PcmSink) -> None:
        """Begin delivering interleaved int16 PCM blocks to ``sink``."""
        ...

    def stop(self) -> None:
        """Stop delivering blocks. The handle stays usable for another start()."""
        ...

    def release(self) -> None:
        """Stop the stream and free the device. Idempotent."""
        ...


class MicrophonePlatform(Protocol):
    """Whatever offers microphone capture on this machine."""

    def is_supported(self) -> bool:
        """False when the platform has no capture capability at all."""
        ...

    def open_input(self) -> DeviceHandle:
        """Open the input device. Blocking; may raise PermissionError or OSError."""
        ...


class PyAudioDeviceHandle:
    """PortAudio input stream opened paused, with a callback feeding a sink."""

    def __init__(self, backend: pyaudio.PyAudio, sample_rate: int, channels: int,
                 chunk_size: int, device_index: Optional[int] = None):
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_size = chunk_size
        self._backend: Optional[pyaudio.PyAudio] = backend
        self._sink: Optional[PcmSink] = None
        self._lock = threading.Lock()

        info = (backend.get_device_info_by_index(device_index) if device_index is not None
                else backend.get_default_input_device_info())
        self.device_name: Optional[str] = str(info.get("name"))

        self._stream = backend.open(
            format=pyaudio.paInt16,
            channels=channels,
            rate=sample_rate,
            input=True,
            input_device_index=device_index,
            frames_per_buffer=chunk_size,
            start=False,
            stream_callback=self._on_audio,
        )
        logger.info(f"Input stream opened on '{self.device_name}': {sample_rate}Hz, "
                    f"{channels} channel(s), {chunk_size} samples/chunk")

    @property
    def is_live(self) -> bool:
        return self._backend is not None

    def _on_audio(self, in_data, frame_count, time_info, status):
        if status:
            logger.debug(f"PortAudio status flags: {status}")
        with self._lock:
            sink = self._sink
        if sink is not None and in_data:
            sink(in_data, frame_count)
        return (None, pyaudio.paContinue)

    def start(self, sink: PcmSink) -> None:
        if not self.is_live:
            raise RuntimeError("Device handle has been released")
        with self._lock:
            self._sink = sink
        self._stream.start_stream()

    def stop(self) -> None:
        if self.is_live and self._stream.is_active():
            self._stream.stop_stream()
        with self._lock:
            self._sink = None

    def release(self) -> None:
        if not self.is_live:
            return
        try:
            self.stop()
            self._stream.close()
        finally:
            self._backend.terminate()
            self._backend = None
            logger.info(f"Input stream on '{self.device_name}' released")


class PyAudioPlatform:
    """Microphone platform backed by PortAudio through PyAudio."""

    def __init__(self, sample_rate: int = 48000, channels: int = 1,
                 chunk_size: int = 1024, device_index: Optional[int] = None):
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_size = chunk_size
        self.device_index = device_index

    def is_supported(self) -> bool:
        backend = pyaudio.PyAudio()
        try:
            return backend.get_host_api_count() > 0
        finally:
            backend.terminate()

    def open_input(self) -> PyAudioDeviceHandle:
        backend = pyaudio.PyAudio()
        try:
            if not any(
                backend.get_device_info_by_index(i).get("maxInputChannels", 0) > 0
                for i in range(backend.get_device_count())
            ):
                raise DeviceNotFoundError("No audio input device available")
            return PyAudioDeviceHandle(
                backend,
                sample_rate=self.sample_rate,
                channels=self.channels,
                chunk_size=self.chunk_size,
                device_index=self.device_index,
            )
        except BaseException:
            backend.terminate()
            raise
