"""Recording engine: encodes microphone PCM into the negotiated container."""

import io
import asyncio
import logging
from typing import Callable, Optional

import numpy as np
import soundfile as sf

from ..errors import RecordingEngineError
from ..models.audio import ContainerCodec
from ..models.capture import FailureKind
from ..models.events import ChunkAvailable, RecorderEvent, RecorderFailed, RecorderStopped
from .codecs import DEFAULT_CODEC
from .device import DeviceHandle

logger = logging.getLogger(__name__)


class AudioCapture:
    """Single-take recorder publishing typed events for the capture session.

    PCM blocks arrive on the PortAudio callback thread and are marshalled onto
    the event loop, where they are encoded into an in-memory container. The
    encoded buffer is published as one ``ChunkAvailable`` when the take is
    stopped, followed by ``RecorderStopped``.
    """

    def __init__(
        self,
        handle: DeviceHandle,
        callback: Callable[[RecorderEvent], None],
        codec: Optional[ContainerCodec] = None,
    ):
        """Initialize the recorder.

        Args:
            handle: Live input stream to record from
            callback: Receives every RecorderEvent, on the event loop thread
            codec: Negotiated container; None means the platform default
        """
        self.handle = handle
        self.event_callback = callback
        self.codec = codec or DEFAULT_CODEC

        self.is_recording = False
        self.total_chunks = 0
        self.frames_captured = 0

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._buffer: Optional[io.BytesIO] = None
        self._writer: Optional[sf.SoundFile] = None
        self._sequence = 0
        self._failed = False

    @property
    def mime_type(self) -> str:
        return self.codec.mime_type

    def start_recording(self) -> None:
        """Open the container writer and start the input stream."""
        if self.is_recording:
            logger.warning("Recording already in progress")
            return

        self._loop = asyncio.get_running_loop()
        self._buffer = io.BytesIO()
        try:
            self._writer = sf.SoundFile(
                self._buffer,
                mode='w',
                samplerate=self.handle.sample_rate,
                channels=self.handle.channels,
                format=self.codec.format,
                subtype=self.codec.subtype,
            )
        except Exception as e:
            self._buffer = None
            raise RecordingEngineError(f"Could not open {self.codec.mime_type} writer: {e}") from e
        self.total_chunks = 0
        self.frames_captured = 0
        self._sequence = 0
        self._failed = False

        try:
            self.handle.start(self._on_pcm)
        except Exception as e:
            self._close_writer()
            raise RecordingEngineError(f"Could not start input stream: {e}") from e
        self.is_recording = True
        logger.info(f"Recording started ({self.codec.mime_type}, "
                    f"{self.handle.sample_rate}Hz x{self.handle.channels})")

    def stop_recording(self) -> None:
        """Stop the stream; the container is flushed once queued blocks are encoded."""
        if not self.is_recording:
            return
        self.is_recording = False
        self.handle.stop()
        # Runs after any PCM blocks the callback thread already scheduled
        self._loop.call_soon(self._finish)

    def abort(self) -> None:
        """Stop without publishing anything (teardown)."""
        if self.is_recording:
            self.is_recording = False
            self.handle.stop()
        self._close_writer()

    def _on_pcm(self, data: bytes, frame_count: int) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._encode_block, data)

    def _encode_block(self, data: bytes) -> None:
        if self._writer is None or self._failed:
            return
        try:
            block = np.frombuffer(data, dtype='<i2').reshape(-1, self.handle.channels)
            self._writer.write(block)
        except Exception as e:
            self._fail(e)
            return
        self.total_chunks += 1
        self.frames_captured += block.shape[0]

    def _finish(self) -> None:
        if self._failed or self._writer is None:
            return
        try:
            self._writer.close()
        except Exception as e:
            self._fail(e)
            return
        self._writer = None
        payload = self._buffer.getvalue()
        self._buffer = None

        logger.info(f"Recording stopped. Blocks: {self.total_chunks}, frames: {self.frames_captured}, "
                    f"encoded: {len(payload)} bytes")
        if payload:
            self._publish(ChunkAvailable(sequence_number=self._next_sequence(), data=payload))
        self._publish(RecorderStopped(
            sequence_number=self._next_sequence(),
            codec=self.codec,
            frames_captured=self.frames_captured,
        ))

    def _fail(self, error: Exception) -> None:
        logger.error(f"Recording engine fault: {error}", exc_info=True)
        self._failed = True
        if self.is_recording:
            self.is_recording = False
            self.handle.stop()
        self._close_writer()
        self._publish(RecorderFailed(
            sequence_number=self._next_sequence(),
            kind=FailureKind.RECORDING_ENGINE_ERROR,
            message=str(error),
        ))

    def _close_writer(self) -> None:
        writer, self._writer = self._writer, None
        if writer is not None and not writer.closed:
            try:
                writer.close()
            except Exception as e:
                logger.debug(f"Ignoring error while discarding container writer: {e}")
        self._buffer = None

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def _publish(self, event: RecorderEvent) -> None:
        self.event_callback(event)

