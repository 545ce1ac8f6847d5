"""Capture session state machine: acquire, record, normalize, gate."""

import time
import asyncio
import logging
from typing import Callable, Dict, List, Optional

from ..audio.acquirer import DeviceAcquirer
from ..audio.capture import AudioCapture
from ..audio.codecs import DEFAULT_CODEC, pick_supported_codec
from ..audio.device import DeviceHandle, MicrophonePlatform, PyAudioPlatform
from ..audio.normalizer import WaveformNormalizer
from ..config import KwsCaptureConfig
from ..errors import AcquisitionError, ConversionError, RecordingEngineError
from ..gate.speech_gate import GateThresholds, SpeechGate
from ..models.audio import ContainerCodec, NormalizedWaveform
from ..models.capture import CaptureSnapshot, CaptureState, FailureKind
from ..models.events import ChunkAvailable, RecorderEvent, RecorderFailed, RecorderStopped
from ..models.gate import GateResult
from ..storage.playback import PlaybackStore
from .context import SessionContext
from .state_pub import CaptureStatePublisher

logger = logging.getLogger(__name__)

BUSY_STATES = {CaptureState.REQUESTING, CaptureState.RECORDING, CaptureState.PROCESSING}

ACQUISITION_FAILURE_STATES: Dict[FailureKind, CaptureState] = {
    FailureKind.UNSUPPORTED: CaptureState.UNSUPPORTED,
    FailureKind.PERMISSION_DENIED: CaptureState.MIC_DENIED,
    FailureKind.SECURITY_BLOCKED: CaptureState.MIC_DENIED,
    FailureKind.NO_DEVICE: CaptureState.MIC_DENIED,
    FailureKind.PERMISSION_TIMEOUT: CaptureState.MIC_DENIED,
}


class CaptureSession:
    """Owns one microphone handle and drives one recording cycle at a time.

    Every operation runs on the event loop. Recording engine callbacks arrive
    as typed messages on a per-cycle queue and are consumed in order by a
    single task, which normalizes the capture and gates it once the engine
    reports it has stopped.
    """

    def __init__(
        self,
        config: KwsCaptureConfig,
        platform: Optional[MicrophonePlatform] = None,
        normalizer: Optional[WaveformNormalizer] = None,
        gate: Optional[SpeechGate] = None,
        playback: Optional[PlaybackStore] = None,
        publisher: Optional[CaptureStatePublisher] = None,
        codec_probe: Callable[[], Optional[ContainerCodec]] = pick_supported_codec,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize capture session.

        Args:
            config: Application configuration
            platform: Microphone platform (PyAudio from ``audio.*`` config if None)
            normalizer: Waveform normalizer (built from config if None)
            gate: Speech gate (built from ``gate.*`` config if None)
            playback: Preview resource store
            publisher: Snapshot publisher (topic from ``capture.state_topic``)
            codec_probe: Returns the negotiated container codec or None
            clock: Monotonic clock in seconds, used for elapsed-time reporting
        """
        self.config = config
        self.max_duration_ms = config.max_duration_ms
        self.duration_tolerance_ms = config.duration_tolerance_ms
        self.rejection_policy = config.get('capture.rejection_policy', 'gate')
        self.tick_interval_s = int(config.get('capture.tick_interval_ms', 100)) / 1000

        if platform is None:
            platform = PyAudioPlatform(
                sample_rate=int(config.get('audio.sample_rate', 48000)),
                channels=int(config.get('audio.channels', 1)),
                chunk_size=int(config.get('audio.chunk_size', 1024)),
                device_index=config.get('audio.input_device_index'),
            )
        self.acquirer = DeviceAcquirer(
            platform, timeout_s=int(config.get('capture.acquire_timeout_ms', 30000)) / 1000
        )
        self.normalizer = normalizer or WaveformNormalizer(
            target_sample_rate=config.target_sample_rate,
            target_duration_ms=self.max_duration_ms,
        )
        self.gate = gate or SpeechGate(GateThresholds.from_mapping(
            config.get('gate'),
            target_sample_rate=self.normalizer.target_sample_rate,
            target_sample_count=self.normalizer.target_sample_count,
        ))
        self.playback = playback or PlaybackStore()
        self.publisher = publisher or CaptureStatePublisher(config.get('capture.state_topic', 'capture.state'))
        self.codec: Optional[ContainerCodec] = codec_probe()
        self._clock = clock

        self._ctx = SessionContext()
        self._state = CaptureState.IDLE
        self.elapsed_ms = 0
        self.last_failure: Optional[FailureKind] = None
        self.last_result: Optional[GateResult] = None
        self.last_waveform: Optional[NormalizedWaveform] = None
        self.duration_deviation_ms: Optional[int] = None

        self._chunks: List[bytes] = []
        self._recorder: Optional[AudioCapture] = None
        self._cycle_task: Optional["asyncio.Task[None]"] = None

        logger.info(f"CaptureSession ready: {self.max_duration_ms}ms window, policy={self.rejection_policy}, "
                    f"codec={self.codec.mime_type if self.codec else 'default'}")

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def handle(self) -> Optional[DeviceHandle]:
        return self._ctx.handle

    @property
    def is_alive(self) -> bool:
        return self._ctx.alive

    def snapshot(self) -> CaptureSnapshot:
        """Get the current observable state."""
        current = self.playback.current
        return CaptureSnapshot(
            state=self._state,
            elapsed_ms=self.elapsed_ms,
            max_duration_ms=self.max_duration_ms,
            failure=self.last_failure,
            codec=self.codec.mime_type if self.codec else None,
            output_sample_rate=self.normalizer.target_sample_rate,
            gate_result=self.last_result,
            duration_deviation_ms=self.duration_deviation_ms,
            playback_path=str(current) if current else None,
        )

    # -- transitions -------------------------------------------------------

    def _set_state(self, state: CaptureState) -> None:
        if state is not self._state:
            logger.info(f"Capture state: {self._state.value} -> {state.value}")
        self._state = state
        self._publish()

    def _fail(self, state: CaptureState, kind: FailureKind) -> None:
        self.last_failure = kind
        self._set_state(state)

    def _publish(self) -> None:
        try:
            self.publisher.publish_snapshot(self.snapshot())
        except Exception as e:
            logger.error(f"State listener failed: {e}", exc_info=True)

    # -- acquisition -------------------------------------------------------

    async def request_access(self) -> Optional[DeviceHandle]:
        """Acquire the microphone. Returns the handle, or None on failure."""
        if not self._ctx.alive:
            return None
        if self._state in BUSY_STATES:
            logger.warning(f"Microphone request ignored while {self._state.value}")
            return None

        self.last_failure = None
        self._set_state(CaptureState.REQUESTING)
        try:
            handle = await self.acquirer.acquire(self._ctx)
        except AcquisitionError as e:
            if self._ctx.alive:
                self._fail(ACQUISITION_FAILURE_STATES.get(e.kind, CaptureState.ERROR), e.kind)
            return None
        except Exception as e:
            logger.error(f"Unexpected error while acquiring microphone: {e}", exc_info=True)
            if self._ctx.alive:
                self._fail(CaptureState.ERROR, FailureKind.UNKNOWN)
            return None

        if handle is None or not self._ctx.alive:
            return None
        self._set_state(CaptureState.READY)
        return handle

    # -- recording ---------------------------------------------------------

    async def start_recording(self) -> None:
        """Start one capture -> normalize -> gate cycle.

        Returns once recording is under way; the cycle finishes on its own
        (manual stop or auto-stop). No-op while requesting, recording or
        processing.
        """
        if self._state in BUSY_STATES:
            logger.warning(f"Start ignored while {self._state.value}")
            return
        if not self._ctx.alive:
            return

        handle = self._ctx.handle if self._ctx.has_live_handle else await self.request_access()
        if handle is None or not self._ctx.alive:
            return

        self._reset_cycle()
        events: "asyncio.Queue[RecorderEvent]" = asyncio.Queue()
        recorder = AudioCapture(handle, events.put_nowait, self.codec)
        try:
            recorder.start_recording()
        except RecordingEngineError as e:
            logger.error(f"Error starting recording: {e}")
            self._fail(CaptureState.ERROR, e.kind)
            return
        except Exception as e:
            logger.error(f"Unexpected error starting recording: {e}", exc_info=True)
            self._fail(CaptureState.ERROR, FailureKind.RECORDING_ENGINE_ERROR)
            return

        loop = asyncio.get_running_loop()
        self._recorder = recorder
        self._ctx.started_at = self._clock()
        self._ctx.tick_task = loop.create_task(self._tick_elapsed())
        self._ctx.stop_timer = loop.call_later(self.max_duration_ms / 1000, self._auto_stop)
        self._set_state(CaptureState.RECORDING)
        self._cycle_task = loop.create_task(self._consume_events(events))

    def stop_recording(self) -> None:
        """Stop the active recording. No-op when nothing is recording."""
        recorder = self._recorder
        if recorder is None or not recorder.is_recording:
            return
        self.refresh_elapsed()
        self._ctx.clear_timers()
        recorder.stop_recording()

    async def retry(self) -> None:
        """Clear the last failure/result and get back to Ready."""
        if self._state in BUSY_STATES or not self._ctx.alive:
            return
        self.last_failure = None
        self.last_result = None
        self.duration_deviation_ms = None
        if self._ctx.has_live_handle:
            self._set_state(CaptureState.READY)
        else:
            await self.request_access()

    async def wait_until_settled(self) -> CaptureSnapshot:
        """Wait for the current cycle's processing to finish."""
        task = self._cycle_task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                if self._ctx.alive:
                    raise
        return self.snapshot()

    def refresh_elapsed(self) -> int:
        """Recompute elapsed time, clamped to the recording window."""
        started = self._ctx.started_at
        if started is not None:
            raw_ms = int((self._clock() - started) * 1000)
            self.elapsed_ms = max(0, min(raw_ms, self.max_duration_ms))
        return self.elapsed_ms

    async def close(self) -> None:
        """Tear the session down and release everything it holds."""
        if not self._ctx.alive:
            return
        self._ctx.alive = False
        self._ctx.clear_timers()

        recorder, self._recorder = self._recorder, None
        if recorder is not None:
            recorder.abort()

        task, self._cycle_task = self._cycle_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self.playback.release()
        self._ctx.release_handle()
        logger.info("CaptureSession closed")

    async def __aenter__(self) -> "CaptureSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # -- internals ---------------------------------------------------------

    def _reset_cycle(self) -> None:
        self._ctx.clear_timers()
        self.elapsed_ms = 0
        self._chunks = []
        self.last_failure = None
        self.last_result = None
        self.last_waveform = None
        self.duration_deviation_ms = None
        self.playback.release()

    async def _tick_elapsed(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval_s)
            self.refresh_elapsed()
            self._publish()

    def _auto_stop(self) -> None:
        self._ctx.stop_timer = None
        logger.info(f"Maximum duration of {self.max_duration_ms}ms reached, stopping")
        self.stop_recording()

    async def _consume_events(self, events: "asyncio.Queue[RecorderEvent]") -> None:
        while True:
            event = await events.get()
            if isinstance(event, ChunkAvailable):
                if event.data:
                    self._chunks.append(event.data)
            elif isinstance(event, RecorderStopped):
                await self._process_capture(event.codec)
                return
            elif isinstance(event, RecorderFailed):
                logger.error(f"Recording failed: {event.message}")
                self._ctx.clear_timers()
                self._recorder = None
                if self._ctx.alive:
                    self._fail(CaptureState.ERROR, event.kind)
                return

    async def _process_capture(self, codec: Optional[ContainerCodec]) -> None:
        self._ctx.clear_timers()
        self._recorder = None
        if not self._ctx.alive:
            return
        self._set_state(CaptureState.PROCESSING)

        raw = b"".join(self._chunks)
        try:
            waveform = await self.normalizer.normalize(raw, codec or DEFAULT_CODEC)
        except ConversionError as e:
            logger.error(f"Conversion failed: {e}")
            if self._ctx.alive:
                self._fail(CaptureState.ERROR, e.kind)
            return
        except Exception as e:
            logger.error(f"Unexpected conversion failure: {e}", exc_info=True)
            if self._ctx.alive:
                self._fail(CaptureState.ERROR, FailureKind.CONVERSION_ERROR)
            return

        if not self._ctx.alive:
            logger.info("Session torn down during processing, discarding capture")
            return

        self.last_waveform = waveform
        try:
            self.playback.issue(waveform.wav_bytes)
        except OSError as e:
            logger.warning(f"Could not write playback preview: {e}")

        if self.rejection_policy == 'duration':
            deviation = abs(waveform.source_duration_ms - self.max_duration_ms)
            self.duration_deviation_ms = deviation
            if deviation <= self.duration_tolerance_ms:
                self._set_state(CaptureState.RESULT)
            else:
                logger.info(f"Duration off by {deviation}ms (tolerance {self.duration_tolerance_ms}ms)")
                self._set_state(CaptureState.DURATION_REJECTED)
            return

        self.last_result = self.gate.evaluate(waveform.samples, waveform.sample_rate)
        self._set_state(CaptureState.RESULT)
