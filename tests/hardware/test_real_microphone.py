"""Real hardware tests for microphone capture.

These tests require an actual input device and verify that a full capture
cycle works against PortAudio. Speak into the microphone when prompted.

Run with: pytest tests/hardware/ -v -s -m hardware
"""

import pyaudio
import pytest

from kwscapture.audio.device import PyAudioPlatform
from kwscapture.audio.wav import parse_wav_header
from kwscapture.config import KwsCaptureConfig
from kwscapture.models.capture import CaptureState
from kwscapture.services.capture_session import CaptureSession


def _has_input_device() -> bool:
    try:
        backend = pyaudio.PyAudio()
    except Exception:
        return False
    try:
        return any(
            backend.get_device_info_by_index(i).get("maxInputChannels", 0) > 0
            for i in range(backend.get_device_count())
        )
    finally:
        backend.terminate()


requires_microphone = pytest.mark.skipif(not _has_input_device(), reason="No audio input device")


@pytest.mark.hardware
@requires_microphone
class TestRealMicrophone:
    """Tests that require real audio hardware to run."""

    def test_platform_is_supported(self):
        assert PyAudioPlatform().is_supported()

    @pytest.mark.asyncio
    async def test_real_two_second_capture(self, playback):
        """Test recording one auto-stopped take from the default microphone.

        Verifies the take is normalized to 16 kHz mono, a playable preview is
        written and the gate returns a verdict. The verdict itself depends on
        whatever the microphone hears.
        """
        print("\n" + "=" * 60)
        print("HARDWARE TEST: 2-second keyword capture")
        print("Say something now...")
        print("=" * 60)

        config = KwsCaptureConfig()
        async with CaptureSession(config, playback=playback) as session:
            await session.start_recording()
            assert session.state is CaptureState.RECORDING
            snapshot = await session.wait_until_settled()

            print(f"State: {snapshot.state.value}, codec: {snapshot.codec or 'default'}")
            if snapshot.gate_result is not None:
                print(f"Gate: {snapshot.gate_result.decision.value} / {snapshot.gate_result.reason.value}")

            assert snapshot.state is CaptureState.RESULT
            assert snapshot.gate_result is not None
            assert 1800 <= snapshot.elapsed_ms <= 2000

            header = parse_wav_header(session.last_waveform.wav_bytes)
            assert header.sample_rate == 16000
            assert header.sample_count == 32000
            assert playback.current.exists()

        assert playback.current is None
