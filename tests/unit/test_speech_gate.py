"""Unit tests for the speech gate decision tree."""

import numpy as np
import pytest

from conftest import burst, tone
from kwscapture.gate.speech_gate import FALLBACK_MESSAGE, MESSAGES, GateThresholds, SpeechGate
from kwscapture.models.gate import GateDecision, GateMetrics, GateReason


@pytest.fixture
def gate():
    return SpeechGate()


def metrics(**overrides):
    """Metrics of a clean, centered take; override one field per test."""
    values = dict(rms=0.1, abs_max=0.5, clip_ratio=0.0, speech_ratio=0.5,
                  first_speech_ms=500, last_speech_ms=1500)
    values.update(overrides)
    return GateMetrics(**values)


@pytest.mark.unit
class TestSpeechGateWaveforms:
    """Test cases evaluating synthetic 16 kHz waveforms."""

    def test_silence_is_flatline(self, gate):
        result = gate.evaluate(np.zeros(32000, dtype=np.float32), 16000)

        assert result.decision is GateDecision.REJECT
        assert result.reason is GateReason.FLATLINE
        assert result.user_message == MESSAGES[GateReason.FLATLINE]

    def test_centered_speech_passes(self, gate):
        result = gate.evaluate(burst(500, 1500, amplitude=0.3), 16000)

        assert result.decision is GateDecision.PASS
        assert result.reason is GateReason.OK
        assert result.accepted
        assert result.metrics.first_speech_ms == 500
        assert result.metrics.last_speech_ms == 1500
        assert result.metrics.speech_ratio == pytest.approx(0.5)

    def test_single_spike_is_not_flatline(self, gate):
        """Test a loud transient in silence counts as no speech, not a dead mic."""
        samples = np.zeros(32000, dtype=np.float32)
        samples[16000] = 0.9
        result = gate.evaluate(samples, 16000)

        assert result.reason is GateReason.NO_SPEECH
        assert result.decision is GateDecision.REJECT

    def test_low_steady_hum_is_no_speech(self, gate):
        result = gate.evaluate(tone(2000, 16000, amplitude=0.015), 16000)

        assert result.reason is GateReason.NO_SPEECH

    def test_too_quiet_wins_over_off_center(self, gate):
        """Test a faint late tone reports loudness before timing."""
        result = gate.evaluate(burst(1800, 2000, amplitude=0.008), 16000)

        assert result.decision is GateDecision.REJECT
        assert result.reason is GateReason.TOO_QUIET

    def test_borderline_quiet(self, gate):
        result = gate.evaluate(burst(840, 1160, amplitude=0.05), 16000)

        assert result.decision is GateDecision.AMBIGUOUS
        assert result.reason is GateReason.BORDERLINE_QUIET

    def test_clipping_suspected(self, gate):
        result = gate.evaluate(burst(500, 1500, amplitude=0.99, square=True), 16000)

        assert result.decision is GateDecision.AMBIGUOUS
        assert result.reason is GateReason.CLIPPING_SUSPECTED
        assert result.metrics.clip_ratio > 0.01

    def test_late_start_is_off_center(self, gate):
        result = gate.evaluate(burst(1500, 2000, amplitude=0.3), 16000)

        assert result.decision is GateDecision.AMBIGUOUS
        assert result.reason is GateReason.SPEECH_OFF_CENTER
        assert result.user_message == MESSAGES[GateReason.SPEECH_OFF_CENTER]

    def test_early_end_is_off_center(self, gate):
        result = gate.evaluate(burst(0, 600, amplitude=0.3), 16000)

        assert result.reason is GateReason.SPEECH_OFF_CENTER

    def test_short_centered_speech_falls_back_to_ambiguous(self, gate):
        result = gate.evaluate(burst(840, 1160, amplitude=0.3), 16000)

        assert result.decision is GateDecision.AMBIGUOUS
        assert result.reason is GateReason.SPEECH_OFF_CENTER
        assert result.user_message == FALLBACK_MESSAGE

    def test_evaluation_is_deterministic(self, gate):
        samples = burst(400, 1700, amplitude=0.2)
        assert gate.evaluate(samples, 16000) == gate.evaluate(samples.copy(), 16000)

    def test_short_input_is_padded(self, gate):
        """Test waveforms shorter than the window are measured over the full window."""
        result = gate.evaluate(burst(500, 1500, amplitude=0.3, total_ms=1600), 16000)

        assert result.reason is GateReason.OK
        assert result.metrics.speech_ratio == pytest.approx(0.5)

    def test_invalid_rate_uses_target_rate(self, gate):
        result = gate.evaluate(burst(500, 1500, amplitude=0.3), 0)
        assert result.metrics.first_speech_ms == 500

    def test_speech_bounds_round_half_up(self):
        """Test half-millisecond frame edges round up, not to even."""
        gate = SpeechGate(GateThresholds.from_mapping({"frame_size": 8}))
        samples = np.zeros(32000, dtype=np.float32)
        samples[8:24] = 0.5  # frames 1 and 2, 0.5 ms each

        m = gate.measure(samples, 16000)

        assert m.first_speech_ms == 1
        assert m.last_speech_ms == 2


@pytest.mark.unit
class TestSpeechGatePriority:
    """Test cases for rule ordering on hand-built metrics."""

    def test_flatline_needs_both_low_peak_and_low_rms(self, gate):
        assert gate.decide(metrics(rms=0.0005, abs_max=0.005)).reason is GateReason.FLATLINE
        assert gate.decide(metrics(rms=0.0005, abs_max=0.5)).reason is GateReason.TOO_QUIET

    def test_no_speech_before_borderline(self, gate):
        m = metrics(rms=0.01, speech_ratio=0.01)
        assert gate.decide(m).reason is GateReason.NO_SPEECH

    def test_borderline_before_clipping(self, gate):
        m = metrics(rms=0.01, clip_ratio=0.5)
        assert gate.decide(m).reason is GateReason.BORDERLINE_QUIET

    def test_clipping_before_off_center(self, gate):
        m = metrics(clip_ratio=0.5, first_speech_ms=1900, last_speech_ms=2000)
        assert gate.decide(m).reason is GateReason.CLIPPING_SUSPECTED

    def test_narrow_span_is_off_center(self, gate):
        m = metrics(first_speech_ms=900, last_speech_ms=1000)
        result = gate.decide(m)
        assert result.reason is GateReason.SPEECH_OFF_CENTER
        assert result.user_message == MESSAGES[GateReason.SPEECH_OFF_CENTER]

    def test_clean_metrics_pass(self, gate):
        assert gate.decide(metrics()).decision is GateDecision.PASS

    def test_every_result_has_a_message(self, gate):
        for m in (metrics(rms=0.0, abs_max=0.0), metrics(rms=0.002), metrics(speech_ratio=0.0),
                  metrics(rms=0.01), metrics(clip_ratio=0.2), metrics(first_speech_ms=1500),
                  metrics(speech_ratio=0.1), metrics()):
            assert gate.decide(m).user_message


@pytest.mark.unit
class TestGateThresholds:
    """Test cases for threshold overrides."""

    def test_overrides_are_applied_and_typed(self):
        thresholds = GateThresholds.from_mapping({"too_quiet_rms": "0.01", "frame_size": 160.0})

        assert thresholds.too_quiet_rms == 0.01
        assert thresholds.frame_size == 160
        assert isinstance(thresholds.frame_size, int)

    def test_unknown_keys_are_ignored(self):
        thresholds = GateThresholds.from_mapping({"bogus": 1}, target_sample_count=4800)

        assert thresholds.target_sample_count == 4800
        assert not hasattr(thresholds, "bogus")

    def test_raising_the_pass_ratio_changes_the_verdict(self):
        gate = SpeechGate(GateThresholds.from_mapping({"pass_speech_ratio": 0.6}))
        result = gate.evaluate(burst(500, 1500, amplitude=0.3), 16000)

        assert result.reason is GateReason.SPEECH_OFF_CENTER
        assert result.user_message == FALLBACK_MESSAGE
