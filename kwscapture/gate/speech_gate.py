"""Speech-presence gate for normalized keyword samples."""

import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

import numpy as np

from ..models.gate import GateDecision, GateMetrics, GateReason, GateResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateThresholds:
    """Tuning constants for a 16 kHz, 2 s window."""
    target_sample_rate: int = 16000
    target_sample_count: int = 32000
    frame_size: int = 320  # 20 ms at 16 kHz
    clip_level: float = 0.98
    clip_ratio: float = 0.01
    flatline_abs_max: float = 0.01
    flatline_rms: float = 0.001
    too_quiet_rms: float = 0.005
    borderline_quiet_rms: float = 0.015
    speech_frame_rms: float = 0.02
    no_speech_ratio: float = 0.08
    pass_speech_ratio: float = 0.2
    late_start_ms: int = 1200
    early_end_ms: int = 700
    min_speech_span_ms: int = 250

    @classmethod
    def from_mapping(cls, overrides: Optional[Dict[str, Any]] = None, **base: Any) -> "GateThresholds":
        """Build thresholds from config overrides, ignoring unknown keys."""
        thresholds = cls(**base)
        if not overrides:
            return thresholds
        known = {f.name for f in fields(cls)}
        accepted = {}
        for key, value in overrides.items():
            if key not in known:
                logger.warning(f"Ignoring unknown gate threshold: {key}")
                continue
            accepted[key] = int(value) if isinstance(getattr(thresholds, key), int) else float(value)
        return replace(thresholds, **accepted)


MESSAGES = {
    GateReason.FLATLINE: "Almost no signal from the microphone. Try speaking again?",
    GateReason.TOO_QUIET: "That came in too quietly. A little louder!",
    GateReason.NO_SPEECH: "Hardly any speech was detected. Say it clearly once more!",
    GateReason.BORDERLINE_QUIET: "Nearly there! One more time, a bit clearer?",
    GateReason.CLIPPING_SUSPECTED: "The sound may have distorted. Once more, a little softer!",
    GateReason.SPEECH_OFF_CENTER: "The timing was a bit off. Aim for the middle of the window!",
    GateReason.OK: "Great! That one is perfect.",
}

FALLBACK_MESSAGE = "Just a bit clearer and it will pass right away!"


def _round_half_up(value: float) -> int:
    return int(np.floor(value + 0.5))


class SpeechGate:
    """Classifies a normalized waveform as pass, ambiguous or reject.

    Evaluation is pure and one-shot: the decision tree is walked in a fixed
    priority order and the first matching rule wins.
    """

    def __init__(self, thresholds: Optional[GateThresholds] = None):
        self.thresholds = thresholds or GateThresholds()

    def measure(self, samples: np.ndarray, sample_rate: int) -> GateMetrics:
        """Compute loudness, clipping and per-frame speech metrics."""
        t = self.thresholds
        pcm = self._fit(np.asarray(samples, dtype=np.float64).reshape(-1))
        rate = sample_rate if sample_rate > 0 else t.target_sample_rate

        abs_pcm = np.abs(pcm)
        rms = float(np.sqrt(np.mean(pcm * pcm))) if pcm.size else 0.0
        abs_max = float(abs_pcm.max()) if pcm.size else 0.0
        clip_ratio = float(np.count_nonzero(abs_pcm > t.clip_level) / pcm.size) if pcm.size else 0.0

        frame_count = pcm.size // t.frame_size
        if frame_count > 0:
            frames = pcm[:frame_count * t.frame_size].reshape(frame_count, t.frame_size)
            frame_rms = np.sqrt(np.mean(frames * frames, axis=1))
            speech = np.flatnonzero(frame_rms >= t.speech_frame_rms)
        else:
            speech = np.empty(0, dtype=np.intp)

        speech_ratio = float(speech.size / frame_count) if frame_count > 0 else 0.0
        frame_ms = t.frame_size / rate * 1000
        first_ms = _round_half_up(speech[0] * frame_ms) if speech.size else None
        last_ms = _round_half_up((speech[-1] + 1) * frame_ms) if speech.size else None

        return GateMetrics(
            rms=rms,
            abs_max=abs_max,
            clip_ratio=clip_ratio,
            speech_ratio=speech_ratio,
            first_speech_ms=first_ms,
            last_speech_ms=last_ms,
        )

    def evaluate(self, samples: np.ndarray, sample_rate: int) -> GateResult:
        """Measure ``samples`` and walk the decision tree."""
        metrics = self.measure(samples, sample_rate)
        result = self.decide(metrics)
        logger.info(f"Gate {result.decision.value}/{result.reason.value}: rms={metrics.rms:.4f} "
                    f"peak={metrics.abs_max:.3f} clip={metrics.clip_ratio:.4f} "
                    f"speech={metrics.speech_ratio:.2f} span={metrics.first_speech_ms}-{metrics.last_speech_ms}ms")
        return result

    def decide(self, m: GateMetrics) -> GateResult:
        t = self.thresholds

        if m.abs_max < t.flatline_abs_max and m.rms < t.flatline_rms:
            return self._result(GateDecision.REJECT, GateReason.FLATLINE, m)

        if m.rms < t.too_quiet_rms:
            return self._result(GateDecision.REJECT, GateReason.TOO_QUIET, m)

        if m.speech_ratio < t.no_speech_ratio:
            return self._result(GateDecision.REJECT, GateReason.NO_SPEECH, m)

        if m.rms < t.borderline_quiet_rms:
            return self._result(GateDecision.AMBIGUOUS, GateReason.BORDERLINE_QUIET, m)

        if m.clip_ratio > t.clip_ratio:
            return self._result(GateDecision.AMBIGUOUS, GateReason.CLIPPING_SUSPECTED, m)

        if ((m.first_speech_ms is not None and m.first_speech_ms > t.late_start_ms)
                or (m.last_speech_ms is not None and m.last_speech_ms < t.early_end_ms)
                or m.speech_span_ms < t.min_speech_span_ms):
            return self._result(GateDecision.AMBIGUOUS, GateReason.SPEECH_OFF_CENTER, m)

        if m.speech_ratio >= t.pass_speech_ratio and m.rms >= t.borderline_quiet_rms:
            return self._result(GateDecision.PASS, GateReason.OK, m)

        return GateResult(GateDecision.AMBIGUOUS, GateReason.SPEECH_OFF_CENTER, FALLBACK_MESSAGE, m)

    def _fit(self, pcm: np.ndarray) -> np.ndarray:
        count = self.thresholds.target_sample_count
        if pcm.size == count:
            return pcm
        fitted = np.zeros(count, dtype=np.float64)
        fitted[:min(count, pcm.size)] = pcm[:count]
        return fitted

    @staticmethod
    def _result(decision: GateDecision, reason: GateReason, metrics: GateMetrics) -> GateResult:
        return GateResult(decision, reason, MESSAGES[reason], metrics)
