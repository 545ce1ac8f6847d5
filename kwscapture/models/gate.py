"""Speech gate result models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class GateDecision(Enum):
    PASS = "PASS"
    AMBIGUOUS = "AMBIG"
    REJECT = "REJECT"


class GateReason(Enum):
    OK = "Ok"
    FLATLINE = "Flatline"
    TOO_QUIET = "TooQuiet"
    NO_SPEECH = "NoSpeech"
    BORDERLINE_QUIET = "BorderlineQuiet"
    CLIPPING_SUSPECTED = "ClippingSuspected"
    SPEECH_OFF_CENTER = "SpeechOffCenter"


@dataclass(frozen=True)
class GateMetrics:
    """Diagnostics computed over the full normalized waveform."""
    rms: float
    abs_max: float
    clip_ratio: float
    speech_ratio: float
    first_speech_ms: Optional[int]
    last_speech_ms: Optional[int]

    @property
    def speech_span_ms(self) -> int:
        if self.first_speech_ms is None or self.last_speech_ms is None:
            return 0
        return max(0, self.last_speech_ms - self.first_speech_ms)


@dataclass(frozen=True)
class GateResult:
    """Outcome of one gate evaluation. One per completed recording."""
    decision: GateDecision
    reason: GateReason
    user_message: str
    metrics: GateMetrics

    @property
    def accepted(self) -> bool:
        return self.decision is GateDecision.PASS
