"""Capture session state models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .gate import GateResult


class CaptureState(Enum):
    """Status of the capture session. Exactly one is active at a time."""
    IDLE = "Idle"
    REQUESTING = "Requesting"
    READY = "Ready"
    RECORDING = "Recording"
    PROCESSING = "Processing"
    RESULT = "Result"
    DURATION_REJECTED = "DurationRejected"
    MIC_DENIED = "MicDenied"
    UNSUPPORTED = "Unsupported"
    ERROR = "Error"


class FailureKind(Enum):
    """Machine-readable failure kinds surfaced to consumers."""
    UNSUPPORTED = "Unsupported"
    PERMISSION_DENIED = "PermissionDenied"
    SECURITY_BLOCKED = "SecurityBlocked"
    NO_DEVICE = "NoDevice"
    PERMISSION_TIMEOUT = "PermissionTimeout"
    CONVERSION_ERROR = "ConversionError"
    RECORDING_ENGINE_ERROR = "RecordingEngineError"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class CaptureSnapshot:
    """Everything a UI needs to render the session."""
    state: CaptureState
    elapsed_ms: int
    max_duration_ms: int
    failure: Optional[FailureKind] = None
    codec: Optional[str] = None
    output_sample_rate: Optional[int] = None
    gate_result: Optional[GateResult] = None
    duration_deviation_ms: Optional[int] = None
    playback_path: Optional[str] = None

    @property
    def progress(self) -> float:
        """Fraction of the recording window elapsed, 0.0 to 1.0."""
        if self.max_duration_ms <= 0:
            return 0.0
        return min(1.0, self.elapsed_ms / self.max_duration_ms)
