"""Data models for the kwscapture package."""

from .audio import ContainerCodec, WavHeader, NormalizedWaveform
from .gate import GateDecision, GateReason, GateMetrics, GateResult
from .capture import CaptureState, FailureKind, CaptureSnapshot
from .events import RecorderEvent, ChunkAvailable, RecorderStopped, RecorderFailed

__all__ = [
    "ContainerCodec",
    "WavHeader",
    "NormalizedWaveform",
    "GateDecision",
    "GateReason",
    "GateMetrics",
    "GateResult",
    "CaptureState",
    "FailureKind",
    "CaptureSnapshot",
    # Recording engine messages
    "RecorderEvent",
    "ChunkAvailable",
    "RecorderStopped",
    "RecorderFailed",
]
