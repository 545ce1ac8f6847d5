"""Speech-presence gate."""

from .speech_gate import SpeechGate, GateThresholds

__all__ = [
    "SpeechGate",
    "GateThresholds",
]
