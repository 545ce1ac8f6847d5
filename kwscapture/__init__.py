"""kwscapture - fixed-length voice sample capture and speech gating."""

__version__ = "0.1.0"

from .config import KwsCaptureConfig
from .models import CaptureState, FailureKind, CaptureSnapshot, GateDecision, GateReason, GateResult
from .services.capture_session import CaptureSession

__all__ = [
    "__version__",
    "KwsCaptureConfig",
    "CaptureSession",
    "CaptureState",
    "FailureKind",
    "CaptureSnapshot",
    "GateDecision",
    "GateReason",
    "GateResult",
]
