"""Services layer for kwscapture session logic."""

from .capture_session import CaptureSession
from .state_pub import CaptureStatePublisher
from .deadline import run_with_deadline, DeadlineExceeded

__all__ = [
    "CaptureSession",
    "CaptureStatePublisher",
    "run_with_deadline",
    "DeadlineExceeded",
]
