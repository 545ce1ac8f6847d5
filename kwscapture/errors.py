"""Exception hierarchy for capture failures."""

from typing import Optional

from .models.capture import FailureKind


class CaptureError(Exception):
    """Base class for failures that map onto a FailureKind."""

    kind: FailureKind = FailureKind.UNKNOWN

    def __init__(self, message: str = "", kind: Optional[FailureKind] = None):
        if kind is not None:
            self.kind = kind
        super().__init__(message or self.kind.value)


class AcquisitionError(CaptureError):
    """Microphone could not be acquired."""


class ConversionError(CaptureError):
    """Decode, resample or encode of a capture failed."""

    kind = FailureKind.CONVERSION_ERROR


class RecordingEngineError(CaptureError):
    """The capture engine faulted while recording."""

    kind = FailureKind.RECORDING_ENGINE_ERROR


class DeviceNotFoundError(OSError):
    """Raised by platforms when no input device exists."""


class DeviceBlockedError(OSError):
    """Raised by platforms when a security policy blocks capture."""
