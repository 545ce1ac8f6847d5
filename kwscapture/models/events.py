"""Recording engine messages consumed by the capture session."""

from dataclasses import dataclass, field
from typing import Optional

from .audio import ContainerCodec
from .capture import FailureKind


@dataclass(frozen=True)
class RecorderEvent:
    """Base class for recording engine messages."""
    sequence_number: int


@dataclass(frozen=True)
class ChunkAvailable(RecorderEvent):
    """Encoded container bytes ready to be appended to the raw capture."""
    data: bytes = b""


@dataclass(frozen=True)
class RecorderStopped(RecorderEvent):
    """Engine has flushed everything; no further chunks follow."""
    codec: Optional[ContainerCodec] = None
    frames_captured: int = 0


@dataclass(frozen=True)
class RecorderFailed(RecorderEvent):
    """Underlying capture fault."""
    kind: FailureKind = FailureKind.RECORDING_ENGINE_ERROR
    message: str = field(default="")
