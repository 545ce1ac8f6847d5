"""Audio-related data models."""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class ContainerCodec:
    """A capture container the recording engine can write."""
    mime_type: str
    format: str   # libsndfile major format, e.g. "OGG"
    subtype: str  # libsndfile subtype, e.g. "OPUS"


@dataclass(frozen=True)
class WavHeader:
    """Fields of a canonical 44-byte PCM WAVE header."""
    riff_size: int
    format_tag: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_size: int

    @property
    def sample_count(self) -> int:
        return self.data_size // self.block_align if self.block_align else 0


@dataclass(frozen=True)
class NormalizedWaveform:
    """Fixed-length mono waveform produced by the normalizer."""
    wav_bytes: bytes
    samples: np.ndarray  # float32, [-1, 1], len == sample_rate * target_duration_ms / 1000
    sample_rate: int
    duration_ms: int
    source_sample_rate: int
    source_channels: int
    source_duration_ms: int

    @property
    def sample_count(self) -> int:
        return int(self.samples.shape[0])
