"""Canonical 16-bit PCM WAVE encoding and header parsing."""

import io
import struct
import wave
import logging

import numpy as np

from ..models.audio import WavHeader

logger = logging.getLogger(__name__)

WAV_MIME_TYPE = "audio/wav"
WAV_HEADER_SIZE = 44
PCM_FORMAT_TAG = 1
BYTES_PER_SAMPLE = 2

_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


def float_to_pcm16(samples: np.ndarray) -> np.ndarray:
    """Zero NaNs, clamp to [-1, 1] and scale to int16 (negatives by 32768, the rest by 32767)."""
    finite = np.nan_to_num(np.asarray(samples, dtype=np.float64), nan=0.0)
    clamped = np.clip(finite, -1.0, 1.0)
    scaled = np.where(clamped < 0, clamped * 0x8000, clamped * 0x7FFF)
    # astype truncates toward zero
    return scaled.astype('<i2')


def encode_wav_pcm16(samples: np.ndarray, sample_rate: int) -> bytes:
    """Encode mono float samples as a RIFF/WAVE blob with a 44-byte header."""
    pcm = float_to_pcm16(samples)
    buffer = io.BytesIO()
    with wave.open(buffer, 'wb') as wf:
        wf.setnchannels(1)
        wf.setsampwidth(BYTES_PER_SAMPLE)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm.tobytes())

    blob = buffer.getvalue()
    expected = WAV_HEADER_SIZE + pcm.shape[0] * BYTES_PER_SAMPLE
    if len(blob) != expected:
        raise ValueError(f"Unexpected WAV size {len(blob)} (expected {expected})")
    return blob


def parse_wav_header(blob: bytes) -> WavHeader:
    """Read the canonical header fields back out of an encoded blob.

    Raises:
        ValueError: if the blob is not a canonical 44-byte-header PCM WAVE file
    """
    if len(blob) < WAV_HEADER_SIZE:
        raise ValueError(f"WAV blob too short: {len(blob)} bytes")

    (riff, riff_size, wave_id, fmt_id, fmt_size, format_tag, channels,
     sample_rate, byte_rate, block_align, bits, data_id, data_size) = _HEADER.unpack_from(blob, 0)

    if riff != b"RIFF" or wave_id != b"WAVE":
        raise ValueError("Not a RIFF/WAVE container")
    if fmt_id != b"fmt " or fmt_size != 16:
        raise ValueError("Missing canonical 'fmt ' chunk")
    if format_tag != PCM_FORMAT_TAG:
        raise ValueError(f"Not integer PCM (format tag {format_tag})")
    if data_id != b"data":
        raise ValueError("Missing 'data' chunk after 'fmt '")

    return WavHeader(
        riff_size=riff_size,
        format_tag=format_tag,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits,
        data_size=data_size,
    )
