"""Waveform normalization: decode, downmix, resample, fix length, encode."""

import io
import asyncio
import logging
from fractions import Fraction
from typing import Optional, Tuple

import numpy as np
import scipy.signal as sps
import soundfile as sf

from ..errors import ConversionError
from ..models.audio import ContainerCodec, NormalizedWaveform
from .wav import encode_wav_pcm16

logger = logging.getLogger(__name__)

TARGET_SAMPLE_RATE = 16000
TARGET_DURATION_MS = 2000


def target_sample_count(sample_rate: int, duration_ms: int) -> int:
    return sample_rate * duration_ms // 1000


def decode_container(raw: bytes) -> Tuple[np.ndarray, int]:
    """Decode an encoded buffer into (frames x channels) float32 and its native rate."""
    if not raw:
        raise ConversionError("Captured buffer is empty")
    try:
        with io.BytesIO(raw) as source:
            data, sample_rate = sf.read(source, dtype='float32', always_2d=True)
    except Exception as e:
        raise ConversionError(f"Could not decode captured audio: {e}") from e
    if data.shape[0] == 0:
        raise ConversionError("Captured audio decoded to zero frames")
    return data, int(sample_rate)


def mix_to_mono(data: np.ndarray) -> np.ndarray:
    """Average all channels per frame; single-channel input passes through."""
    if data.ndim == 1:
        return data
    if data.shape[1] <= 1:
        return data[:, 0]
    return data.mean(axis=1, dtype=np.float64).astype(np.float32)


def resample(mono: np.ndarray, native_rate: int, target_rate: int = TARGET_SAMPLE_RATE) -> np.ndarray:
    """Fixed-ratio polyphase resample to exactly round(n * target / native) samples."""
    if native_rate == target_rate:
        return mono
    if native_rate <= 0:
        raise ConversionError(f"Invalid native sample rate: {native_rate}")

    target_length = max(1, int(round(mono.shape[0] * target_rate / native_rate)))
    ratio = Fraction(target_rate, native_rate).limit_denominator()
    rendered = sps.resample_poly(mono.astype(np.float64), ratio.numerator, ratio.denominator)
    return fit_to_length(rendered.astype(np.float32), target_length)


def fit_to_length(samples: np.ndarray, length: int) -> np.ndarray:
    """Truncate or zero-pad to exactly ``length`` samples."""
    if samples.shape[0] == length:
        return samples
    fitted = np.zeros(length, dtype=np.float32)
    count = min(length, samples.shape[0])
    fitted[:count] = samples[:count]
    return fitted


class WaveformNormalizer:
    """Turns a raw capture into a fixed-length 16-bit mono WAV and float samples."""

    def __init__(self, target_sample_rate: int = TARGET_SAMPLE_RATE,
                 target_duration_ms: int = TARGET_DURATION_MS):
        if target_sample_rate <= 0 or target_duration_ms <= 0:
            raise ValueError("Target sample rate and duration must be positive")
        self.target_sample_rate = target_sample_rate
        self.target_duration_ms = target_duration_ms
        self.target_sample_count = target_sample_count(target_sample_rate, target_duration_ms)

    def convert(self, raw: bytes, codec_hint: Optional[ContainerCodec] = None) -> NormalizedWaveform:
        """Run the full pipeline synchronously.

        Raises:
            ConversionError: if decoding, resampling or encoding fails
        """
        hint = codec_hint.mime_type if codec_hint else "unknown"
        logger.debug(f"Normalizing {len(raw)} bytes ({hint})")

        data, native_rate = decode_container(raw)
        source_frames, source_channels = data.shape
        mono = mix_to_mono(data)
        del data

        try:
            resampled = resample(mono, native_rate, self.target_sample_rate)
        except ConversionError:
            raise
        except Exception as e:
            raise ConversionError(f"Resampling {native_rate}Hz -> {self.target_sample_rate}Hz failed: {e}") from e

        fixed = fit_to_length(resampled, self.target_sample_count)

        try:
            wav_bytes = encode_wav_pcm16(fixed, self.target_sample_rate)
        except Exception as e:
            raise ConversionError(f"WAV encoding failed: {e}") from e

        source_duration_ms = int(round(source_frames / native_rate * 1000))
        duration_ms = int(round(fixed.shape[0] / self.target_sample_rate * 1000))
        logger.info(f"Normalized {source_channels}ch {native_rate}Hz {source_duration_ms}ms "
                    f"-> mono {self.target_sample_rate}Hz {duration_ms}ms")

        return NormalizedWaveform(
            wav_bytes=wav_bytes,
            samples=fixed,
            sample_rate=self.target_sample_rate,
            duration_ms=duration_ms,
            source_sample_rate=native_rate,
            source_channels=source_channels,
            source_duration_ms=source_duration_ms,
        )

    async def normalize(self, raw: bytes, codec_hint: Optional[ContainerCodec] = None) -> NormalizedWaveform:
        """Run the pipeline off the event loop and await its completion."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.convert, raw, codec_hint)
