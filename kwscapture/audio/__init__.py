"""Audio acquisition, recording and normalization."""

from .capture import AudioCapture
from .normalizer import WaveformNormalizer
from .acquirer import DeviceAcquirer
from .device import PyAudioPlatform

__all__ = [
    'AudioCapture',
    'WaveformNormalizer',
    'DeviceAcquirer',
    'PyAudioPlatform',
]
