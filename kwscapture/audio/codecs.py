"""Container codec negotiation for the recording engine."""

import logging
from typing import Callable, Optional, Sequence

import soundfile as sf

from ..models.audio import ContainerCodec
from .wav import WAV_MIME_TYPE

logger = logging.getLogger(__name__)


CODEC_CANDIDATES = (
    ContainerCodec("audio/ogg;codecs=opus", "OGG", "OPUS"),
    ContainerCodec("audio/ogg;codecs=vorbis", "OGG", "VORBIS"),
    ContainerCodec("audio/flac", "FLAC", "PCM_16"),
)

DEFAULT_CODEC = ContainerCodec(WAV_MIME_TYPE, "WAV", "PCM_16")


def _libsndfile_supports(codec: ContainerCodec) -> bool:
    try:
        return bool(sf.check_format(codec.format, codec.subtype))
    except (TypeError, ValueError) as e:
        logger.debug(f"Format probe failed for {codec.mime_type}: {e}")
        return False


def pick_supported_codec(
    candidates: Sequence[ContainerCodec] = CODEC_CANDIDATES,
    is_supported: Callable[[ContainerCodec], bool] = _libsndfile_supports,
) -> Optional[ContainerCodec]:
    """Return the most preferred candidate the engine can write, or None."""
    for codec in candidates:
        if is_supported(codec):
            logger.info(f"Negotiated capture codec: {codec.mime_type}")
            return codec
    logger.info("No preferred capture codec available, using platform default")
    return None


def codec_for_mime(mime_type: Optional[str]) -> ContainerCodec:
    """Look up a codec by MIME identifier, falling back to the default."""
    for codec in CODEC_CANDIDATES + (DEFAULT_CODEC,):
        if codec.mime_type == mime_type:
            return codec
    return DEFAULT_CODEC
