"""Short-lived audio resources."""

from .playback import PlaybackStore

__all__ = [
    "PlaybackStore",
]
