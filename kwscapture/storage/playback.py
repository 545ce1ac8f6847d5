"""Playback preview resource management."""

import os
import logging
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class PlaybackStore:
    """Holds at most one playable WAV preview on disk.

    Every issued file is removed before the next one is written, so repeated
    recordings never accumulate previews.
    """

    def __init__(self, directory: Optional[str] = None, prefix: str = "kwscapture_"):
        """Initialize playback store.

        Args:
            directory: Where previews are written (system temp dir if None)
            prefix: Filename prefix for issued previews
        """
        self.directory = Path(directory) if directory else Path(tempfile.gettempdir())
        self.prefix = prefix
        self.current: Optional[Path] = None

    def issue(self, wav_bytes: bytes) -> Path:
        """Release the previous preview and write a new one."""
        self.release()
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(suffix=".wav", prefix=self.prefix, dir=str(self.directory))
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(wav_bytes)
        except Exception:
            Path(name).unlink(missing_ok=True)
            raise
        self.current = Path(name)
        logger.debug(f"Issued playback preview: {self.current} ({len(wav_bytes)} bytes)")
        return self.current

    def release(self) -> None:
        """Remove the current preview, if any."""
        path, self.current = self.current, None
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
            logger.debug(f"Released playback preview: {path}")
        except OSError as e:
            logger.warning(f"Could not remove playback preview {path}: {e}")
