"""Long-lived bookkeeping shared by every capture session operation."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from ..audio.device import DeviceHandle

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """Timers, the live device handle and the liveness flag of one session.

    Passed by reference to acquisition and recording so that completions
    arriving after teardown can see ``alive`` is False and release what they
    hold instead of installing it.
    """
    alive: bool = True
    handle: Optional[DeviceHandle] = None
    started_at: Optional[float] = None
    tick_task: Optional["asyncio.Task[None]"] = field(default=None, repr=False)
    stop_timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False)

    @property
    def has_live_handle(self) -> bool:
        return self.handle is not None and self.handle.is_live

    def install_handle(self, handle: DeviceHandle) -> bool:
        """Install a freshly acquired handle, releasing any previous one.

        Returns False (after releasing ``handle``) when the session is gone.
        """
        if not self.alive:
            logger.info("Session torn down during acquisition, releasing new handle")
            handle.release()
            return False
        previous, self.handle = self.handle, handle
        if previous is not None and previous is not handle:
            previous.release()
        return True

    def release_handle(self) -> None:
        handle, self.handle = self.handle, None
        if handle is not None:
            handle.release()

    def clear_timers(self) -> None:
        """Cancel the elapsed-time tick and the auto-stop deadline together."""
        if self.tick_task is not None:
            self.tick_task.cancel()
            self.tick_task = None
        if self.stop_timer is not None:
            self.stop_timer.cancel()
            self.stop_timer = None
        self.started_at = None
