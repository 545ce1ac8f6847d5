"""Microphone acquisition with timeout protection."""

import asyncio
import errno
import logging
from typing import Optional

from ..errors import AcquisitionError, DeviceBlockedError, DeviceNotFoundError
from ..models.capture import FailureKind
from ..services.context import SessionContext
from ..services.deadline import DeadlineExceeded, run_with_deadline
from .device import DeviceHandle, MicrophonePlatform

logger = logging.getLogger(__name__)

DEFAULT_ACQUIRE_TIMEOUT_S = 30.0

# PortAudio error codes surfaced by PyAudio as OSError.errno
PA_INVALID_DEVICE = -9996
PA_DEVICE_UNAVAILABLE = -9985
NO_DEVICE_ERRNOS = {PA_INVALID_DEVICE, PA_DEVICE_UNAVAILABLE, errno.ENODEV, errno.ENOENT}


def classify_denial(exc: BaseException) -> FailureKind:
    """Map a platform failure onto a FailureKind."""
    if isinstance(exc, PermissionError):
        return FailureKind.PERMISSION_DENIED
    if isinstance(exc, DeviceBlockedError):
        return FailureKind.SECURITY_BLOCKED
    if isinstance(exc, DeviceNotFoundError):
        return FailureKind.NO_DEVICE
    if isinstance(exc, OSError) and exc.errno in NO_DEVICE_ERRNOS:
        return FailureKind.NO_DEVICE
    return FailureKind.UNKNOWN


def _release_late_handle(handle: DeviceHandle) -> None:
    logger.warning("Microphone granted after the acquisition deadline, releasing it")
    handle.release()


class DeviceAcquirer:
    """Negotiates microphone access, one live handle per session context."""

    def __init__(self, platform: MicrophonePlatform, timeout_s: float = DEFAULT_ACQUIRE_TIMEOUT_S):
        self.platform = platform
        self.timeout_s = timeout_s

    async def acquire(self, ctx: SessionContext) -> Optional[DeviceHandle]:
        """Acquire a handle and install it into ``ctx``.

        Returns:
            The installed handle, or None if ``ctx`` was torn down meanwhile
            (the fresh handle is released in that case).

        Raises:
            AcquisitionError: with the FailureKind describing why
        """
        try:
            supported = self.platform.is_supported()
        except Exception as e:
            logger.warning(f"Capture capability probe failed: {e}")
            supported = False
        if not supported:
            raise AcquisitionError("No microphone capture capability", FailureKind.UNSUPPORTED)

        loop = asyncio.get_running_loop()
        request = loop.run_in_executor(None, self.platform.open_input)
        try:
            handle = await run_with_deadline(request, self.timeout_s, _release_late_handle)
        except DeadlineExceeded as e:
            logger.warning(f"Microphone request timed out after {self.timeout_s:.1f}s")
            raise AcquisitionError(str(e), FailureKind.PERMISSION_TIMEOUT) from e
        except Exception as e:
            kind = classify_denial(e)
            logger.warning(f"Microphone request rejected ({kind.value}): {e}")
            raise AcquisitionError(str(e), kind) from e

        if not ctx.install_handle(handle):
            return None
        logger.info("Microphone acquired")
        return handle
