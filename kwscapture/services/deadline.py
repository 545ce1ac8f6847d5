"""Cancellable operation raced against a deadline."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DeadlineExceeded(Exception):
    """The operation did not complete before its deadline."""

    def __init__(self, timeout_s: float):
        self.timeout_s = timeout_s
        super().__init__(f"Operation exceeded deadline of {timeout_s:.3f}s")


def _drain_late(task: "asyncio.Future[T]", on_late_result: Optional[Callable[[T], None]]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Late operation failed after its deadline: {exc!r}")
        return
    result = task.result()
    if on_late_result is None:
        logger.debug("Late operation result discarded")
        return
    try:
        on_late_result(result)
    except Exception as e:
        logger.error(f"Cleanup of late result failed: {e}", exc_info=True)


async def run_with_deadline(
    operation: Awaitable[T],
    timeout_s: float,
    on_late_result: Optional[Callable[[T], None]] = None,
) -> T:
    """Await ``operation`` for at most ``timeout_s`` seconds.

    Whichever finishes first decides the outcome. If the deadline wins the
    operation is left running, and once it completes its result is handed to
    ``on_late_result`` so resources it acquired can be released.

    Raises:
        DeadlineExceeded: if the deadline elapsed first
    """
    task = asyncio.ensure_future(operation)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_s)
    except asyncio.CancelledError:
        task.add_done_callback(lambda t: _drain_late(t, on_late_result))
        raise

    if task in done:
        return task.result()

    task.add_done_callback(lambda t: _drain_late(t, on_late_result))
    raise DeadlineExceeded(timeout_s)
