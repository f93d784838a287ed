"""Cooperative cancellation for the control task.

Every wait in the control core goes through an ``AbortToken`` so that an
external stop request unwinds the current operation within one poll slice.
"""

import asyncio
import threading
import time
from typing import Callable

ABORT_CHECK_INTERVAL = 0.1
"""Longest uninterrupted sleep between abort checks (seconds)."""


class AbortToken:
    """Abort flag shared by every component of a run.

    The flag is a ``threading.Event`` so it can be set from a signal handler or
    another thread as well as from the control task.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def abort(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    async def sleep(self, seconds: float) -> bool:
        """Sleep in short slices, returning early on abort.

        Always yields to the event loop at least once, even for a zero delay.

        Args:
            seconds: Total time to wait.

        Returns:
            True if the full wait elapsed, False if the run was aborted.
        """
        deadline = time.monotonic() + max(0.0, seconds)
        while True:
            remaining = deadline - time.monotonic()
            await asyncio.sleep(min(max(remaining, 0.0), ABORT_CHECK_INTERVAL))
            if self.aborted:
                return False
            if remaining <= ABORT_CHECK_INTERVAL:
                return True

    async def wait_for(
        self, predicate: Callable[[], bool], timeout: float, interval: float = ABORT_CHECK_INTERVAL
    ) -> bool:
        """Poll ``predicate`` until it holds, the timeout passes, or the run aborts.

        Args:
            predicate: Condition to wait for.
            timeout: Maximum wait in seconds.
            interval: Poll interval in seconds.

        Returns:
            True if the predicate became true, False on timeout or abort.
        """
        deadline = time.monotonic() + timeout
        while not self.aborted:
            if predicate():
                return True
            if time.monotonic() >= deadline:
                return False
            if not await self.sleep(min(interval, max(deadline - time.monotonic(), 0.0))):
                return False
        return False
