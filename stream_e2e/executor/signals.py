"""
One-shot readiness signals.

A ReadinessSignal is fired once when a process reaches a meaningful milestone
(publisher sending data, probe finished) and can be awaited by any number of
tasks, before or after it fires.
"""

import asyncio
import time
from typing import Callable, Optional

from ..utils import get_logger

logger = get_logger(__name__)


class ReadinessSignal:
    """One-shot, multi-waiter completion signal."""

    def __init__(self, name: str):
        """
        Initialize signal.

        Args:
            name: Name used in log messages (e.g. "probe-done")
        """
        self.name = name
        self._event = asyncio.Event()
        self._fired_at: Optional[float] = None

    def fire(self) -> bool:
        """
        Fire the signal, waking every current and future waiter.

        Returns:
            True the first time, False on every later call
        """
        if self._event.is_set():
            return False

        self._fired_at = time.monotonic()
        self._event.set()
        logger.debug(f"Signal {self.name} fired")
        return True

    @property
    def fired(self) -> bool:
        """Check if the signal has fired."""
        return self._event.is_set()

    @property
    def fired_at(self) -> Optional[float]:
        """Monotonic time the signal fired at, or None."""
        return self._fired_at

    async def wait(self) -> None:
        """Block until the signal fires."""
        await self._event.wait()

    async def wait_for(self, timeout: Optional[float]) -> bool:
        """
        Block until the signal fires or the timeout elapses.

        Args:
            timeout: Seconds to wait (None waits forever)

        Returns:
            True if the signal fired
        """
        if self._event.is_set():
            return True

        try:
            async with asyncio.timeout(timeout):
                await self._event.wait()
        except TimeoutError:
            return False
        return True

    def __repr__(self) -> str:
        return f"ReadinessSignal({self.name!r}, fired={self.fired})"


def new_signal(name: str) -> tuple[Callable[[], bool], ReadinessSignal]:
    """
    Create a signal and return its trigger alongside it.

    Args:
        name: Signal name

    Returns:
        Tuple of (fire, signal)
    """
    signal = ReadinessSignal(name)
    return signal.fire, signal
