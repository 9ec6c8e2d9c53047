"""
Live stream prober.

Records a server-produced stream to a side file for a bounded duration, then
runs ffprobe on the capture and keeps the parsed result.
"""

import asyncio
from enum import Enum
from typing import Optional

from ..executor import ProcessHandle, build_capture_command, finish_shielded, new_signal
from ..inspector import StreamInspector
from ..models import ProbeResult, ProbeSpec
from ..utils import HarnessError, ProcessTimeoutError, get_logger

logger = get_logger(__name__)


class ProberState(Enum):
    """Lifecycle state of a prober."""

    IDLE = "idle"
    PROBING = "probing"
    DONE = "done"


class Prober:
    """
    Captures a live stream and inspects it.

    The capture step is retried every ``retry_interval`` seconds while the
    stream is not yet available, all within ``ProbeSpec.timeout``. The ``done``
    signal fires when a result is stored after natural completion or after
    the internal timeout, never on external cancellation.

    ffprobe runs within what is left of ``ProbeSpec.timeout``, but gets at
    least ``INSPECT_TIMEOUT`` seconds. A cancelled probe still inspects the
    partial capture, so the stored result shows what was received.
    """

    INSPECT_TIMEOUT = 5.0

    def __init__(
        self,
        spec: ProbeSpec,
        ffmpeg: str = "ffmpeg",
        ffprobe: str = "ffprobe",
        name: str = "prober",
    ):
        """
        Initialize prober.

        Args:
            spec: What to probe and for how long
            ffmpeg: Path to ffmpeg executable used for the capture
            ffprobe: Path to ffprobe executable
            name: Name used in logs and signal names
        """
        self.spec = spec
        self.ffmpeg = ffmpeg
        self.name = name
        self.state = ProberState.IDLE
        self.attempts = 0
        self._inspector = StreamInspector(ffprobe)
        self._fire_done, self.done = new_signal(f"{name}-done")
        self._capture_tail: tuple[str, ...] = ()
        self._raw: str = ""
        self._result: Optional[ProbeResult] = None

    @property
    def command(self) -> list[str]:
        """ffmpeg capture command for this prober."""
        return build_capture_command(
            self.spec.url, self.spec.capture_file, self.spec.duration, self.ffmpeg
        )

    async def run(self) -> ProbeResult:
        """
        Capture and inspect the stream.

        Returns:
            Parsed result, also available from ``result()``

        Raises:
            asyncio.CancelledError: When cancelled by the caller; whatever was
                captured is still inspected and stored, ``done`` does not fire
            ProcessTimeoutError: When the internal timeout elapsed with no
                stream captured; an empty result is stored and ``done`` fires
            LaunchError: If ffmpeg or ffprobe cannot be started
        """
        if self.state != ProberState.IDLE:
            raise RuntimeError(f"Prober {self.name} has already run")

        self.state = ProberState.PROBING
        logger.info(f"Probing {self.spec.url} for {self.spec.duration:g}s")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.spec.timeout
        timed_out = False

        try:
            try:
                async with asyncio.timeout_at(deadline):
                    await self._capture()
            except TimeoutError:
                timed_out = True
                logger.warning(
                    f"Probe of {self.spec.url} hit its {self.spec.timeout:g}s timeout "
                    f"after {self.attempts} attempt(s)"
                )

            raw, result = await self._inspect(max(deadline - loop.time(), self.INSPECT_TIMEOUT))

        except asyncio.CancelledError:
            await finish_shielded(self._store_cancelled())
            logger.debug(f"Prober {self.name} cancelled after {self.attempts} attempt(s)")
            raise

        except HarnessError as e:
            self._store("\n".join(self._capture_tail), ProbeResult.empty(error=str(e)))
            logger.error(f"Prober {self.name} failed: {e}")
            raise

        self._store(raw, result)
        self._fire_done()
        logger.info(f"Probe of {self.spec.url} done: {result.summary()}")

        if timed_out and result.is_empty:
            raise ProcessTimeoutError(
                f"No stream captured from {self.spec.url} within {self.spec.timeout:g}s",
                timeout=self.spec.timeout,
            )
        return result

    async def _inspect(self, budget: float) -> tuple[str, ProbeResult]:
        """Run ffprobe on the capture file within a time budget."""
        try:
            async with asyncio.timeout(budget):
                return await self._inspector.inspect(self.spec.capture_file)
        except TimeoutError as e:
            raise ProcessTimeoutError(
                f"ffprobe of {self.spec.capture_file} exceeded {budget:g}s", timeout=budget
            ) from e

    async def _store_cancelled(self) -> None:
        """Inspect what was captured before a cancellation and store it."""
        tail = "\n".join(self._capture_tail)
        try:
            raw, result = await self._inspect(self.INSPECT_TIMEOUT)
        except HarnessError as e:
            raw, result = tail, ProbeResult.empty(raw=tail, error=str(e))

        if result.is_empty and not raw:
            raw, result = tail, ProbeResult.empty(raw=tail, error="probe cancelled")
        self._store(raw, result)

    async def _capture(self) -> None:
        """Record the stream, retrying while it is not available yet."""
        while True:
            self.attempts += 1
            async with ProcessHandle(self.command) as process:
                try:
                    status = await process.wait()
                finally:
                    self._capture_tail = tuple(process.stderr_tail)

            if status.success:
                logger.debug(f"Captured {self.spec.url} on attempt {self.attempts}")
                return

            logger.debug(
                f"Capture attempt {self.attempts} of {self.spec.url} failed with code "
                f"{status.returncode}, retrying in {self.spec.retry_interval:g}s"
            )
            await asyncio.sleep(self.spec.retry_interval)

    def _store(self, raw: str, result: ProbeResult) -> None:
        self._raw = raw
        self._result = result
        self.state = ProberState.DONE

    def result(self) -> tuple[str, ProbeResult]:
        """
        Get the stored result.

        Returns:
            Tuple of (raw text, ProbeResult); the same value on every call

        Raises:
            RuntimeError: If the probe has not finished yet
        """
        if self._result is None:
            raise RuntimeError(f"Prober {self.name} has no result yet")
        return self._raw, self._result

    @property
    def has_result(self) -> bool:
        """Check if a result is stored."""
        return self._result is not None

    def cleanup(self) -> None:
        """Remove the capture file."""
        try:
            self.spec.capture_file.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove {self.spec.capture_file}: {e}")
