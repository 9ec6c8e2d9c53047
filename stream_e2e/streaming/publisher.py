"""
Live stream publisher.

Runs ffmpeg to push a sample file to the server, looping its input so the
stream stays live for as long as the scenario needs it.
"""

import asyncio
import re
from enum import Enum
from typing import Callable, Optional

from ..executor import ProcessHandle, build_publish_command, new_signal
from ..models import PublishSpec
from ..utils import HarnessError, ProcessExitError, get_logger, parse_time_to_seconds

logger = get_logger(__name__)


class PublisherState(Enum):
    """Lifecycle state of a publisher."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    CANCELLED = "cancelled"
    EXITED = "exited"


class Publisher:
    """
    Publishes a looping sample file to a streaming URL.

    The ``ready`` signal fires on the first ffmpeg progress line, or once the
    process has stayed alive for the readiness grace period. Cancellation is
    the expected way to stop a publisher; the process exiting during a run is
    reported as an error.
    """

    PROGRESS_PATTERN = re.compile(r"time=(\d{2}:\d{2}:\d{2}\.\d{2})")

    def __init__(
        self,
        spec: PublishSpec,
        ffmpeg: str = "ffmpeg",
        ready_grace: float = 1.0,
        name: str = "publisher",
    ):
        """
        Initialize publisher.

        Args:
            spec: What to publish and where
            ffmpeg: Path to ffmpeg executable
            ready_grace: Seconds alive after which the publisher counts as ready
            name: Name used in logs and signal names
        """
        self.spec = spec
        self.ffmpeg = ffmpeg
        self.ready_grace = ready_grace
        self.name = name
        self.state = PublisherState.IDLE
        self.published_seconds = 0.0
        self._fire_ready, self.ready = new_signal(f"{name}-ready")
        self._process: Optional[ProcessHandle] = None

    @property
    def command(self) -> list[str]:
        """ffmpeg command for this publisher."""
        return build_publish_command(self.spec, self.ffmpeg)

    def _on_line(self, line: str) -> None:
        match = self.PROGRESS_PATTERN.search(line)
        if not match:
            return

        self.published_seconds = parse_time_to_seconds(match.group(1))
        if self._fire_ready():
            logger.info(f"Publisher {self.name} is sending data to {self.spec.url}")

    async def run(self, cancel: Optional[Callable[[str], None]] = None) -> None:
        """
        Publish until cancelled.

        Args:
            cancel: Escape hatch invoked after the process is gone, on every
                exit path, so the caller's scope stops with the publisher

        Raises:
            asyncio.CancelledError: When the run is cancelled (expected)
            LaunchError: If ffmpeg cannot be started
            ProcessExitError: If ffmpeg exits during the run
        """
        if self.state != PublisherState.IDLE:
            raise RuntimeError(f"Publisher {self.name} has already run")

        self.state = PublisherState.STARTING
        logger.info(f"Publishing {self.spec.input_file} to {self.spec.url}")
        reason = f"{self.name} stopped"

        try:
            async with ProcessHandle(self.command, on_line=self._on_line) as process:
                self._process = process
                self.state = PublisherState.RUNNING

                status = await process.wait_for(self.ready_grace)
                if status is None:
                    if self._fire_ready():
                        logger.debug(f"Publisher {self.name} alive after {self.ready_grace}s")
                    status = await process.wait()

                self.state = PublisherState.EXITED
                if status.success and not self.spec.loop:
                    logger.info(f"Publisher {self.name} finished its input")
                    return

                reason = f"{self.name} exited"
                raise ProcessExitError(
                    f"Publisher {self.name} exited unexpectedly with code {status.returncode}",
                    returncode=status.returncode,
                    command=process.command,
                    output=status.output_tail,
                )

        except asyncio.CancelledError:
            self.state = PublisherState.CANCELLED
            reason = f"{self.name} cancelled"
            logger.debug(f"Publisher {self.name} cancelled")
            raise

        except HarnessError as e:
            self.state = PublisherState.EXITED
            reason = f"{self.name} failed"
            logger.error(f"Publisher {self.name} failed: {e}")
            raise

        finally:
            if cancel is not None:
                cancel(reason)

    @property
    def is_running(self) -> bool:
        """Check if the publisher process is running."""
        return self.state == PublisherState.RUNNING
