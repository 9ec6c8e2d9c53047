"""
Async subprocess wrapper for ffmpeg and ffprobe execution.

This module provides lifecycle management for one external process (start,
wait, kill, exit status capture) plus builders for the ffmpeg and ffprobe
command lines the harness runs.
"""

import asyncio
import re
from collections import deque
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from ..models import PublishSpec
from ..utils import LaunchError, ProcessExitError, get_logger

logger = get_logger(__name__)

LineCallback = Callable[[str], None]


class ProcessState(Enum):
    """Lifecycle state of a ProcessHandle."""

    PENDING = "pending"
    RUNNING = "running"
    EXITED = "exited"
    KILLED = "killed"


@dataclass(frozen=True)
class ExitStatus:
    """How a process ended."""

    returncode: Optional[int]
    killed: bool
    stdout: str
    stderr_tail: tuple[str, ...]

    @property
    def success(self) -> bool:
        """Check if the process exited on its own with code 0."""
        return self.returncode == 0 and not self.killed

    @property
    def output_tail(self) -> str:
        """Captured stderr tail as one string."""
        return "\n".join(self.stderr_tail)


class ProcessHandle:
    """
    Lifecycle wrapper around one external OS process.

    Provides:
    - Chunked stdout/stderr reading, split on CR or LF so ffmpeg progress
      lines are observed as they are written
    - Idempotent SIGKILL
    - A shared exit waiter that many tasks can await
    - Kill and reap on leaving an ``async with`` block, on every path
    """

    LINE_SEPARATOR = re.compile(r"[\r\n]+")
    READ_CHUNK_SIZE = 4096
    DEFAULT_TAIL_LINES = 64

    def __init__(
        self,
        command: list[str],
        cwd: Optional[Path] = None,
        on_line: Optional[LineCallback] = None,
        tail_lines: int = DEFAULT_TAIL_LINES,
    ):
        """
        Initialize handle without starting the process.

        Args:
            command: Argument vector, executable first
            cwd: Working directory for the process
            on_line: Called with every output line from stdout and stderr
            tail_lines: Number of stderr lines kept for diagnostics
        """
        if not command:
            raise ValueError("command must not be empty")

        self.command = list(command)
        self.cwd = cwd
        self.on_line = on_line
        self.state = ProcessState.PENDING
        self._process: Optional[asyncio.subprocess.Process] = None
        self._stdout_chunks: list[str] = []
        self._stderr_tail: deque[str] = deque(maxlen=tail_lines)
        self._kill_requested = False
        self._waiter: Optional[asyncio.Task[ExitStatus]] = None

    @classmethod
    async def start(
        cls,
        command: list[str],
        cwd: Optional[Path] = None,
        on_line: Optional[LineCallback] = None,
    ) -> "ProcessHandle":
        """
        Start a process.

        Args:
            command: Argument vector, executable first
            cwd: Working directory for the process
            on_line: Called with every output line

        Returns:
            Handle of the running process

        Raises:
            LaunchError: If the executable is missing or cannot be spawned
        """
        handle = cls(command, cwd=cwd, on_line=on_line)
        await handle._spawn()
        return handle

    async def _spawn(self) -> None:
        """Spawn the process and its output readers."""
        if self.state != ProcessState.PENDING:
            raise RuntimeError(f"Process already started: {self.command[0]}")

        logger.debug(f"Starting process: {' '.join(self.command)}")

        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
        except FileNotFoundError as e:
            raise LaunchError(f"Executable not found: {self.command[0]}", self.command) from e
        except OSError as e:
            raise LaunchError(f"Failed to spawn {self.command[0]}: {e}", self.command) from e

        self.state = ProcessState.RUNNING
        self._waiter = asyncio.create_task(
            self._wait_exit(), name=f"wait-{self.command[0]}-{self._process.pid}"
        )

    async def _wait_exit(self) -> ExitStatus:
        """Drain both pipes, reap the process and record its exit status."""
        if self._process is None:
            raise RuntimeError("Process not started")

        await asyncio.gather(
            self._pump(self._process.stdout, is_stdout=True),
            self._pump(self._process.stderr, is_stdout=False),
        )
        returncode = await self._process.wait()

        killed = self._kill_requested and returncode != 0
        self.state = ProcessState.KILLED if killed else ProcessState.EXITED
        logger.debug(f"Process {self.command[0]} ({self._process.pid}) ended with code {returncode}")

        return ExitStatus(
            returncode=returncode,
            killed=killed,
            stdout="".join(self._stdout_chunks),
            stderr_tail=tuple(self._stderr_tail),
        )

    async def _pump(self, stream: Optional[asyncio.StreamReader], is_stdout: bool) -> None:
        """
        Read a pipe in chunks and dispatch complete lines.

        Stdout is kept whole so structured output survives intact; stderr
        keeps only a bounded tail of lines.
        """
        if stream is None:
            return

        pending = ""
        while True:
            chunk = await stream.read(self.READ_CHUNK_SIZE)
            if not chunk:
                break

            text = chunk.decode(errors="replace")
            if is_stdout:
                self._stdout_chunks.append(text)

            pending += text
            *lines, pending = self.LINE_SEPARATOR.split(pending)
            for line in lines:
                self._dispatch(line, is_stdout)

        if pending:
            self._dispatch(pending, is_stdout)

    def _dispatch(self, line: str, is_stdout: bool) -> None:
        line = line.strip()
        if not line:
            return

        if not is_stdout:
            self._stderr_tail.append(line)

        if self.on_line:
            try:
                self.on_line(line)
            except Exception as e:
                logger.warning(f"Line callback failed: {e}")

    async def wait(self) -> ExitStatus:
        """
        Wait until the process exits or is killed and its output is drained.

        Safe to await from several tasks; cancelling one waiter does not
        affect the others.

        Returns:
            Exit status
        """
        if self._waiter is None:
            raise RuntimeError("Process not started")
        return await asyncio.shield(self._waiter)

    async def wait_for(self, timeout: Optional[float]) -> Optional[ExitStatus]:
        """
        Wait for the process at most timeout seconds.

        Returns:
            Exit status, or None if the process is still running
        """
        try:
            async with asyncio.timeout(timeout):
                return await self.wait()
        except TimeoutError:
            return None

    def kill(self) -> None:
        """
        Send SIGKILL to the process.

        Safe to call several times and after the process has exited. Does not
        wait for the process to be reaped.
        """
        if self._process is None or self._process.returncode is not None:
            return
        if self._kill_requested:
            return

        self._kill_requested = True
        try:
            self._process.kill()
            logger.debug(f"Killed {self.command[0]} ({self._process.pid})")
        except ProcessLookupError:
            pass

    def check(self, status: ExitStatus) -> None:
        """
        Raise if the status is not a clean exit.

        Raises:
            ProcessExitError: For a non-zero exit code or a killed process
        """
        if status.success:
            return

        if status.killed:
            message = f"{self.command[0]} was killed"
        else:
            message = f"{self.command[0]} exited with code {status.returncode}"

        raise ProcessExitError(
            message,
            returncode=status.returncode,
            command=self.command,
            output=status.output_tail,
        )

    @property
    def pid(self) -> Optional[int]:
        """Get OS process id."""
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> Optional[int]:
        """Get process return code."""
        return self._process.returncode if self._process else None

    @property
    def is_running(self) -> bool:
        """Check if process is currently running."""
        return self.state == ProcessState.RUNNING

    @property
    def stderr_tail(self) -> list[str]:
        """Get captured stderr lines so far."""
        return list(self._stderr_tail)

    async def __aenter__(self) -> "ProcessHandle":
        if self.state == ProcessState.PENDING:
            await self._spawn()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._waiter is None:
            return
        self.kill()
        await self.wait()


class FFmpegCommandBuilder:
    """
    Builder for constructing ffmpeg commands.

    Options are kept in insertion order; a None value adds a bare flag.
    """

    def __init__(self, executable: str = "ffmpeg"):
        """Initialize command builder."""
        self._command = [executable]
        self._inputs: list[tuple[list[str], str]] = []
        self._output_options: list[str] = []
        self._outputs: list[str] = []

    @staticmethod
    def _flatten(options: Optional[dict[str, Optional[str]]]) -> list[str]:
        flat: list[str] = []
        for key, value in (options or {}).items():
            flat.append(f"-{key}")
            if value is not None:
                flat.append(value)
        return flat

    def global_option(self, option: str, value: Optional[str] = None) -> "FFmpegCommandBuilder":
        """
        Add global option.

        Args:
            option: Option name (e.g., "-y", "-loglevel")
            value: Option value (if applicable)

        Returns:
            Self for chaining
        """
        self._command.append(option)
        if value is not None:
            self._command.append(value)
        return self

    def input(
        self,
        source: Union[Path, str],
        options: Optional[dict[str, Optional[str]]] = None,
    ) -> "FFmpegCommandBuilder":
        """
        Add input with options placed right before its ``-i``.

        Args:
            source: Input file or URL
            options: Input options (e.g., {"re": None, "stream_loop": "-1"})

        Returns:
            Self for chaining
        """
        self._inputs.append((self._flatten(options), str(source)))
        return self

    def output(
        self,
        target: Union[Path, str],
        options: Optional[dict[str, Optional[str]]] = None,
    ) -> "FFmpegCommandBuilder":
        """
        Add output with options.

        Args:
            target: Output file or URL
            options: Output options (e.g., {"c": "copy", "f": "flv"})

        Returns:
            Self for chaining
        """
        self._output_options.extend(self._flatten(options))
        self._outputs.append(str(target))
        return self

    def build(self) -> list[str]:
        """
        Build final command list.

        Returns:
            Complete command as list
        """
        command = self._command.copy()

        for options, source in self._inputs:
            command.extend(options)
            command.extend(["-i", source])

        command.extend(self._output_options)
        command.extend(self._outputs)
        return command


def build_publish_command(spec: PublishSpec, ffmpeg: str = "ffmpeg") -> list[str]:
    """
    Build the publisher command for a spec.

    Produces ``ffmpeg -re -stream_loop -1 -i INPUT -c copy -f FORMAT URL``.
    """
    input_options: dict[str, Optional[str]] = {}
    if spec.realtime:
        input_options["re"] = None
    if spec.loop:
        input_options["stream_loop"] = "-1"

    output_options: dict[str, Optional[str]] = {}
    if spec.copy_codec:
        output_options["c"] = "copy"
    output_options["f"] = spec.format.value

    return (
        FFmpegCommandBuilder(ffmpeg)
        .input(spec.input_file, input_options)
        .output(spec.url, output_options)
        .build()
    )


def build_capture_command(
    url: str,
    capture_file: Path,
    duration: float,
    ffmpeg: str = "ffmpeg",
) -> list[str]:
    """
    Build the command that records a live stream to a file.

    Produces ``ffmpeg -t DURATION -i URL -c copy -y FILE``.
    """
    return (
        FFmpegCommandBuilder(ffmpeg)
        .input(url, {"t": f"{duration:g}"})
        .output(capture_file, {"c": "copy", "y": None})
        .build()
    )


def build_probe_command(capture_file: Path, ffprobe: str = "ffprobe") -> list[str]:
    """Build the ffprobe command that reports a capture as JSON."""
    return [
        ffprobe,
        "-show_error",
        "-show_private_data",
        "-v",
        "quiet",
        "-find_stream_info",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        str(capture_file),
    ]
