"""
Stream inspection using ffprobe.

This module runs ffprobe on a capture file and turns its JSON report into a
ProbeResult. A missing, empty or malformed report is not an error at this
layer: it yields an empty ProbeResult that carries the tool's message, since
"stream never appeared" is a valid outcome for callers to assert against.
"""

import json
from pathlib import Path
from typing import Any, Optional

from ..executor import ProcessHandle, build_probe_command
from ..models import ProbeFormat, ProbeResult, ProbeStream
from ..utils import get_logger

logger = get_logger(__name__)


class StreamInspector:
    """
    Inspects captured streams using ffprobe.

    Extracts:
    - Elementary streams (codec type, codec, profile, geometry, audio layout)
    - Container format (name, duration, size, bit rate, probe score)
    """

    def __init__(self, ffprobe_path: str = "ffprobe"):
        """
        Initialize stream inspector.

        Args:
            ffprobe_path: Path to ffprobe executable (default: "ffprobe")
        """
        self._ffprobe_path = ffprobe_path

    async def inspect(self, capture_file: Path) -> tuple[str, ProbeResult]:
        """
        Run ffprobe on a capture file.

        Args:
            capture_file: File written by the capture step

        Returns:
            Tuple of (raw ffprobe output, parsed ProbeResult)

        Raises:
            LaunchError: If ffprobe cannot be started
        """
        if not capture_file.is_file():
            logger.debug(f"Nothing captured at {capture_file}")
            return "", ProbeResult.empty(error=f"capture file not found: {capture_file}")

        command = build_probe_command(capture_file, self._ffprobe_path)
        async with ProcessHandle(command) as process:
            status = await process.wait()

        raw = status.stdout
        result = self.parse(raw)

        if status.returncode != 0 and result.error is None:
            result = ProbeResult(
                streams=result.streams,
                format=result.format,
                raw=result.raw,
                error=f"ffprobe exited with code {status.returncode}",
            )

        logger.debug(f"Inspected {capture_file.name}: {result.summary()}")
        return raw, result

    def parse(self, raw: str) -> ProbeResult:
        """
        Parse ffprobe JSON output.

        Args:
            raw: Text printed by ffprobe with ``-print_format json``

        Returns:
            ProbeResult, empty when the output has no usable structure
        """
        if not raw.strip():
            return ProbeResult.empty(raw=raw, error="empty ffprobe output")

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse ffprobe output: {e}")
            return ProbeResult.empty(raw=raw, error=f"malformed ffprobe output: {e}")

        if not isinstance(data, dict):
            return ProbeResult.empty(raw=raw, error="unexpected ffprobe output")

        error = self._parse_error(data.get("error"))

        streams = []
        for stream in data.get("streams") or []:
            parsed = self._parse_stream(stream)
            if parsed is not None:
                streams.append(parsed)
        streams.sort(key=lambda s: s.index)

        return ProbeResult(
            streams=tuple(streams),
            format=self._parse_format(data.get("format") or {}),
            raw=raw,
            error=error,
        )

    def _parse_error(self, error: Any) -> Optional[str]:
        """Extract the message ffprobe prints with ``-show_error``."""
        if not isinstance(error, dict):
            return None
        message = error.get("string") or "unknown error"
        code = error.get("code")
        return f"{message} (code {code})" if code is not None else message

    def _parse_stream(self, stream: Any) -> Optional[ProbeStream]:
        """
        Parse one stream entry.

        Returns:
            ProbeStream, or None if the entry is not a stream description
        """
        if not isinstance(stream, dict):
            return None

        codec_type = str(stream.get("codec_type", "")).lower()
        if not codec_type:
            return None

        return ProbeStream(
            index=self._to_int(stream.get("index")),
            codec_type=codec_type,
            codec_name=str(stream.get("codec_name", "unknown")),
            profile=stream.get("profile"),
            width=self._to_optional_int(stream.get("width")),
            height=self._to_optional_int(stream.get("height")),
            sample_rate=self._to_optional_int(stream.get("sample_rate")),
            channels=self._to_optional_int(stream.get("channels")),
        )

    def _parse_format(self, fmt: Any) -> ProbeFormat:
        """Parse the format section; ffprobe reports most numbers as strings."""
        if not isinstance(fmt, dict):
            return ProbeFormat()

        return ProbeFormat(
            format_name=str(fmt.get("format_name", "")),
            duration=self._to_float(fmt.get("duration")),
            size=self._to_int(fmt.get("size")),
            bit_rate=self._to_int(fmt.get("bit_rate")),
            probe_score=self._to_int(fmt.get("probe_score")),
            nb_streams=self._to_int(fmt.get("nb_streams")),
        )

    @staticmethod
    def _to_float(value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError, OverflowError):
            return 0.0

    @staticmethod
    def _to_int(value: Any) -> int:
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return 0

    @staticmethod
    def _to_optional_int(value: Any) -> Optional[int]:
        if value is None:
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return None
