"""
Checks of probe results against what was published.

Every check owns one named slot; a slot holds a CheckError when the check
failed and None when it passed. Each CheckError carries the probe summary and
the raw ffprobe output so a failure can be diagnosed without a rerun.
"""

from dataclasses import dataclass
from typing import Any, Optional

from ..models import ProbeResult, ProbeStream
from ..utils import CheckError, get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProbeExpectation:
    """What a probe of a published stream should report."""

    streams: int = 2
    min_score: Optional[int] = 90
    min_duration: float = 0.0
    # Optional codec expectations, checked only when set
    video_codec: Optional[str] = None
    video_profile: Optional[str] = None
    resolution: Optional[str] = None
    audio_codec: Optional[str] = None
    audio_channels: Optional[int] = None
    audio_sample_rate: Optional[int] = None

    @classmethod
    def for_probe(
        cls,
        probe_duration: float,
        streams: int = 2,
        min_score: Optional[int] = 90,
        duration_ratio: float = 0.5,
        **codecs: Any,
    ) -> "ProbeExpectation":
        """
        Build the usual expectation for a probe of a given duration.

        Args:
            probe_duration: Capture duration in seconds
            streams: Number of published elementary streams
            min_score: Probe score threshold (None skips the check)
            duration_ratio: Minimum share of the capture duration reported
            **codecs: Optional codec expectations

        Returns:
            ProbeExpectation
        """
        return cls(
            streams=streams,
            min_score=min_score,
            min_duration=probe_duration * duration_ratio,
            **codecs,
        )


def _fail(message: str, result: ProbeResult) -> CheckError:
    return CheckError(f"{message}, {result.summary()}", detail=result.raw or None)


def _first(streams: list[ProbeStream]) -> Optional[ProbeStream]:
    return streams[0] if streams else None


def check_probe_result(
    result: ProbeResult, expect: ProbeExpectation
) -> dict[str, Optional[CheckError]]:
    """
    Check a probe result.

    Args:
        result: Parsed probe result
        expect: Expected stream layout and thresholds

    Returns:
        Ordered mapping of check name to its CheckError, or None if it passed
    """
    checks: dict[str, Optional[CheckError]] = {}

    checks["streams"] = None
    if len(result.streams) != expect.streams:
        checks["streams"] = _fail(
            f"expected {expect.streams} streams, got {len(result.streams)}", result
        )

    if expect.min_score is not None:
        checks["score"] = None
        if result.score < expect.min_score:
            checks["score"] = _fail(
                f"probe score {result.score} is below {expect.min_score}", result
            )

    checks["duration"] = None
    if result.duration < expect.min_duration:
        checks["duration"] = _fail(
            f"duration {result.duration:.2f}s is below {expect.min_duration:.2f}s", result
        )

    if any(v is not None for v in (expect.video_codec, expect.video_profile, expect.resolution)):
        checks["video"] = _check_video(result, expect)

    if any(
        v is not None
        for v in (expect.audio_codec, expect.audio_channels, expect.audio_sample_rate)
    ):
        checks["audio"] = _check_audio(result, expect)

    failed = [name for name, error in checks.items() if error is not None]
    if failed:
        logger.debug(f"Probe checks failed: {', '.join(failed)}")
    return checks


def _check_video(result: ProbeResult, expect: ProbeExpectation) -> Optional[CheckError]:
    video = _first(result.video_streams)
    if video is None:
        return _fail("no video stream", result)

    if expect.video_codec is not None and video.codec_name != expect.video_codec:
        return _fail(f"video codec {video.codec_name} is not {expect.video_codec}", result)
    if expect.video_profile is not None and video.profile != expect.video_profile:
        return _fail(f"video profile {video.profile} is not {expect.video_profile}", result)
    if expect.resolution is not None and video.resolution != expect.resolution:
        return _fail(f"resolution {video.resolution} is not {expect.resolution}", result)
    return None


def _check_audio(result: ProbeResult, expect: ProbeExpectation) -> Optional[CheckError]:
    audio = _first(result.audio_streams)
    if audio is None:
        return _fail("no audio stream", result)

    if expect.audio_codec is not None and audio.codec_name != expect.audio_codec:
        return _fail(f"audio codec {audio.codec_name} is not {expect.audio_codec}", result)
    if expect.audio_channels is not None and audio.channels != expect.audio_channels:
        return _fail(f"audio channels {audio.channels} is not {expect.audio_channels}", result)
    if expect.audio_sample_rate is not None and audio.sample_rate != expect.audio_sample_rate:
        return _fail(
            f"audio sample rate {audio.sample_rate} is not {expect.audio_sample_rate}", result
        )
    return None
