"""
Data models for probed stream information.

This module contains frozen dataclasses describing what ffprobe reported about
a captured live stream: its elementary streams and its container format.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ProbeStream:
    """One elementary stream detected by the prober."""

    index: int
    codec_type: str
    codec_name: str
    profile: Optional[str] = None
    # Video
    width: Optional[int] = None
    height: Optional[int] = None
    # Audio
    sample_rate: Optional[int] = None
    channels: Optional[int] = None

    @property
    def is_video(self) -> bool:
        """Check if this is a video stream."""
        return self.codec_type == "video"

    @property
    def is_audio(self) -> bool:
        """Check if this is an audio stream."""
        return self.codec_type == "audio"

    @property
    def resolution(self) -> Optional[str]:
        """Get resolution as string (e.g., '768x320')."""
        if self.width is None or self.height is None:
            return None
        return f"{self.width}x{self.height}"

    def describe(self) -> str:
        """Short human readable description."""
        parts = [self.codec_type, self.codec_name]
        if self.profile:
            parts.append(self.profile)
        if self.is_video and self.resolution:
            parts.append(self.resolution)
        if self.is_audio:
            if self.sample_rate:
                parts.append(f"{self.sample_rate}Hz")
            if self.channels:
                parts.append(f"{self.channels}ch")
        return "/".join(parts)


@dataclass(frozen=True)
class ProbeFormat:
    """Container level information of a probed capture."""

    format_name: str = ""
    duration: float = 0.0
    size: int = 0
    bit_rate: int = 0
    probe_score: int = 0
    nb_streams: int = 0


@dataclass(frozen=True)
class ProbeResult:
    """Structured description of one finished probe."""

    streams: tuple[ProbeStream, ...] = ()
    format: ProbeFormat = ProbeFormat()
    raw: str = ""
    error: Optional[str] = None

    @classmethod
    def empty(cls, raw: str = "", error: Optional[str] = None) -> "ProbeResult":
        """Result of a probe that saw no stream at all."""
        return cls(streams=(), format=ProbeFormat(), raw=raw, error=error)

    @property
    def is_empty(self) -> bool:
        """Check if no stream was detected."""
        return not self.streams

    @property
    def score(self) -> int:
        """Probe score on the tool's 0-100 scale."""
        return self.format.probe_score

    @property
    def duration(self) -> float:
        """Reported duration in seconds."""
        return self.format.duration

    @property
    def video_streams(self) -> list[ProbeStream]:
        """Get video streams in index order."""
        return [s for s in self.streams if s.is_video]

    @property
    def audio_streams(self) -> list[ProbeStream]:
        """Get audio streams in index order."""
        return [s for s in self.streams if s.is_audio]

    def summary(self) -> str:
        """One line summary used in check failures and reports."""
        streams = ", ".join(s.describe() for s in self.streams) or "none"
        text = (
            f"streams={len(self.streams)} [{streams}], score={self.score}, "
            f"duration={self.duration:.2f}s, format={self.format.format_name or '-'}"
        )
        if self.error:
            text += f", error={self.error}"
        return text
