"""
Immutable run specifications for the publisher and the prober.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class StreamFormat(Enum):
    """Output container used when publishing."""

    FLV = "flv"
    MPEGTS = "mpegts"


@dataclass(frozen=True)
class PublishSpec:
    """How a publisher feeds the server."""

    input_file: Path
    url: str
    format: StreamFormat = StreamFormat.FLV
    copy_codec: bool = True
    realtime: bool = True
    loop: bool = True

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("PublishSpec.url must not be empty")


@dataclass(frozen=True)
class ProbeSpec:
    """How a prober captures and inspects a stream."""

    url: str
    capture_file: Path
    duration: float = 16.0
    timeout: float = 21.0
    retry_interval: float = 3.0

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("ProbeSpec.url must not be empty")
        if self.duration <= 0:
            raise ValueError(f"ProbeSpec.duration must be positive, got {self.duration}")
        if self.timeout < self.duration:
            raise ValueError(
                f"ProbeSpec.timeout ({self.timeout}s) must not be shorter "
                f"than its duration ({self.duration}s)"
            )
        if self.retry_interval <= 0:
            raise ValueError("ProbeSpec.retry_interval must be positive")
