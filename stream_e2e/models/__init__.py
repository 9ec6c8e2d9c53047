"""Data models for the stream harness."""

from stream_e2e.models.media import ProbeFormat, ProbeResult, ProbeStream
from stream_e2e.models.specs import ProbeSpec, PublishSpec, StreamFormat

__all__ = [
    # Media models
    "ProbeFormat",
    "ProbeResult",
    "ProbeStream",
    # Run specifications
    "ProbeSpec",
    "PublishSpec",
    "StreamFormat",
]
