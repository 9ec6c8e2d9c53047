"""Stream inspection with ffprobe."""

from stream_e2e.inspector.analyzer import StreamInspector

__all__ = ["StreamInspector"]
