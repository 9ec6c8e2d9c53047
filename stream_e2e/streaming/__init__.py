"""Publisher and prober processes."""

from stream_e2e.streaming.prober import Prober, ProberState
from stream_e2e.streaming.publisher import Publisher, PublisherState

__all__ = [
    "Prober",
    "ProberState",
    "Publisher",
    "PublisherState",
]
