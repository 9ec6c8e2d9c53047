"""
Stream E2E

End-to-end checks for a live streaming server: publish with ffmpeg, probe
with ffmpeg and ffprobe, and exercise the management API.
"""

__version__ = "0.1.0"

from stream_e2e.config import HarnessConfig
from stream_e2e.models import ProbeResult, ProbeSpec, PublishSpec
from stream_e2e.orchestrator import ScenarioOutcome, StreamOrchestrator, TerminationPolicy
from stream_e2e.utils import HarnessError, get_logger, setup_logger

__all__ = [
    "__version__",
    # Config
    "HarnessConfig",
    # Models
    "ProbeResult",
    "ProbeSpec",
    "PublishSpec",
    # Orchestration
    "ScenarioOutcome",
    "StreamOrchestrator",
    "TerminationPolicy",
    # Utils
    "HarnessError",
    "get_logger",
    "setup_logger",
]
