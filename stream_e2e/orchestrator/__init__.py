"""Publish-and-probe orchestration."""

from stream_e2e.orchestrator.runner import (
    AfterProbeHook,
    ScenarioOutcome,
    StreamOrchestrator,
    TerminationPolicy,
)

__all__ = [
    "AfterProbeHook",
    "ScenarioOutcome",
    "StreamOrchestrator",
    "TerminationPolicy",
]
