"""End-to-end scenarios and their runner."""

from stream_e2e.scenarios.catalog import SCENARIOS, Scenario, ScenarioContext, scenario
from stream_e2e.scenarios.runner import (
    ScenarioReport,
    ScenarioRunner,
    ScenarioStatus,
    select_scenarios,
)

__all__ = [
    "SCENARIOS",
    "Scenario",
    "ScenarioContext",
    "ScenarioReport",
    "ScenarioRunner",
    "ScenarioStatus",
    "scenario",
    "select_scenarios",
]
