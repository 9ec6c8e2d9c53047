"""Console reporting."""

from stream_e2e.ui.reporter import ScenarioReporter, create_results_table

__all__ = [
    "ScenarioReporter",
    "create_results_table",
]
