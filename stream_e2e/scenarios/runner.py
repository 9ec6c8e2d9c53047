"""
Sequential scenario runner.

Scenarios share server-side state (publish secret, HLS mode, certificates),
so they run one after another. Each runs under the scenario deadline and is
reported as passed, failed or skipped.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from ..api import ManagementClient
from ..config import HarnessConfig
from ..orchestrator import ScenarioOutcome, StreamOrchestrator
from ..utils import ConfigurationError, HarnessError, get_logger
from .catalog import SCENARIOS, Scenario, ScenarioContext

logger = get_logger(__name__)


class ScenarioStatus(Enum):
    """Final status of a scenario."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ScenarioReport:
    """Result of one scenario."""

    name: str
    status: ScenarioStatus
    duration: float = 0.0
    error: Optional[BaseException] = None
    skip_reason: Optional[str] = None
    outcome: Optional[ScenarioOutcome] = None

    @property
    def passed(self) -> bool:
        return self.status == ScenarioStatus.PASSED

    @property
    def failed(self) -> bool:
        return self.status == ScenarioStatus.FAILED

    @property
    def detail(self) -> str:
        """One line describing the result."""
        if self.status == ScenarioStatus.SKIPPED:
            return self.skip_reason or ""
        if self.error is not None:
            return str(self.error).split("\n")[0]
        if self.outcome is not None:
            return self.outcome.result.summary()
        return ""


ReportCallback = Callable[[ScenarioReport], None]


def select_scenarios(names: Optional[Iterable[str]] = None) -> list[Scenario]:
    """
    Pick scenarios by name, in catalog order.

    Args:
        names: Scenario names (all scenarios if None or empty)

    Raises:
        ConfigurationError: If a name is not in the catalog
    """
    wanted = list(names or [])
    if not wanted:
        return list(SCENARIOS.values())

    unknown = [name for name in wanted if name not in SCENARIOS]
    if unknown:
        raise ConfigurationError(f"Unknown scenarios: {', '.join(unknown)}")
    return [scenario for name, scenario in SCENARIOS.items() if name in wanted]


class ScenarioRunner:
    """
    Runs scenarios against one server.

    The management client and orchestrator are created from the
    configuration unless given, so tests can inject a mock transport.
    """

    def __init__(
        self,
        config: HarnessConfig,
        client: Optional[ManagementClient] = None,
        orchestrator: Optional[StreamOrchestrator] = None,
    ):
        self.config = config
        self._client = client
        self.orchestrator = orchestrator or StreamOrchestrator(config)

    async def run(
        self,
        scenarios: Iterable[Scenario],
        on_report: Optional[ReportCallback] = None,
    ) -> list[ScenarioReport]:
        """
        Run scenarios one after another.

        Args:
            scenarios: Scenarios to run
            on_report: Called with each report as soon as it is ready

        Returns:
            One report per scenario, in order
        """
        client = self._client or ManagementClient(self.config)
        ctx = ScenarioContext(config=self.config, client=client, orchestrator=self.orchestrator)

        reports = []
        try:
            for scenario in scenarios:
                report = await self.run_one(scenario, ctx)
                reports.append(report)
                if on_report is not None:
                    on_report(report)
        finally:
            if self._client is None:
                await client.aclose()

        passed = sum(1 for r in reports if r.passed)
        failed = sum(1 for r in reports if r.failed)
        logger.info(
            f"Ran {len(reports)} scenarios: {passed} passed, {failed} failed, "
            f"{len(reports) - passed - failed} skipped"
        )
        return reports

    async def run_one(self, scenario: Scenario, ctx: ScenarioContext) -> ScenarioReport:
        """Run a single scenario under its deadline."""
        reason = scenario.skip_reason(self.config)
        if reason is not None:
            logger.info(f"Skip {scenario.name}: {reason}")
            return ScenarioReport(scenario.name, ScenarioStatus.SKIPPED, skip_reason=reason)

        # Publish-and-probe runs own a deadline; the outer one leaves room for
        # setting overrides and restores around them.
        deadline = self.config.scenario.timeout * 2
        logger.info(f"Run {scenario.name}")
        started = time.monotonic()

        try:
            async with asyncio.timeout(deadline):
                outcome = await scenario.func(ctx)
        except TimeoutError:
            error = HarnessError(f"Scenario {scenario.name} exceeded {deadline:g}s")
            return self._failed(scenario, started, error)
        except Exception as e:
            return self._failed(scenario, started, e)

        duration = time.monotonic() - started
        logger.info(f"Scenario {scenario.name} passed in {duration:.2f}s")
        return ScenarioReport(
            scenario.name, ScenarioStatus.PASSED, duration=duration, outcome=outcome
        )

    def _failed(self, scenario: Scenario, started: float, error: BaseException) -> ScenarioReport:
        logger.error(f"Scenario {scenario.name} failed: {error}")
        return ScenarioReport(
            scenario.name,
            ScenarioStatus.FAILED,
            duration=time.monotonic() - started,
            error=error,
        )
