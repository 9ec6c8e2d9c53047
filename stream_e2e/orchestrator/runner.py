"""
Publish-and-probe orchestration.

This module runs a Publisher and a Prober concurrently under a deadline,
applies a termination policy once the probe is done, checks the result and
reports one ScenarioOutcome with every error slot filled in.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from ..config import HarnessConfig
from ..executor import ErrorSlots, ReadinessSignal, TaskScope, Unit, UnitResult
from ..models import ProbeResult, ProbeSpec, PublishSpec, StreamFormat
from ..streaming import Prober, Publisher
from ..utils import ProcessTimeoutError, get_logger
from ..validator import ProbeExpectation, check_probe_result

logger = get_logger(__name__)

AfterProbeHook = Callable[[ProbeResult], Awaitable[None]]


class TerminationPolicy(Enum):
    """What happens to the publisher once the probe is done."""

    FAST_QUIT = "fast-quit"
    OBSERVE_THEN_STOP = "observe-then-stop"


@dataclass
class ScenarioOutcome:
    """Everything a publish-and-probe run produced."""

    name: str
    policy: TerminationPolicy
    result: ProbeResult
    raw: str
    slots: ErrorSlots
    error: Optional[BaseException] = None
    duration: float = 0.0
    probe_done: bool = False
    deadline_exceeded: bool = False
    units: list[UnitResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        """Check if no slot holds a real error."""
        return self.error is None

    def raise_for_error(self) -> None:
        """Raise the aggregated error, if any."""
        if self.error is not None:
            raise self.error


async def _wait_signal_or_unit(signal: ReadinessSignal, unit: Unit) -> bool:
    """
    Wait until a signal fires or a unit finishes, whichever comes first.

    Returns:
        True if the signal fired
    """
    if unit.task is None:
        raise RuntimeError(f"Unit {unit.name} has not been spawned")

    waiter = asyncio.ensure_future(signal.wait())
    try:
        await asyncio.wait([waiter, unit.task], return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        await asyncio.wait([waiter])
    return signal.fired


class StreamOrchestrator:
    """
    Runs publishers and probers for scenarios.

    All timing and tool paths come from the HarnessConfig given at
    construction.
    """

    def __init__(self, config: HarnessConfig):
        """
        Initialize orchestrator.

        Args:
            config: Harness configuration
        """
        self.config = config

    def publish_spec(self, url: str, format: StreamFormat = StreamFormat.FLV) -> PublishSpec:
        """Build a spec publishing the configured sample file to a URL."""
        return PublishSpec(input_file=self.config.media.input_file, url=url, format=format)

    def probe_spec(self, url: str, stream_id: str) -> ProbeSpec:
        """Build a spec probing a URL with the configured budgets."""
        media = self.config.media
        return ProbeSpec(
            url=url,
            capture_file=Path(media.capture_dir) / f"stream-e2e-probe-{stream_id}.flv",
            duration=media.probe_duration,
            timeout=media.probe_timeout,
            retry_interval=media.retry_interval,
        )

    def expectation(
        self, streams: int = 2, score: bool = True, **codecs: Any
    ) -> ProbeExpectation:
        """Build the expectation for a probe with the configured duration."""
        return ProbeExpectation.for_probe(
            self.config.media.probe_duration,
            streams=streams,
            min_score=self.config.scenario.min_probe_score if score else None,
            **codecs,
        )

    async def publish_and_probe(
        self,
        name: str,
        publish: Optional[PublishSpec],
        probe: ProbeSpec,
        policy: TerminationPolicy = TerminationPolicy.FAST_QUIT,
        expect: Optional[ProbeExpectation] = None,
        after_probe: Optional[AfterProbeHook] = None,
        wait_publisher_ready: bool = False,
        timeout: Optional[float] = None,
    ) -> ScenarioOutcome:
        """
        Publish a stream and probe it concurrently.

        Args:
            name: Scenario name used in logs and task names
            publish: What to publish, or None to probe a server-side stream
            probe: What to probe
            policy: Termination policy applied once the probe is done
            expect: Checks applied to the probe result (skipped when None)
            after_probe: Extra async check run after the probe, while the
                publisher is still running under OBSERVE_THEN_STOP
            wait_publisher_ready: Start probing only after the publisher is
                ready plus a settle delay of a tenth of the probe timeout
            timeout: Deadline in seconds (configured scenario timeout if None)

        Returns:
            ScenarioOutcome; errors are reported in it, never raised
        """
        deadline = timeout if timeout is not None else self.config.scenario.timeout
        media = self.config.media
        slots = ErrorSlots()
        scope = TaskScope(name, raise_errors=False, slots=slots)
        shielded = policy == TerminationPolicy.OBSERVE_THEN_STOP

        publisher = None
        if publish is not None:
            publisher = Publisher(publish, ffmpeg=media.ffmpeg, ready_grace=media.ready_grace)
        prober = Prober(probe, ffmpeg=media.ffmpeg, ffprobe=media.ffprobe)

        logger.info(f"Scenario {name}: {policy.value}, probing {probe.url}")
        started = time.monotonic()
        deadline_exceeded = False

        try:
            async with asyncio.timeout(deadline):
                async with scope:
                    await self._run_units(
                        scope, slots, publisher, prober, policy, shielded,
                        expect, after_probe, wait_publisher_ready,
                    )
        except TimeoutError:
            deadline_exceeded = True
            slots.set(
                "deadline",
                ProcessTimeoutError(f"Scenario {name} exceeded its {deadline:g}s deadline", deadline),
            )
            logger.warning(f"Scenario {name} exceeded its {deadline:g}s deadline")

        if policy == TerminationPolicy.FAST_QUIT and prober.done.fired:
            self._check(slots, prober, expect)
            if after_probe is not None:
                with slots.capture("after-probe"):
                    await after_probe(prober.result()[1])

        raw, result = prober.result() if prober.has_result else ("", ProbeResult.empty())
        outcome = ScenarioOutcome(
            name=name,
            policy=policy,
            result=result,
            raw=raw,
            slots=slots,
            error=slots.error(),
            duration=time.monotonic() - started,
            probe_done=prober.done.fired,
            deadline_exceeded=deadline_exceeded,
            units=scope.summary().results,
        )

        if outcome.passed:
            prober.cleanup()
            logger.info(f"Scenario {name} passed: {result.summary()}")
        else:
            logger.error(f"Scenario {name} failed: {outcome.error}")
        return outcome

    async def _run_units(
        self,
        scope: TaskScope,
        slots: ErrorSlots,
        publisher: Optional[Publisher],
        prober: Prober,
        policy: TerminationPolicy,
        shielded: bool,
        expect: Optional[ProbeExpectation],
        after_probe: Optional[AfterProbeHook],
        wait_publisher_ready: bool,
    ) -> None:
        """Body of the scope: spawn, wait for the probe, stop the publisher."""
        publish_unit = None
        if publisher is not None:
            publish_unit = scope.spawn("publish", publisher.run(scope.cancel), shielded=shielded)

            if wait_publisher_ready:
                if not await _wait_signal_or_unit(publisher.ready, publish_unit):
                    return
                await asyncio.sleep(prober.spec.timeout / 10)

        probe_unit = scope.spawn("probe", prober.run(), shielded=shielded)

        if policy == TerminationPolicy.FAST_QUIT:
            await _wait_signal_or_unit(prober.done, probe_unit)
            scope.cancel("probe done")
            return

        await probe_unit.join()
        if prober.done.fired:
            self._check(slots, prober, expect)
            if after_probe is not None:
                with slots.capture("after-probe"):
                    await after_probe(prober.result()[1])

        if publish_unit is not None:
            publish_unit.cancel("observation finished")

    def _check(
        self,
        slots: ErrorSlots,
        prober: Prober,
        expect: Optional[ProbeExpectation],
    ) -> None:
        if expect is None:
            return
        _, result = prober.result()
        for check, error in check_probe_result(result, expect).items():
            slots.set(f"check-{check}", error)
