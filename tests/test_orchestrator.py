"""
Tests for publish-and-probe orchestration.
"""

import asyncio
import time
from unittest.mock import AsyncMock

import pytest

from stream_e2e.executor import ReadinessSignal, Unit, UnitStatus
from stream_e2e.models import StreamFormat
from stream_e2e.orchestrator import StreamOrchestrator, TerminationPolicy
from stream_e2e.orchestrator.runner import _wait_signal_or_unit
from stream_e2e.utils import CheckError, ProcessExitError, ProcessTimeoutError

RTMP_URL = "rtmp://localhost/live/test"
FLV_URL = "http://localhost:8080/live/test.flv"

EXIT_THEN_HANG = """
if "-re" in sys.argv:
    sys.stderr.write("Connection refused\\n")
    sys.exit(1)
time.sleep(60)
"""


@pytest.fixture
def orchestrator(harness_config):
    """Orchestrator using the stand-in tools."""
    return StreamOrchestrator(harness_config)


class TestSpecs:
    """Test spec construction from configuration."""

    def test_probe_spec(self, orchestrator, tmp_path):
        """Test probe budgets come from the media configuration."""
        spec = orchestrator.probe_spec(FLV_URL, "s1")

        assert spec.duration == 1.0
        assert spec.timeout == 3.0
        assert spec.retry_interval == 0.1
        assert spec.capture_file == tmp_path / "stream-e2e-probe-s1.flv"

    def test_expectation(self, orchestrator):
        """Test the default expectation and the score-less HLS variant."""
        expect = orchestrator.expectation()
        assert expect.streams == 2
        assert expect.min_score == 90
        assert expect.min_duration == 0.5

        assert orchestrator.expectation(score=False).min_score is None


class TestPublishAndProbe:
    """Test StreamOrchestrator.publish_and_probe."""

    @pytest.mark.asyncio
    async def test_fast_quit(self, orchestrator):
        """Test the publisher is stopped as soon as the probe is done."""
        probe = orchestrator.probe_spec(FLV_URL, "fast")
        outcome = await orchestrator.publish_and_probe(
            "fast",
            orchestrator.publish_spec(RTMP_URL),
            probe,
            expect=orchestrator.expectation(),
        )

        assert outcome.passed, outcome.error
        assert outcome.probe_done
        assert not outcome.deadline_exceeded
        assert len(outcome.result.streams) == 2
        assert outcome.slots.get("publish").reason == "probe done"
        assert outcome.slots.names[:2] == ["publish", "probe"]
        assert "check-streams" in outcome.slots.names
        assert not probe.capture_file.exists()

        statuses = {u.name: u.status for u in outcome.units}
        assert statuses == {"publish": UnitStatus.CANCELLED, "probe": UnitStatus.COMPLETED}

    @pytest.mark.asyncio
    async def test_observe_then_stop(self, orchestrator):
        """Test the after-probe hook runs before the publisher is stopped."""
        hook = AsyncMock()
        outcome = await orchestrator.publish_and_probe(
            "observe",
            orchestrator.publish_spec(RTMP_URL),
            orchestrator.probe_spec(FLV_URL, "observe"),
            policy=TerminationPolicy.OBSERVE_THEN_STOP,
            expect=orchestrator.expectation(score=False),
            after_probe=hook,
        )

        assert outcome.passed, outcome.error
        hook.assert_awaited_once_with(outcome.result)
        assert outcome.slots.get("publish").reason == "observation finished"
        assert "check-score" not in outcome.slots.names

    @pytest.mark.asyncio
    async def test_after_probe_failure(self, orchestrator):
        """Test a failing hook is reported in its own slot."""
        hook = AsyncMock(side_effect=CheckError("playlist has no #EXTINF:"))
        outcome = await orchestrator.publish_and_probe(
            "observe",
            orchestrator.publish_spec(RTMP_URL),
            orchestrator.probe_spec(FLV_URL, "hook"),
            policy=TerminationPolicy.OBSERVE_THEN_STOP,
            after_probe=hook,
        )

        assert not outcome.passed
        assert isinstance(outcome.error, CheckError)
        assert outcome.slots.get("after-probe") is outcome.error

    @pytest.mark.asyncio
    async def test_check_failure_keeps_capture(self, orchestrator):
        """Test failed checks are reported and the capture is kept."""
        probe = orchestrator.probe_spec(FLV_URL, "checks")
        outcome = await orchestrator.publish_and_probe(
            "checks",
            orchestrator.publish_spec(RTMP_URL),
            probe,
            expect=orchestrator.expectation(streams=3),
        )

        assert not outcome.passed
        assert isinstance(outcome.slots.get("check-streams"), CheckError)
        assert "expected 3 streams, got 2" in str(outcome.error)
        assert probe.capture_file.exists()

    @pytest.mark.asyncio
    async def test_publisher_exit(self, harness_config, make_tool):
        """Test a publisher exiting early fails the run and stops the probe."""
        ffmpeg = make_tool("exit-ffmpeg", EXIT_THEN_HANG)
        orchestrator = StreamOrchestrator(harness_config.with_overrides(media={"ffmpeg": ffmpeg}))

        outcome = await orchestrator.publish_and_probe(
            "exit",
            orchestrator.publish_spec(RTMP_URL),
            orchestrator.probe_spec(FLV_URL, "exit"),
            expect=orchestrator.expectation(),
        )

        assert isinstance(outcome.error, ProcessExitError)
        assert not outcome.probe_done
        statuses = {u.name: u.status for u in outcome.units}
        assert statuses == {"publish": UnitStatus.FAILED, "probe": UnitStatus.CANCELLED}

    @pytest.mark.asyncio
    async def test_deadline(self, orchestrator, monkeypatch):
        """Test the scenario deadline stops every unit."""
        monkeypatch.setenv("FAKE_FFMPEG_MODE", "capture-hang")

        started = time.monotonic()
        outcome = await orchestrator.publish_and_probe(
            "deadline",
            orchestrator.publish_spec(RTMP_URL),
            orchestrator.probe_spec(FLV_URL, "deadline"),
            policy=TerminationPolicy.OBSERVE_THEN_STOP,
            timeout=0.5,
        )

        assert time.monotonic() - started < 5
        assert outcome.deadline_exceeded
        assert not outcome.probe_done
        assert isinstance(outcome.error, ProcessTimeoutError)
        assert all(u.status == UnitStatus.CANCELLED for u in outcome.units)

    @pytest.mark.asyncio
    async def test_server_side_stream(self, orchestrator):
        """Test probing without a publisher."""
        outcome = await orchestrator.publish_and_probe(
            "vlive",
            None,
            orchestrator.probe_spec(FLV_URL, "vlive"),
            expect=orchestrator.expectation(),
        )

        assert outcome.passed, outcome.error
        assert [u.name for u in outcome.units] == ["probe"]

    @pytest.mark.asyncio
    async def test_wait_publisher_ready(self, orchestrator):
        """Test probing starts only after the publisher is ready."""
        srt_url = "srt://localhost:10080?streamid=#!::r=live/test,m=publish"
        outcome = await orchestrator.publish_and_probe(
            "srt",
            orchestrator.publish_spec(srt_url, StreamFormat.MPEGTS),
            orchestrator.probe_spec(FLV_URL, "srt"),
            expect=orchestrator.expectation(),
            wait_publisher_ready=True,
        )

        assert outcome.passed, outcome.error
        # settle delay is a tenth of the probe timeout
        assert outcome.duration >= 0.3

    @pytest.mark.asyncio
    async def test_cancel_before_probe_done(self, orchestrator, monkeypatch):
        """Test cancelling the run terminates both processes promptly."""
        monkeypatch.setenv("FAKE_FFMPEG_MODE", "capture-hang")
        task = asyncio.create_task(
            orchestrator.publish_and_probe(
                "cancel",
                orchestrator.publish_spec(RTMP_URL),
                orchestrator.probe_spec(FLV_URL, "cancel"),
            )
        )
        await asyncio.sleep(0.5)

        started = time.monotonic()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert time.monotonic() - started < 5


class TestWaitSignalOrUnit:
    """Test waiting for a signal or an early unit exit."""

    @pytest.mark.asyncio
    async def test_signal_fires(self):
        """Test a fired signal wins over a running unit."""
        signal = ReadinessSignal("ready")
        unit = Unit("publish", shielded=False)
        unit.task = asyncio.create_task(asyncio.sleep(60))
        asyncio.get_running_loop().call_later(0.05, signal.fire)

        assert await _wait_signal_or_unit(signal, unit) is True

        unit.task.cancel()
        await asyncio.wait([unit.task])

    @pytest.mark.asyncio
    async def test_unit_exits_first(self):
        """Test the signal waiter is reaped when the unit finishes first."""
        before = asyncio.all_tasks()
        signal = ReadinessSignal("ready")
        unit = Unit("publish", shielded=False)
        unit.task = asyncio.create_task(asyncio.sleep(0.05))

        assert await _wait_signal_or_unit(signal, unit) is False
        assert asyncio.all_tasks() <= before

    @pytest.mark.asyncio
    async def test_unit_not_spawned(self):
        """Test a unit without a task is rejected."""
        with pytest.raises(RuntimeError, match="publish"):
            await _wait_signal_or_unit(ReadinessSignal("ready"), Unit("publish", shielded=False))
