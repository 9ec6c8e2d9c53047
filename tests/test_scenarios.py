"""
Tests for the scenario catalog and runner.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from stream_e2e.api import ManagementClient
from stream_e2e.scenarios import (
    SCENARIOS,
    Scenario,
    ScenarioRunner,
    ScenarioStatus,
    select_scenarios,
)
from stream_e2e.utils import CheckError, ConfigurationError

MEDIA_SCENARIOS = [
    "publish-rtmp-play-flv-secret-query",
    "publish-rtmp-play-flv-secret-stream",
    "publish-srt-play-flv-secret-query",
    "publish-rtmp-play-hls-secret-query",
    "publish-rtmp-play-hls-no-ctx",
    "publish-rtmp-play-hls-with-ctx",
    "publish-vlive-play-flv",
]


@pytest.fixture
def api_config(harness_config):
    """Configuration that skips media scenarios."""
    return harness_config.with_overrides(scenario={"no_media_test": True})


async def run_scenarios(config, server, names):
    """Run scenarios by name against the fake server."""
    async with ManagementClient(config, server.transport) as client:
        runner = ScenarioRunner(config, client=client)
        return await runner.run(select_scenarios(names))


class TestCatalog:
    """Test the scenario registry."""

    def test_registered(self):
        """Test every scenario is registered once, with a description."""
        assert len(SCENARIOS) == 22
        assert list(SCENARIOS)[:3] == ["ready", "query-publish-secret", "login-by-password"]
        assert all(s.description for s in SCENARIOS.values())
        assert [name for name, s in SCENARIOS.items() if s.media] == MEDIA_SCENARIOS

    def test_skip_media(self, api_config):
        """Test media scenarios are skipped without media tests."""
        reason = SCENARIOS["publish-rtmp-play-flv-secret-query"].skip_reason(api_config)
        assert reason == "media tests disabled"
        assert SCENARIOS["ready"].skip_reason(api_config) is None

    def test_skip_lets_encrypt(self, harness_config):
        """Test cases that depend on the certificate provider."""
        assert SCENARIOS["letsencrypt-update-cert"].skip_reason(harness_config) is not None
        assert SCENARIOS["ssl-update-cert"].skip_reason(harness_config) is None

        lets = harness_config.with_overrides(server={"domain_lets_encrypt": "stack.example.com"})
        assert SCENARIOS["letsencrypt-update-cert"].skip_reason(lets) is None
        assert SCENARIOS["ssl-update-cert"].skip_reason(lets) is not None
        assert SCENARIOS["tutorials-bilibili"].skip_reason(lets) is not None

    def test_skip_bilibili(self, harness_config):
        """Test the bilibili flag."""
        config = harness_config.with_overrides(scenario={"no_bilibili_test": True})
        assert SCENARIOS["tutorials-bilibili"].skip_reason(config) == "bilibili tests disabled"

    def test_select(self):
        """Test selection keeps catalog order."""
        selected = select_scenarios(["hphls-with-ctx", "ready"])
        assert [s.name for s in selected] == ["ready", "hphls-with-ctx"]
        assert len(select_scenarios()) == 22

    def test_select_unknown(self):
        """Test unknown names are rejected."""
        with pytest.raises(ConfigurationError, match="no-such-case"):
            select_scenarios(["ready", "no-such-case"])


class TestApiScenarios:
    """Test management scenarios against the fake server."""

    @pytest.mark.asyncio
    async def test_all_api_scenarios(self, api_config, fake_server):
        """Test every non-media scenario passes and restores state."""
        cert = AsyncMock(return_value=("KEY PEM", "CRT PEM"))
        with patch("stream_e2e.scenarios.catalog.create_self_signed_cert", cert):
            reports = await run_scenarios(api_config, fake_server, None)

        statuses = {r.name: r.status for r in reports}
        failures = {r.name: r.error for r in reports if r.failed}
        assert not failures
        assert statuses["letsencrypt-update-cert"] == ScenarioStatus.SKIPPED
        assert all(statuses[name] == ScenarioStatus.SKIPPED for name in MEDIA_SCENARIOS)
        assert statuses["ssl-update-cert"] == ScenarioStatus.PASSED

        assert fake_server.state["secret"] == "pub-secret"
        assert fake_server.state["noHlsCtx"] is False
        assert fake_server.state["title"] == "SRS"
        assert fake_server.state["icp"] == "TestFooter"
        assert fake_server.state["provider"] == "ssl"

    @pytest.mark.asyncio
    async def test_letsencrypt(self, api_config, fake_server):
        """Test the lets-encrypt case with a domain configured."""
        config = api_config.with_overrides(server={"domain_lets_encrypt": "stack.example.com"})
        reports = await run_scenarios(config, fake_server, ["letsencrypt-update-cert"])

        assert reports[0].passed, reports[0].error
        assert ("/terraform/v1/mgmt/letsencrypt", {"domain": "stack.example.com"}) in (
            fake_server.requests
        )

    @pytest.mark.asyncio
    async def test_failed_check(self, api_config, fake_server):
        """Test an unexpected response fails the scenario."""
        fake_server.state["secret"] = ""
        reports = await run_scenarios(api_config, fake_server, ["query-publish-secret"])

        assert reports[0].failed
        assert isinstance(reports[0].error, CheckError)
        assert reports[0].detail == "empty publish secret"


class TestMediaScenarios:
    """Test publish-and-probe scenarios with stand-in tools."""

    @pytest.mark.asyncio
    async def test_rtmp_flv(self, harness_config, fake_server):
        """Test publishing RTMP and probing HTTP-FLV."""
        reports = await run_scenarios(
            harness_config,
            fake_server,
            ["publish-rtmp-play-flv-secret-query", "publish-rtmp-play-flv-secret-stream"],
        )

        for report in reports:
            assert report.passed, report.error
            assert report.outcome.probe_done
            assert "streams=2" in report.detail

    @pytest.mark.asyncio
    async def test_hls_playlists(self, harness_config, fake_server):
        """Test both HLS modes check the first playlist and restore the mode."""
        reports = await run_scenarios(
            harness_config,
            fake_server,
            ["publish-rtmp-play-hls-no-ctx", "publish-rtmp-play-hls-with-ctx"],
        )

        for report in reports:
            assert report.passed, report.error
        playlist_fetches = [p for p in fake_server.paths() if p.endswith(".m3u8")]
        assert len(playlist_fetches) == 2
        assert fake_server.state["noHlsCtx"] is False

    @pytest.mark.asyncio
    async def test_vlive(self, harness_config, fake_server, tmp_path, monkeypatch):
        """Test the virtual live case uploads, configures and restores."""
        monkeypatch.chdir(tmp_path)
        upload = tmp_path / "platform" / "containers" / "data" / "upload"
        upload.mkdir(parents=True)
        original = dict(fake_server.vlive["bilibili"])

        reports = await run_scenarios(harness_config, fake_server, ["publish-vlive-play-flv"])

        assert reports[0].passed, reports[0].error
        assert (upload / harness_config.media.input_file.name).exists()
        assert fake_server.vlive["bilibili"] == original

        secrets = [
            body
            for path, body in fake_server.requests
            if path == "/terraform/v1/ffmpeg/vlive/secret" and body.get("action") == "update"
        ]
        assert secrets[0]["enabled"] is True
        assert secrets[0]["secret"].endswith("?secret=pub-secret")


class TestRunner:
    """Test ScenarioRunner behaviour."""

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_run(self, harness_config, fake_server):
        """Test later scenarios still run after a failure."""

        async def broken(ctx):
            raise RuntimeError("unexpected response")

        scenarios = [Scenario("broken", broken, "fails"), SCENARIOS["bootstrap-envs"]]
        callback = []
        async with ManagementClient(harness_config, fake_server.transport) as client:
            reports = await ScenarioRunner(harness_config, client=client).run(
                scenarios, on_report=callback.append
            )

        assert [r.status for r in reports] == [ScenarioStatus.FAILED, ScenarioStatus.PASSED]
        assert callback == reports
        assert reports[0].detail == "unexpected response"

    @pytest.mark.asyncio
    async def test_deadline(self, harness_config, fake_server):
        """Test a hanging scenario fails at the deadline."""
        config = harness_config.with_overrides(scenario={"timeout_ms": 1000})

        async def hang(ctx):
            await asyncio.sleep(3600)

        async with ManagementClient(config, fake_server.transport) as client:
            report = await ScenarioRunner(config, client=client).run_one(
                Scenario("hang", hang, "hangs"), None
            )

        assert report.failed
        assert "exceeded" in str(report.error)

    @pytest.mark.asyncio
    async def test_owns_client(self, harness_config):
        """Test the runner closes a client it created."""
        with patch("stream_e2e.scenarios.runner.ManagementClient") as client_class:
            client_class.return_value.aclose = AsyncMock()
            reports = await ScenarioRunner(harness_config).run([])

        assert reports == []
        client_class.return_value.aclose.assert_awaited_once()
