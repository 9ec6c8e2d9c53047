"""
Shared fixtures.

ffmpeg and ffprobe are replaced by small Python scripts so process
lifecycle, output streaming and cancellation are exercised against real
child processes. Their behaviour is selected through environment variables.
"""

import json
import stat
import sys
import textwrap
from pathlib import Path
from typing import Any

import httpx
import pytest

from stream_e2e.config import HarnessConfig

PROBE_REPORT = {
    "streams": [
        {
            "index": 0,
            "codec_name": "h264",
            "profile": "High",
            "codec_type": "video",
            "width": 768,
            "height": 320,
        },
        {
            "index": 1,
            "codec_name": "aac",
            "profile": "LC",
            "codec_type": "audio",
            "sample_rate": "44100",
            "channels": 2,
        },
    ],
    "format": {
        "filename": "capture.flv",
        "nb_streams": 2,
        "format_name": "flv",
        "duration": "16.023000",
        "size": "412345",
        "bit_rate": "205881",
        "probe_score": 100,
    },
}

VLIVE_CODECS = {
    "audio": {"codec_name": "aac", "channels": 2, "sample_rate": "44100"},
    "video": {"codec_name": "h264", "profile": "High", "width": 768, "height": 320},
}

FAKE_FFMPEG = """
args = sys.argv[1:]
mode = os.environ.get("FAKE_FFMPEG_MODE", "ok")

if "-re" in args:
    if mode == "publisher-exit":
        sys.stderr.write("Connection to server failed\\n")
        sys.exit(1)
    n = 0
    while True:
        n += 1
        sys.stderr.write(f"frame={n} fps=25 time=00:00:{n % 60:02d}.00 speed=1x\\r")
        sys.stderr.flush()
        time.sleep(0.05)

out = args[-1]
if mode == "capture-hang":
    time.sleep(60)
if mode == "capture-fail":
    sys.stderr.write("Server returned 404 Not Found\\n")
    sys.exit(1)
if mode == "capture-retry":
    counter = out + ".attempts"
    attempts = int(open(counter).read()) if os.path.exists(counter) else 0
    with open(counter, "w") as f:
        f.write(str(attempts + 1))
    if attempts < 2:
        sys.stderr.write("Server returned 404 Not Found\\n")
        sys.exit(1)

time.sleep(0.1)
with open(out, "w") as f:
    f.write("FLV")
sys.exit(0)
"""

FAKE_FFPROBE = """
mode = os.environ.get("FAKE_FFPROBE_MODE", "ok")
if mode == "empty":
    sys.exit(1)
if mode == "garbage":
    print("this is not json")
    sys.exit(0)
if mode == "error":
    print(json.dumps({"error": {"code": -1094995529, "string": "Invalid data found"}}))
    sys.exit(1)
print(REPORT)
"""


def write_tool(path: Path, body: str) -> str:
    """Write an executable Python script and return its path."""
    path.write_text(f"#!{sys.executable}\nimport json, os, sys, time\n{textwrap.dedent(body)}")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def fake_ffmpeg(tmp_path):
    """Path to an ffmpeg stand-in."""
    return write_tool(tmp_path / "ffmpeg", FAKE_FFMPEG)


@pytest.fixture
def fake_ffprobe(tmp_path):
    """Path to an ffprobe stand-in printing PROBE_REPORT."""
    body = FAKE_FFPROBE.replace("REPORT", repr(json.dumps(PROBE_REPORT)))
    return write_tool(tmp_path / "ffprobe", body)


@pytest.fixture
def probe_report_text():
    """ffprobe JSON report of a two track capture."""
    return json.dumps(PROBE_REPORT, indent=4)


@pytest.fixture
def sample_input(tmp_path):
    """Sample media file."""
    input_file = tmp_path / "source.200kbps.768x320.flv"
    input_file.write_bytes(b"FLV\x01\x05" + b"\x00" * 64)
    return input_file


@pytest.fixture
def harness_config(tmp_path, fake_ffmpeg, fake_ffprobe, sample_input):
    """Configuration pointing at the stand-in tools with short budgets."""
    return HarnessConfig.create_default().with_overrides(
        media={
            "input_file": sample_input,
            "ffmpeg": fake_ffmpeg,
            "ffprobe": fake_ffprobe,
            "probe_duration_ms": 1000,
            "probe_timeout_ms": 3000,
            "ready_grace_ms": 200,
            "retry_interval_ms": 100,
            "capture_dir": tmp_path,
        },
        scenario={
            "timeout_ms": 10000,
            "setting_poll_attempts": 3,
            "setting_poll_interval_ms": 10,
        },
    )


@pytest.fixture
def make_tool(tmp_path):
    """Factory writing executable stand-in scripts into tmp_path."""

    def factory(name: str, body: str) -> str:
        return write_tool(tmp_path / name, body)

    return factory


class FakeManagementServer:
    """
    In-memory management API behind httpx.MockTransport.

    Setting updates become visible after ``apply_lag`` queries, the way the
    real server applies some of them eventually.
    """

    TOKEN = "token-1234"

    def __init__(self, password: str = ""):
        self.password = password
        self.apply_lag = 0
        self.ignore_updates = False
        self.unavailable_for = 0
        self.state = {
            "noHlsCtx": False,
            "secret": "pub-secret",
            "icp": "",
            "title": "",
            "provider": "",
            "key": "",
            "crt": "",
        }
        self.vlive = {"bilibili": {"platform": "bilibili", "enabled": False, "secret": ""}}
        self.requests: list[tuple[str, Any]] = []
        self._pending: dict[str, list] = {}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def paths(self) -> list[str]:
        return [path for path, _ in self.requests]

    def _ok(self, data: Any = None) -> httpx.Response:
        return httpx.Response(200, json={"code": 0, "data": data})

    def _set(self, key: str, value: Any) -> None:
        if self.ignore_updates:
            return
        if self.apply_lag:
            self._pending[key] = [value, self.apply_lag]
        else:
            self.state[key] = value

    def _get(self, key: str) -> Any:
        pending = self._pending.get(key)
        if pending is not None:
            pending[1] -= 1
            if pending[1] < 0:
                self.state[key] = pending[0]
                del self._pending[key]
        return self.state[key]

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET":
            self.requests.append((path, None))
            return self._playlist(path)

        body = json.loads(request.content or b"{}")
        self.requests.append((path, body))

        if self.unavailable_for > 0:
            self.unavailable_for -= 1
            return httpx.Response(502, text="Bad Gateway")

        if path == "/terraform/v1/mgmt/login":
            if body.get("password") != self.password:
                return httpx.Response(200, json={"code": 100, "data": "invalid password"})
            return self._ok({"token": self.TOKEN})

        if self.password and request.headers.get("Authorization") != f"Bearer {self.TOKEN}":
            return httpx.Response(401, text="unauthorized")

        return self._route(path, body)

    def _route(self, path: str, body: dict) -> httpx.Response:
        mgmt = "/terraform/v1/mgmt"
        if path == f"{mgmt}/versions":
            return self._ok({"version": "v5.12.0"})
        if path == f"{mgmt}/envs":
            return self._ok({"mgmtDocker": True})
        if path == f"{mgmt}/init":
            return self._ok({"init": True})
        if path == f"{mgmt}/check":
            return self._ok({"upgrading": False})
        if path == f"{mgmt}/hphls/query":
            return self._ok({"noHlsCtx": self._get("noHlsCtx")})
        if path == f"{mgmt}/hphls/update":
            self._set("noHlsCtx", body["noHlsCtx"])
            return self._ok()
        if path == "/terraform/v1/hooks/srs/secret/query":
            return self._ok({"publish": self._get("secret")})
        if path == "/terraform/v1/hooks/srs/secret/update":
            self._set("secret", body["secret"])
            return self._ok()
        if path == f"{mgmt}/beian/query":
            return self._ok({"icp": self._get("icp"), "title": self._get("title")})
        if path == f"{mgmt}/beian/update":
            self._set(body["beian"], body["text"])
            return self._ok()
        if path == f"{mgmt}/bilibili":
            return self._ok({"title": "SRS Stack tutorial", "desc": "How to use SRS Stack"})
        if path == f"{mgmt}/ssl":
            self.state.update(provider="ssl", key=body["key"], crt=body["crt"])
            return self._ok()
        if path == f"{mgmt}/letsencrypt":
            self.state.update(provider="lets", key="lets-key", crt="lets-crt")
            return self._ok()
        if path == f"{mgmt}/cert/query":
            return self._ok({k: self.state[k] for k in ("provider", "key", "crt")})
        if path == "/terraform/v1/ffmpeg/vlive/server":
            return self._ok({"uuid": "file-uuid-1", "target": "/data/upload/source.flv"})
        if path == "/terraform/v1/ffmpeg/vlive/source":
            return self._ok({"files": [{**body["files"][0], **VLIVE_CODECS}]})
        if path == "/terraform/v1/ffmpeg/vlive/secret":
            if body.get("action") == "update":
                self.vlive["bilibili"] = {k: v for k, v in body.items() if k != "action"}
                return self._ok()
            return self._ok(self.vlive)
        return httpx.Response(404, text="not found")

    def _playlist(self, path: str) -> httpx.Response:
        if not path.endswith(".m3u8"):
            return httpx.Response(404, text="not found")
        if self.state["noHlsCtx"]:
            body = "#EXTM3U\n#EXT-X-TARGETDURATION:10\n#EXTINF:10.000, no desc\nlive-1.ts\n"
        else:
            body = f"#EXTM3U\n#EXT-X-STREAM-INF:BANDWIDTH=1\n{path}?hls_ctx=abc123\n"
        return httpx.Response(200, text=body)


@pytest.fixture
def fake_server():
    """Fake management API."""
    return FakeManagementServer()
