"""
Tests for stream inspector module.
"""

import json

import pytest

from stream_e2e.inspector import StreamInspector
from stream_e2e.models import ProbeResult
from stream_e2e.utils import LaunchError


@pytest.fixture
def capture_file(tmp_path):
    """A capture file as left behind by the capture step."""
    path = tmp_path / "capture.flv"
    path.write_bytes(b"FLV")
    return path


class TestParse:
    """Test parsing ffprobe reports."""

    def test_parse_report(self, probe_report_text):
        """Test a full two track report."""
        result = StreamInspector().parse(probe_report_text)

        assert len(result.streams) == 2
        assert result.score == 100
        assert result.duration == pytest.approx(16.023)
        assert result.format.format_name == "flv"
        assert result.format.size == 412345
        assert result.error is None

        video = result.video_streams[0]
        assert video.codec_name == "h264"
        assert video.profile == "High"
        assert video.resolution == "768x320"

        audio = result.audio_streams[0]
        assert audio.codec_name == "aac"
        assert audio.sample_rate == 44100
        assert audio.channels == 2

    def test_streams_sorted_by_index(self):
        """Test streams come out in index order."""
        raw = json.dumps(
            {
                "streams": [
                    {"index": 1, "codec_type": "audio", "codec_name": "aac"},
                    {"index": 0, "codec_type": "video", "codec_name": "h264"},
                ],
                "format": {},
            }
        )
        result = StreamInspector().parse(raw)
        assert [s.index for s in result.streams] == [0, 1]

    def test_empty_output(self):
        """Test empty output yields an empty result with a message."""
        result = StreamInspector().parse("")
        assert result.is_empty
        assert result.score == 0
        assert result.error == "empty ffprobe output"

    def test_malformed_output(self):
        """Test non-JSON output is not fatal."""
        result = StreamInspector().parse("Invalid data found when processing input")
        assert result.is_empty
        assert result.error.startswith("malformed ffprobe output")
        assert result.raw == "Invalid data found when processing input"

    def test_non_object_output(self):
        """Test a JSON value that is not an object."""
        result = StreamInspector().parse("[1, 2]")
        assert result.is_empty
        assert result.error == "unexpected ffprobe output"

    def test_tool_error(self):
        """Test the error section is carried into the result."""
        raw = json.dumps({"error": {"code": -2, "string": "No such file or directory"}})
        result = StreamInspector().parse(raw)
        assert result.is_empty
        assert result.error == "No such file or directory (code -2)"

    def test_bad_numbers(self):
        """Test unparseable numbers fall back to zero or None."""
        raw = json.dumps(
            {
                "streams": [
                    {"index": "x", "codec_type": "video", "codec_name": "h264", "width": "?"},
                    {"codec_name": "data"},
                ],
                "format": {"duration": "N/A", "probe_score": None, "size": "inf"},
            }
        )
        result = StreamInspector().parse(raw)

        assert len(result.streams) == 1
        assert result.streams[0].index == 0
        assert result.streams[0].width is None
        assert result.duration == 0.0
        assert result.score == 0
        assert result.format.size == 0


class TestInspect:
    """Test running ffprobe on captures."""

    @pytest.mark.asyncio
    async def test_inspect(self, fake_ffprobe, capture_file):
        """Test inspection of a capture file."""
        raw, result = await StreamInspector(fake_ffprobe).inspect(capture_file)

        assert json.loads(raw)["format"]["format_name"] == "flv"
        assert len(result.streams) == 2
        assert result.error is None

    @pytest.mark.asyncio
    async def test_missing_capture(self, fake_ffprobe, tmp_path):
        """Test a capture that was never written."""
        raw, result = await StreamInspector(fake_ffprobe).inspect(tmp_path / "missing.flv")

        assert raw == ""
        assert result == ProbeResult.empty(error=result.error)
        assert "capture file not found" in result.error

    @pytest.mark.asyncio
    async def test_tool_failure(self, fake_ffprobe, capture_file, monkeypatch):
        """Test ffprobe failing without output."""
        monkeypatch.setenv("FAKE_FFPROBE_MODE", "empty")

        _, result = await StreamInspector(fake_ffprobe).inspect(capture_file)

        assert result.is_empty
        assert result.error == "empty ffprobe output"

    @pytest.mark.asyncio
    async def test_tool_error_report(self, fake_ffprobe, capture_file, monkeypatch):
        """Test an error report keeps the tool's message over the exit code."""
        monkeypatch.setenv("FAKE_FFPROBE_MODE", "error")

        _, result = await StreamInspector(fake_ffprobe).inspect(capture_file)

        assert result.error.startswith("Invalid data found")

    @pytest.mark.asyncio
    async def test_missing_ffprobe(self, capture_file):
        """Test a missing ffprobe executable."""
        with pytest.raises(LaunchError):
            await StreamInspector("/nonexistent/ffprobe").inspect(capture_file)
