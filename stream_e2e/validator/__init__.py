"""Checks of probed streams and playlists."""

from stream_e2e.validator.playlist import check_hls_playlist
from stream_e2e.validator.probe import ProbeExpectation, check_probe_result

__all__ = [
    "ProbeExpectation",
    "check_hls_playlist",
    "check_probe_result",
]
