"""
HLS playlist checks.

The server can serve HLS in two modes. With per-client context the first
response is a small playlist pointing at ``.m3u8?hls_ctx=...`` and has no
segments. Without context (HLS no-ctx mode) the first response already lists
segments with ``#EXTINF:`` entries.
"""

from typing import Optional

from ..utils import CheckError

HLS_HEADER = "#EXTM3U"
SEGMENT_TAG = "#EXTINF:"
CONTEXT_MARKER = ".m3u8?hls_ctx="


def check_hls_playlist(body: str, with_context: bool) -> Optional[CheckError]:
    """
    Check the first playlist response of an HLS stream.

    Args:
        body: Playlist text as served
        with_context: Whether the server is expected to use per-client context

    Returns:
        CheckError if the body does not match the mode, otherwise None
    """
    if HLS_HEADER not in body:
        return CheckError(f"not an HLS playlist, missing {HLS_HEADER}", detail=body)

    has_segments = SEGMENT_TAG in body
    has_context = CONTEXT_MARKER in body

    if with_context:
        if not has_context:
            return CheckError(f"playlist has no {CONTEXT_MARKER}", detail=body)
        if has_segments:
            return CheckError(f"playlist with context should not list {SEGMENT_TAG}", detail=body)
        return None

    if not has_segments:
        return CheckError(f"playlist has no {SEGMENT_TAG}", detail=body)
    if has_context:
        return CheckError(f"playlist without context should not have {CONTEXT_MARKER}", detail=body)
    return None
