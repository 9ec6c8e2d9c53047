"""Process execution and structured concurrency."""

from stream_e2e.executor.scope import (
    ErrorSlots,
    ScopeSummary,
    TaskScope,
    Unit,
    UnitResult,
    UnitStatus,
    finish_shielded,
)
from stream_e2e.executor.signals import ReadinessSignal, new_signal
from stream_e2e.executor.subprocess import (
    ExitStatus,
    FFmpegCommandBuilder,
    ProcessHandle,
    ProcessState,
    build_capture_command,
    build_probe_command,
    build_publish_command,
)

__all__ = [
    "ErrorSlots",
    "ExitStatus",
    "FFmpegCommandBuilder",
    "ProcessHandle",
    "ProcessState",
    "ReadinessSignal",
    "ScopeSummary",
    "TaskScope",
    "Unit",
    "UnitResult",
    "UnitStatus",
    "build_capture_command",
    "build_probe_command",
    "build_publish_command",
    "finish_shielded",
    "new_signal",
]
