"""Utility functions and helpers."""

from stream_e2e.utils.errors import (
    ApiError,
    CancellationError,
    CheckError,
    ConfigurationError,
    HarnessError,
    LaunchError,
    NonRetryableError,
    ProcessExitError,
    ProcessTimeoutError,
    RetryPolicy,
    SettingNotAppliedError,
    filter_errors,
    is_cancellation,
    retry_async,
)
from stream_e2e.utils.helpers import (
    copy_to_dest,
    format_duration,
    get_exists_file,
    new_stream_id,
    parse_time_to_seconds,
)
from stream_e2e.utils.logger import get_logger, log_performance, setup_logger

__all__ = [
    # Errors
    "ApiError",
    "CancellationError",
    "CheckError",
    "ConfigurationError",
    "HarnessError",
    "LaunchError",
    "NonRetryableError",
    "ProcessExitError",
    "ProcessTimeoutError",
    "RetryPolicy",
    "SettingNotAppliedError",
    "filter_errors",
    "is_cancellation",
    "retry_async",
    # Helpers
    "copy_to_dest",
    "format_duration",
    "get_exists_file",
    "new_stream_id",
    "parse_time_to_seconds",
    # Logging
    "get_logger",
    "log_performance",
    "setup_logger",
]
