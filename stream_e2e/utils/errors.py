"""
Custom exceptions for the stream harness.

This module defines the exception hierarchy used throughout the application,
the bounded retry helper used for polling external systems, and the error
aggregation used by concurrent scenarios.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Optional, TypeVar

T = TypeVar("T")


class HarnessError(Exception):
    """Base exception for all harness errors."""

    pass


class ConfigurationError(HarnessError):
    """Configuration is invalid or missing."""

    pass


class LaunchError(HarnessError):
    """An external executable could not be found or spawned."""

    def __init__(self, message: str, command: list[str] | None = None):
        super().__init__(message)
        self.command = command


class ProcessExitError(HarnessError):
    """An external process exited with a non-zero code or unexpectedly."""

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        command: list[str] | None = None,
        output: str | None = None,
    ):
        """
        Initialize process exit error with diagnostics.

        Args:
            message: Error message
            returncode: Exit code of the process (negative when killed by a signal)
            command: Command that was run
            output: Tail of the captured output
        """
        super().__init__(message)
        self.returncode = returncode
        self.command = command
        self.output = output

    def __str__(self) -> str:
        message = super().__str__()
        if self.output:
            return f"{message}\n{self.output}"
        return message


class ProcessTimeoutError(HarnessError):
    """Process exceeded its duration budget."""

    def __init__(self, message: str, timeout: float):
        """
        Initialize timeout error.

        Args:
            message: Error message
            timeout: Timeout value in seconds
        """
        super().__init__(message)
        self.timeout = timeout


class CancellationError(HarnessError):
    """A unit of work was cancelled by its caller."""

    def __init__(self, message: str = "cancelled", reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


class ApiError(HarnessError):
    """Management API request failed."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        status: Optional[int] = None,
        code: Optional[int] = None,
    ):
        super().__init__(message)
        self.path = path
        self.status = status
        self.code = code


class SettingNotAppliedError(ApiError):
    """A server-side setting did not reach the expected value in time."""

    pass


class CheckError(HarnessError):
    """A scenario assertion failed."""

    def __init__(self, message: str, detail: Optional[str] = None):
        """
        Initialize check error.

        Args:
            message: What was checked and what was observed
            detail: Raw captured text, kept for diagnosis without a rerun
        """
        super().__init__(message)
        self.detail = detail

    def __str__(self) -> str:
        message = super().__str__()
        if self.detail:
            return f"{message}, {self.detail}"
        return message


class NonRetryableError(HarnessError):
    """Error that should not be retried."""

    pass


@dataclass
class RetryPolicy:
    """Bounded retry configuration."""

    max_attempts: int = 10
    """Maximum number of attempts, including the first one."""

    retry_delay: float = 1.0
    """Initial delay between attempts in seconds."""

    exponential_backoff: bool = False
    """Use exponential backoff for retry delays."""

    backoff_multiplier: float = 2.0
    """Multiplier for exponential backoff."""

    max_retry_delay: float = 10.0
    """Maximum delay between attempts in seconds."""

    def delay_for(self, attempt: int) -> float:
        """
        Calculate delay after a failed attempt.

        Args:
            attempt: Attempt number that just failed (1-indexed)

        Returns:
            Delay in seconds
        """
        if not self.exponential_backoff:
            return min(self.retry_delay, self.max_retry_delay)

        delay = self.retry_delay * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_retry_delay)


async def retry_async(
    operation: Callable[[], Coroutine[Any, Any, T]],
    policy: Optional[RetryPolicy] = None,
    retry_on: tuple[type[BaseException], ...] = (HarnessError,),
    operation_name: str = "operation",
    logger: Optional[logging.Logger] = None,
) -> T:
    """
    Run an async operation until it succeeds or the policy is exhausted.

    Args:
        operation: Zero-argument coroutine factory
        policy: Retry policy (defaults to RetryPolicy())
        retry_on: Exception types that trigger another attempt
        operation_name: Name used in log messages
        logger: Logger instance

    Returns:
        Result of the first successful attempt

    Raises:
        The last error once attempts are exhausted, or a NonRetryableError at once
    """
    policy = policy or RetryPolicy()
    log = logger or logging.getLogger(__name__)

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except NonRetryableError:
            raise
        except retry_on as e:
            if attempt >= policy.max_attempts:
                log.error(f"{operation_name} failed after {attempt} attempts: {e}")
                raise

            delay = policy.delay_for(attempt)
            log.debug(
                f"{operation_name} failed on attempt {attempt}/{policy.max_attempts}: {e}, "
                f"retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)

    raise HarnessError(f"{operation_name} was never attempted")


def is_cancellation(error: Optional[BaseException]) -> bool:
    """Check if an error only reports that its unit was cancelled."""
    return isinstance(error, (CancellationError, asyncio.CancelledError))


def filter_errors(*errors: Optional[BaseException]) -> Optional[BaseException]:
    """
    Combine error slots into one reportable error.

    Empty slots and cancellation errors are dropped, because an intentional
    fast-quit always shows up as a cancellation in the units it stopped.

    Args:
        *errors: One slot per concurrent sub-operation or assertion

    Returns:
        None, the single remaining error, or an ExceptionGroup of all of them
    """
    remaining = [e for e in errors if e is not None and not is_cancellation(e)]

    if not remaining:
        return None
    if len(remaining) == 1:
        return remaining[0]

    exceptions = [e if isinstance(e, Exception) else HarnessError(repr(e)) for e in remaining]
    return ExceptionGroup(f"{len(exceptions)} errors, first: {exceptions[0]}", exceptions)
