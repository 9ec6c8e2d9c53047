"""
Structured concurrency for scenario units.

A TaskScope owns the concurrent units of one scenario (publisher, prober,
assertions). It guarantees every unit is joined before the scope exits,
records each unit's outcome in its own error slot, and reports the
aggregated error with cancellations filtered out.
"""

import asyncio
import contextlib
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Coroutine, Iterator, Optional, TypeVar

from ..utils import CancellationError, filter_errors, get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class UnitStatus(Enum):
    """Status of a scope unit."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class UnitResult:
    """Outcome of one unit."""

    name: str
    status: UnitStatus
    error: Optional[BaseException] = None
    duration: float = 0.0
    value: Any = None


@dataclass
class ScopeSummary:
    """Summary of every unit of a scope."""

    results: list[UnitResult]
    total_duration: float

    @property
    def failed(self) -> list[UnitResult]:
        """Units that failed with a real error."""
        return [r for r in self.results if r.status == UnitStatus.FAILED]

    @property
    def cancelled(self) -> list[UnitResult]:
        """Units that were cancelled."""
        return [r for r in self.results if r.status == UnitStatus.CANCELLED]

    @property
    def has_failures(self) -> bool:
        """Check if any unit failed."""
        return bool(self.failed)


class ErrorSlots:
    """
    Ordered, named error slots.

    Each concurrent unit or assertion owns exactly one slot and is the only
    writer of it.
    """

    def __init__(self) -> None:
        self._slots: dict[str, Optional[BaseException]] = {}

    def reserve(self, name: str) -> None:
        """Add an empty slot."""
        if name in self._slots:
            raise ValueError(f"Error slot already exists: {name}")
        self._slots[name] = None

    def set(self, name: str, error: Optional[BaseException]) -> None:
        """Write a slot, reserving it if needed."""
        self._slots[name] = error

    def get(self, name: str) -> Optional[BaseException]:
        """Read a slot."""
        return self._slots.get(name)

    @contextlib.contextmanager
    def capture(self, name: str) -> Iterator[None]:
        """
        Record any exception raised in the block into a slot.

        The slot is reserved even when the block succeeds, so it shows up as
        passed in reports.
        """
        self._slots.setdefault(name, None)
        try:
            yield
        except Exception as e:
            self._slots[name] = e

    @property
    def names(self) -> list[str]:
        """Slot names in reservation order."""
        return list(self._slots)

    def items(self) -> list[tuple[str, Optional[BaseException]]]:
        """Slots in reservation order."""
        return list(self._slots.items())

    def error(self) -> Optional[BaseException]:
        """Aggregate every slot, dropping empty and cancelled ones."""
        return filter_errors(*self._slots.values())

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[str]:
        return iter(self._slots)


async def finish_shielded(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run a coroutine to completion even if the caller is cancelled meanwhile.

    A cancellation received while waiting is re-raised once the coroutine
    has finished.
    """
    task = asyncio.ensure_future(coro)
    interrupted: Optional[asyncio.CancelledError] = None

    while not task.done():
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError as e:
            if task.cancelled():
                raise
            interrupted = e

    error = task.exception()
    if interrupted is not None:
        if error is not None:
            logger.warning(f"Shielded operation failed: {error}")
        raise interrupted
    if error is not None:
        raise error
    return task.result()


class Unit:
    """One concurrent unit of work owned by a scope."""

    def __init__(self, name: str, shielded: bool):
        self.name = name
        self.shielded = shielded
        self.status = UnitStatus.RUNNING
        self.error: Optional[BaseException] = None
        self.value: Any = None
        self.cancel_reason: Optional[str] = None
        self.started_at = time.monotonic()
        self.finished_at: Optional[float] = None
        self.task: Optional[asyncio.Task[None]] = None

    @property
    def done(self) -> bool:
        """Check if the unit has finished."""
        return self.task is not None and self.task.done()

    @property
    def duration(self) -> float:
        """Seconds the unit ran so far."""
        end = self.finished_at or time.monotonic()
        return end - self.started_at

    def cancel(self, reason: Optional[str] = None) -> None:
        """Cancel this unit, shielded or not; a no-op from inside the unit."""
        if self.task is None or self.task.done() or self.task is asyncio.current_task():
            return
        self.cancel_reason = reason
        self.task.cancel(msg=reason)

    async def join(self) -> UnitResult:
        """Wait for the unit to finish without raising its error."""
        if self.task is not None:
            await asyncio.wait([self.task])
        return self.result()

    def result(self) -> UnitResult:
        """Current outcome of the unit."""
        return UnitResult(
            name=self.name,
            status=self.status,
            error=self.error,
            duration=self.duration,
            value=self.value,
        )

    def __repr__(self) -> str:
        return f"Unit({self.name!r}, {self.status.value})"


class TaskScope:
    """
    Scoped task group for concurrent units.

    - ``spawn`` starts a unit; its outcome goes to the unit's error slot
    - ``cancel`` stops every unit that is not shielded
    - A failing unit cancels the other unshielded units when fail_fast is set
    - Leaving the scope with an exception cancels every unit
    - Leaving the scope always joins every unit, then raises the aggregated
      error when raise_errors is set
    """

    def __init__(
        self,
        name: str = "scope",
        raise_errors: bool = True,
        fail_fast: bool = True,
        slots: Optional[ErrorSlots] = None,
    ):
        """
        Initialize task scope.

        Args:
            name: Scope name used in task names and logs
            raise_errors: Raise the aggregated error after joining
            fail_fast: Cancel unshielded units when one unit fails
            slots: Error slots to write into (a new set if None)
        """
        self.name = name
        self.raise_errors = raise_errors
        self.fail_fast = fail_fast
        self.slots = slots if slots is not None else ErrorSlots()
        self._units: dict[str, Unit] = {}
        self._cancel_reason: Optional[str] = None
        self._started_at = time.monotonic()
        self._closed = False

    @property
    def units(self) -> list[Unit]:
        """Units in spawn order."""
        return list(self._units.values())

    @property
    def cancelled(self) -> bool:
        """Check if the scope was cancelled."""
        return self._cancel_reason is not None

    def spawn(self, name: str, coro: Coroutine[Any, Any, Any], shielded: bool = False) -> Unit:
        """
        Start a unit.

        Args:
            name: Unique unit name, also its error slot name
            coro: Coroutine to run
            shielded: Ignore ``cancel()``; only explicit unit cancellation or
                leaving the scope with an exception stops it

        Returns:
            The started unit
        """
        if self._closed:
            coro.close()
            raise RuntimeError(f"Scope {self.name} is closed")
        if name in self._units:
            coro.close()
            raise ValueError(f"Unit already exists in scope {self.name}: {name}")

        unit = Unit(name, shielded)
        self.slots.reserve(name)
        self._units[name] = unit
        unit.task = asyncio.create_task(self._run_unit(unit, coro), name=f"{self.name}/{name}")
        logger.debug(f"Spawned unit {self.name}/{name} (shielded={shielded})")
        return unit

    async def _run_unit(self, unit: Unit, coro: Coroutine[Any, Any, Any]) -> None:
        """Run a unit and record its outcome in its slot."""
        try:
            unit.value = await coro
            unit.status = UnitStatus.COMPLETED
        except asyncio.CancelledError:
            reason = unit.cancel_reason or self._cancel_reason
            unit.error = CancellationError(f"{unit.name} cancelled", reason=reason)
            unit.status = UnitStatus.CANCELLED
            self.slots.set(unit.name, unit.error)
            logger.debug(f"Unit {self.name}/{unit.name} cancelled ({reason})")
        except Exception as e:
            unit.error = e
            unit.status = UnitStatus.FAILED
            self.slots.set(unit.name, e)
            logger.debug(f"Unit {self.name}/{unit.name} failed: {e}")
            if self.fail_fast:
                self.cancel(f"{unit.name} failed")
        finally:
            unit.finished_at = time.monotonic()

    def cancel(self, reason: str = "cancelled") -> None:
        """
        Cancel every unshielded unit.

        Args:
            reason: Reason recorded in each cancelled unit's slot
        """
        if self._cancel_reason is None:
            self._cancel_reason = reason
            logger.debug(f"Scope {self.name} cancelled: {reason}")
        for unit in self._units.values():
            if not unit.shielded:
                unit.cancel(reason)

    def cancel_all(self, reason: str) -> None:
        """Cancel every unit, shielded ones included."""
        if self._cancel_reason is None:
            self._cancel_reason = reason
        for unit in self._units.values():
            unit.cancel(reason)

    async def join(self) -> None:
        """
        Wait until every unit has finished.

        If the caller is cancelled while waiting, every unit is cancelled,
        still joined, and the cancellation is re-raised afterwards.
        """
        interrupted: Optional[asyncio.CancelledError] = None

        while True:
            pending = [u.task for u in self._units.values() if u.task and not u.task.done()]
            if not pending:
                break
            try:
                await asyncio.wait(pending)
            except asyncio.CancelledError as e:
                interrupted = e
                self.cancel_all("scope owner cancelled")

        if interrupted is not None:
            raise interrupted

    def summary(self) -> ScopeSummary:
        """Summarize every unit."""
        return ScopeSummary(
            results=[u.result() for u in self._units.values()],
            total_duration=time.monotonic() - self._started_at,
        )

    def error(self) -> Optional[BaseException]:
        """Aggregated error of every slot, cancellations filtered out."""
        return self.slots.error()

    async def __aenter__(self) -> "TaskScope":
        self._started_at = time.monotonic()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc is not None:
            self.cancel_all(f"scope exited with {exc_type.__name__}")

        try:
            await self.join()
        finally:
            self._closed = True

        if exc is None and self.raise_errors:
            error = self.error()
            if error is not None:
                raise error
        return False
