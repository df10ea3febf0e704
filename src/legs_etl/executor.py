"""Bounded-concurrency execution of independent async units of work."""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from legs_etl.metrics import tasks_in_flight

T = TypeVar("T")
R = TypeVar("R")

Unit = Callable[[], Awaitable[R]]


class ExecutionPolicy(str, Enum):
    """What a batch does when one of its units fails."""

    # Every unit runs; errors are collected next to results
    TOLERANT = "tolerant"
    # No unit is started after the first error; running units finish
    FAIL_FAST = "fail_fast"


@dataclass
class Outcome(Generic[T]):
    """Result or error of one unit, by submission index."""

    index: int
    result: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchResult(Generic[T]):
    """Outcomes of a batch.

    ``outcomes`` is in submission order and only holds units that were started.
    ``errors`` is in the order the errors occurred.
    """

    outcomes: list[Outcome[T]] = field(default_factory=list)
    errors: list[Outcome[T]] = field(default_factory=list)
    skipped: int = 0
    max_in_flight: int = 0

    @property
    def results(self) -> list[T]:
        return [o.result for o in self.outcomes if o.ok]  # type: ignore[misc]

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def first_error(self) -> Exception | None:
        return self.errors[0].error if self.errors else None

    def raise_for_error(self) -> None:
        """Re-raise the first error that occurred, if any."""
        if self.first_error is not None:
            raise self.first_error


async def run_bounded(
    units: Iterable[Unit[T]],
    limit: int,
    policy: ExecutionPolicy = ExecutionPolicy.TOLERANT,
) -> BatchResult[T]:
    """Run units with at most ``limit`` of them in flight.

    Units are started in iteration order by a fixed pool of ``limit`` workers.
    Only ``Exception`` is captured; cancellation propagates.

    Args:
        units: Zero-argument callables returning awaitables.
        limit: Concurrency ceiling (>= 1).
        policy: Failure policy of the batch.

    Returns:
        BatchResult with one outcome per started unit.
    """
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")

    batch: BatchResult[T] = BatchResult()
    by_index: dict[int, Outcome[T]] = {}
    pending = iter(enumerate(units))
    in_flight = 0
    aborted = False

    async def worker() -> None:
        nonlocal in_flight, aborted
        while not aborted:
            try:
                index, unit = next(pending)
            except StopIteration:
                return

            in_flight += 1
            batch.max_in_flight = max(batch.max_in_flight, in_flight)
            tasks_in_flight.inc()
            try:
                outcome: Outcome[T] = Outcome(index=index, result=await unit())
            except Exception as e:
                outcome = Outcome(index=index, error=e)
                batch.errors.append(outcome)
                if policy is ExecutionPolicy.FAIL_FAST:
                    aborted = True
            finally:
                in_flight -= 1
                tasks_in_flight.dec()
            by_index[index] = outcome

    await asyncio.gather(*(worker() for _ in range(limit)))

    batch.outcomes = [by_index[i] for i in sorted(by_index)]
    batch.skipped = sum(1 for _ in pending)
    return batch
