"""Reconciliation of required, ready and completed partitions."""

from collections.abc import Set
from dataclasses import dataclass

from legs_etl.partitions import PartitionKey


def compute_ready(
    required: Set[PartitionKey],
    available: Set[PartitionKey],
) -> set[PartitionKey]:
    """Required partitions whose raw positions are available upstream."""
    return set(available & required)


def compute_todo(
    required: Set[PartitionKey],
    ready: Set[PartitionKey],
    completed: Set[PartitionKey],
) -> list[PartitionKey]:
    """Partitions to process in this run, ordered by month then icao number."""
    todo = (ready & required) - completed
    return sorted(todo, key=PartitionKey.sort_key)


@dataclass(frozen=True)
class Reconciliation:
    """Snapshot of the partition sets at the start of a run."""

    required: frozenset[PartitionKey]
    completed: frozenset[PartitionKey]
    ready: frozenset[PartitionKey]
    todo: tuple[PartitionKey, ...]

    def counts(self) -> dict[str, int]:
        return {
            "required": len(self.required),
            "completed": len(self.completed),
            "ready": len(self.ready),
            "todo": len(self.todo),
        }


def reconcile(
    required: Set[PartitionKey],
    available: Set[PartitionKey],
    completed: Set[PartitionKey],
) -> Reconciliation:
    """Derive the ready set and the ordered work remaining."""
    ready = compute_ready(required, available)
    todo = compute_todo(required, ready, completed)
    return Reconciliation(
        required=frozenset(required),
        completed=frozenset(completed),
        ready=frozenset(ready),
        todo=tuple(todo),
    )
