"""Bounded change recording with deterministic merge semantics."""

import logging
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .models import ChangeKind, ChangeRecord, RecordOutcome

logger = logging.getLogger(__name__)

C = ChangeKind.CREATED
M = ChangeKind.MODIFIED
D = ChangeKind.DELETED

# (existing, incoming) -> result; None removes the record.
MERGE_TABLE: Dict[Tuple[ChangeKind, ChangeKind], Optional[ChangeKind]] = {
    (C, M): C,
    (C, D): None,
    (M, M): M,
    (M, D): D,
    (D, C): M,
    (D, M): M,
    # Not produced by a well-behaved watcher; resolved but logged.
    (C, C): C,
    (M, C): M,
    (D, D): D,
}

UNEXPECTED_TRANSITIONS = frozenset({(D, M), (C, C), (M, C), (D, D)})


def merge_kind(existing: Optional[ChangeKind], incoming: ChangeKind) -> Optional[ChangeKind]:
    """
    Merge an incoming change kind into the existing net state of a path.

    Args:
        existing: Current net kind, or None if the path is not tracked
        incoming: Kind of the new event

    Returns:
        The new net kind, or None if the record should be removed
        (created then deleted is a net no-op)
    """
    if existing is None:
        return incoming
    return MERGE_TABLE[(existing, incoming)]


class ChangeSet:
    """
    Insertion-ordered mapping of path -> ChangeRecord.

    Updating an existing path keeps its position, so iteration order is
    stable for paging.
    """

    def __init__(self):
        self._records: Dict[str, ChangeRecord] = {}

    def apply(self, path: str, kind: ChangeKind, timestamp: float) -> Optional[ChangeRecord]:
        """
        Merge one event into the set.

        Returns:
            The resulting record, or None if the path is no longer tracked
        """
        existing = self._records.get(path)
        existing_kind = existing.kind if existing else None
        result = merge_kind(existing_kind, kind)

        if existing_kind is not None and (existing_kind, kind) in UNEXPECTED_TRANSITIONS:
            logger.warning(
                f"Unexpected transition {existing_kind.value} -> {kind.value} for {path}; "
                f"recording as {result.value if result else 'removed'}"
            )

        if result is None:
            self._records.pop(path, None)
            return None

        record = ChangeRecord(path=path, kind=result, timestamp=timestamp)
        self._records[path] = record
        return record

    def get(self, path: str) -> Optional[ChangeRecord]:
        return self._records.get(path)

    def remove(self, path: str) -> bool:
        return self._records.pop(path, None) is not None

    def records(self) -> List[ChangeRecord]:
        return list(self._records.values())

    def count_by_kind(self) -> Dict[str, int]:
        counts = {kind.value: 0 for kind in ChangeKind}
        for record in self._records.values():
            counts[record.kind.value] += 1
        return counts

    def clear(self) -> int:
        count = len(self._records)
        self._records.clear()
        return count

    def __contains__(self, path: str) -> bool:
        return path in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ChangeRecord]:
        return iter(list(self._records.values()))


class ChangeRecorder:
    """
    Capacity-bounded recorder of net changes.

    Holds a live (pending) set and, while a generation is being paged, the
    frozen set of that generation. Both layers count against capacity.
    Not thread-safe on its own; ChangeTracker serializes all access.
    """

    def __init__(
        self,
        max_tracked_files: int,
        on_capacity_exceeded: Optional[Callable[[], None]] = None,
    ):
        """
        Initialize the recorder.

        Args:
            max_tracked_files: Maximum number of tracked paths
            on_capacity_exceeded: Called instead of inserting a path that
                would exceed capacity
        """
        if max_tracked_files <= 0:
            raise ValueError(f"max_tracked_files must be positive: {max_tracked_files}")
        self.max_tracked_files = max_tracked_files
        self.on_capacity_exceeded = on_capacity_exceeded
        self._pending = ChangeSet()
        self._frozen: Optional[ChangeSet] = None
        self._suspended = False

    @property
    def tracked_count(self) -> int:
        """Number of distinct tracked paths across pending and frozen layers."""
        if self._frozen is None:
            return len(self._pending)
        return len(self._pending) + sum(1 for r in self._frozen if r.path not in self._pending)

    @property
    def suspended(self) -> bool:
        return self._suspended

    @property
    def is_frozen(self) -> bool:
        return self._frozen is not None

    def is_tracked(self, path: str) -> bool:
        """Whether path is held in either layer."""
        return path in self._pending or (self._frozen is not None and path in self._frozen)

    def record(self, path: str, kind: ChangeKind, timestamp: float) -> RecordOutcome:
        """
        Record a filtered event.

        Args:
            path: Affected path
            kind: Change kind
            timestamp: When the event occurred

        Returns:
            The outcome of the merge
        """
        if self._suspended:
            return RecordOutcome.SUSPENDED

        if not self.is_tracked(path) and self.tracked_count >= self.max_tracked_files:
            logger.debug(f"Capacity {self.max_tracked_files} reached at {path}")
            if self.on_capacity_exceeded is not None:
                self.on_capacity_exceeded()
            return RecordOutcome.OVERFLOW

        result = self._pending.apply(path, kind, timestamp)
        if result is None:
            return RecordOutcome.CANCELLED
        return RecordOutcome.RECORDED

    def freeze(self) -> List[ChangeRecord]:
        """
        Freeze the live set as a generation's content.

        Events recorded afterwards go into a new pending set.

        Returns:
            The frozen records in insertion order
        """
        if self._frozen is not None:
            raise RuntimeError("A generation is already frozen")
        self._frozen = self._pending
        self._pending = ChangeSet()
        return self._frozen.records()

    def release_frozen(self) -> int:
        """
        Drop the frozen layer after a committed delivery.

        Returns:
            Number of records removed
        """
        if self._frozen is None:
            return 0
        count = len(self._frozen)
        self._frozen = None
        return count

    def restore_frozen(self) -> int:
        """
        Fold pending events back on top of the frozen layer.

        Used when a generation is abandoned; the merged set becomes live
        again so nothing undelivered is lost.

        Returns:
            Number of pending records merged back
        """
        if self._frozen is None:
            return 0
        base = self._frozen
        pending = self._pending.records()
        for record in pending:
            base.apply(record.path, record.kind, record.timestamp)
        self._pending = base
        self._frozen = None
        return len(pending)

    def suspend(self) -> None:
        self._suspended = True

    def resume(self) -> None:
        self._suspended = False

    def clear(self) -> int:
        """
        Drop every tracked record in both layers.

        The frozen layer (if any) is emptied but stays in place so the
        protocol can still commit or abandon its generation.

        Returns:
            Number of distinct paths removed
        """
        count = self.tracked_count
        self._pending.clear()
        if self._frozen is not None:
            self._frozen.clear()
        return count

    def pending_records(self) -> List[ChangeRecord]:
        return self._pending.records()

    def get(self, path: str) -> Optional[ChangeRecord]:
        """Get the live (pending) record for a path."""
        return self._pending.get(path)

    def count_by_kind(self) -> Dict[str, int]:
        counts = self._pending.count_by_kind()
        if self._frozen is not None:
            for record in self._frozen:
                if record.path not in self._pending:
                    counts[record.kind.value] += 1
        return counts

    def __len__(self) -> int:
        return self.tracked_count
