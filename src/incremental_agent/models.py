"""Data models for the incremental agent package."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional
import time


class ChangeKind(Enum):
    """Net change state of a path."""
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


class OverflowReason(Enum):
    """Why tracking was reset and a full scan is required."""
    CAPACITY = "capacity"
    WATCHER_ERROR = "watcher_error"


class RecordOutcome(Enum):
    """Result of feeding one event into the recorder."""
    RECORDED = "recorded"
    CANCELLED = "cancelled"
    SUSPENDED = "suspended"
    OVERFLOW = "overflow"
    SUPPRESSED = "suppressed"


@dataclass(frozen=True)
class ChangeRecord:
    """
    Net change for one path since it was last delivered to the scanner.

    Attributes:
        path: The affected path as reported by the adapter
        kind: Net change kind after merging
        timestamp: Unix timestamp of the latest merged event
    """
    path: str
    kind: ChangeKind
    timestamp: float

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "path": self.path,
            "kind": self.kind.value,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChangeRecord":
        """Create from dictionary."""
        return cls(
            path=data["path"],
            kind=ChangeKind(data["kind"]),
            timestamp=data.get("timestamp", time.time()),
        )


@dataclass(frozen=True)
class ChangeEvent:
    """
    A decoded change event delivered by the watcher adapter.

    Attributes:
        path: Path the event applies to
        kind: Created, Modified or Deleted
        timestamp: Unix timestamp when the event occurred
    """
    path: str
    kind: ChangeKind
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        if not self.path:
            raise ValueError("path must not be empty")


@dataclass
class RawFSEvent:
    """
    Raw event from the filesystem watcher before decoding.

    Attributes:
        event_type: Raw event type string (created, deleted, modified, moved)
        src_path: Source path of the event
        dest_path: Destination path (for move events)
        is_directory: Whether this is a directory event
        timestamp: Unix timestamp when the event occurred
    """
    event_type: str
    src_path: Path
    dest_path: Optional[Path] = None
    is_directory: bool = False
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SnapshotHandle:
    """Returned by begin_snapshot: the frozen generation and its first cursor."""
    generation: int
    cursor: str
    total: int

    def to_dict(self) -> dict:
        return {
            "generation": self.generation,
            "cursor": self.cursor,
            "total": self.total,
        }


@dataclass(frozen=True)
class Page:
    """
    One page of a frozen generation.

    Attributes:
        generation: Generation the page belongs to
        records: Records in stable insertion order
        next_cursor: Cursor for the following page, None once done
        overflow: Overflow flag captured for this generation
        overflow_reason: Why overflow was set, if it was
        done: True once the generation is exhausted
    """
    generation: int
    records: List[ChangeRecord]
    next_cursor: Optional[str]
    overflow: bool
    done: bool
    overflow_reason: Optional[OverflowReason] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "generation": self.generation,
            "records": [r.to_dict() for r in self.records],
            "next_cursor": self.next_cursor,
            "overflow": self.overflow,
            "overflow_reason": self.overflow_reason.value if self.overflow_reason else None,
            "done": self.done,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Page":
        """Create from dictionary."""
        reason = data.get("overflow_reason")
        return cls(
            generation=data["generation"],
            records=[ChangeRecord.from_dict(r) for r in data.get("records", [])],
            next_cursor=data.get("next_cursor"),
            overflow=data.get("overflow", False),
            done=data.get("done", False),
            overflow_reason=OverflowReason(reason) if reason else None,
        )


@dataclass
class TrackerStats:
    """Point-in-time view of the tracker, mirrors the /stats endpoint."""
    overflow: bool
    overflow_reason: Optional[OverflowReason]
    tracked: int
    capacity: int
    by_kind: Dict[str, int]
    active_generation: Optional[int]
    self_change_entries: int
    events_recorded: int = 0
    events_suppressed: int = 0
    overflow_count: int = 0

    @property
    def state(self) -> str:
        return "overflow" if self.overflow else "ok"

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "state": self.state,
            "overflow": self.overflow,
            "overflow_reason": self.overflow_reason.value if self.overflow_reason else None,
            "tracked": self.tracked,
            "capacity": self.capacity,
            "by_kind": dict(self.by_kind),
            "active_generation": self.active_generation,
            "self_change_entries": self.self_change_entries,
            "events_recorded": self.events_recorded,
            "events_suppressed": self.events_suppressed,
            "overflow_count": self.overflow_count,
        }
