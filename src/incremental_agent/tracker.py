"""The change-tracking engine: one explicit, lock-guarded instance."""

import logging
import threading
import time
from typing import Callable, Optional

from .config import AgentConfig
from .models import (
    ChangeEvent,
    ChangeKind,
    OverflowReason,
    Page,
    RecordOutcome,
    SnapshotHandle,
    TrackerStats,
)
from .overflow import OverflowController
from .recorder import ChangeRecorder
from .self_change import SelfChangeFilter
from .snapshot import ProtocolState, SnapshotProtocol

logger = logging.getLogger(__name__)


class ChangeTracker:
    """
    Keeps the bounded record of changed paths for one monitored root.

    Composes the self-change filter, the change recorder, the overflow
    controller and the snapshot protocol. All recorder and protocol
    mutations happen under a single lock; the self-change filter guards
    itself so lookups and sweeps never wait on the recorder.
    """

    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the tracker.

        Args:
            config: Agent configuration
            clock: Time source, injectable for tests
        """
        self.config = config or AgentConfig()
        self._clock = clock
        self._lock = threading.Lock()

        self.self_changes = SelfChangeFilter(
            default_ttl=self.config.self_change_default_ttl,
            max_entries=self.config.self_change_max_entries,
        )
        self._recorder = ChangeRecorder(self.config.max_tracked_files)
        self._overflow = OverflowController(self._recorder)
        self._protocol = SnapshotProtocol(
            self._recorder,
            self._overflow,
            page_size=self.config.page_size,
            max_page_size=self.config.max_page_size,
            snapshot_timeout=self.config.snapshot_timeout,
        )

        self._events_recorded = 0
        self._events_suppressed = 0
        self._closed = False

    # ------------------------------------------------------------------
    # Watcher adapter boundary
    # ------------------------------------------------------------------

    def ingest(self, event: ChangeEvent) -> RecordOutcome:
        """Adapter callback: record one decoded event."""
        return self.record(event.path, event.kind, event.timestamp)

    def record(
        self,
        path: str,
        kind: ChangeKind,
        timestamp: Optional[float] = None,
    ) -> RecordOutcome:
        """
        Filter and record one change.

        Self-change entries are matched against the event's timestamp.

        Args:
            path: Affected path
            kind: Change kind
            timestamp: When the change happened (defaults to now)

        Returns:
            What happened to the event
        """
        if timestamp is None:
            timestamp = self._clock()

        if self.self_changes.should_drop(path, now=timestamp):
            with self._lock:
                self._events_suppressed += 1
            logger.debug(f"Suppressed self-change {kind.value} {path}")
            return RecordOutcome.SUPPRESSED

        with self._lock:
            if self._closed:
                return RecordOutcome.SUSPENDED
            outcome = self._recorder.record(path, kind, timestamp)
            if outcome in (RecordOutcome.RECORDED, RecordOutcome.CANCELLED):
                self._events_recorded += 1

        logger.debug(f"Recorded {kind.value} {path}: {outcome.value}")
        return outcome

    def report_watcher_error(self, message: str) -> None:
        """
        Mark the delta as untrustworthy after the adapter lost events.

        Args:
            message: Description of the adapter failure
        """
        logger.error(f"Watcher error, full rescan required: {message}")
        with self._lock:
            self._overflow.trigger(OverflowReason.WATCHER_ERROR)

    # ------------------------------------------------------------------
    # Scanner boundary
    # ------------------------------------------------------------------

    def register_self_change(self, path_prefix: str, ttl_seconds: Optional[float] = None) -> float:
        """
        Suppress events under path_prefix for ttl_seconds.

        Returns:
            Expiry timestamp of the registration
        """
        return self.self_changes.register(path_prefix, ttl_seconds, now=self._clock())

    def begin_snapshot(self) -> SnapshotHandle:
        """Freeze the current delta into a new generation. Raises BusyError."""
        with self._lock:
            return self._protocol.begin_snapshot(now=self._clock())

    def get_page(
        self,
        generation: int,
        cursor: str,
        page_size: Optional[int] = None,
    ) -> Page:
        """Read one page of the active generation. Raises InvalidCursorError."""
        with self._lock:
            return self._protocol.get_page(
                cursor,
                page_size=page_size,
                generation=generation,
                now=self._clock(),
            )

    def commit(self, generation: int) -> int:
        """Acknowledge a fully read generation. Raises InvalidStateError."""
        with self._lock:
            return self._protocol.commit(generation)

    def abandon(self, generation: int) -> bool:
        """Close a generation without removing its records."""
        with self._lock:
            return self._protocol.abandon(generation)

    def stats(self) -> TrackerStats:
        """Get a snapshot of tracker state and counters."""
        with self._lock:
            return TrackerStats(
                overflow=self._overflow.is_set,
                overflow_reason=self._overflow.reason,
                tracked=self._recorder.tracked_count,
                capacity=self._recorder.max_tracked_files,
                by_kind=self._recorder.count_by_kind(),
                active_generation=self._protocol.active_generation,
                self_change_entries=len(self.self_changes),
                events_recorded=self._events_recorded,
                events_suppressed=self._events_suppressed,
                overflow_count=self._overflow.overflow_count,
            )

    def reset(self) -> None:
        """Forget everything: records, overflow flag and any open generation."""
        with self._lock:
            self._protocol.discard()
            dropped = self._recorder.clear()
            self._overflow.reset()
        logger.info(f"Tracker reset, dropped {dropped} record(s)")

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_self_changes(self) -> int:
        """Remove expired self-change entries."""
        return self.self_changes.sweep(now=self._clock())

    def expire_snapshot(self) -> bool:
        """Abandon the active generation if it timed out."""
        with self._lock:
            return self._protocol.expire(now=self._clock())

    @property
    def state(self) -> ProtocolState:
        with self._lock:
            return self._protocol.state

    @property
    def overflow(self) -> bool:
        with self._lock:
            return self._overflow.is_set

    def __len__(self) -> int:
        with self._lock:
            return self._recorder.tracked_count

    def close(self) -> None:
        """Stop accepting events and release tracked state."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._protocol.discard()
            self._recorder.clear()
        self.self_changes.clear()
