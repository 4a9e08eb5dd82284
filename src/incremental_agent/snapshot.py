"""Generation-based paging protocol with acknowledgment-committed removal."""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .exceptions import BusyError, InvalidCursorError, InvalidStateError
from .models import ChangeRecord, OverflowReason, Page, SnapshotHandle
from .overflow import OverflowController
from .recorder import ChangeRecorder

logger = logging.getLogger(__name__)


class ProtocolState(Enum):
    """States of the snapshot protocol."""
    IDLE = "idle"
    PAGING = "paging"


@dataclass
class Generation:
    """
    A frozen, read-only snapshot offered to the scanner.

    Attributes:
        id: Monotonically increasing generation id
        records: Frozen records in stable order
        overflow: Overflow flag captured for this generation
        overflow_reason: Reason for the captured flag
        done_observed: Whether a done page has been delivered
        overflow_delivered: Whether the flag was consumed by a done page
        last_activity: Timestamp of the last call touching this generation
    """
    id: int
    records: List[ChangeRecord]
    overflow: bool = False
    overflow_reason: Optional[OverflowReason] = None
    done_observed: bool = False
    overflow_delivered: bool = False
    last_activity: float = field(default_factory=time.time)


def encode_cursor(generation: int, offset: int) -> str:
    return f"{generation}.{offset}"


def decode_cursor(cursor: str) -> Tuple[int, int]:
    """
    Parse a cursor into (generation, offset).

    Raises:
        InvalidCursorError: If the cursor is malformed
    """
    try:
        generation, offset = cursor.split(".", 1)
        gen_id, pos = int(generation), int(offset)
    except (AttributeError, ValueError):
        raise InvalidCursorError(f"Malformed cursor: {cursor!r}") from None
    if pos < 0:
        raise InvalidCursorError(f"Malformed cursor: {cursor!r}")
    return gen_id, pos


class SnapshotProtocol:
    """
    Two-state (Idle/Paging) protocol through which the scanner reads the
    change set.

    begin_snapshot freezes the live set into a generation; get_page reads it
    in pages; commit removes exactly the frozen records once the scanner has
    seen the last page; abandon returns them to the live set. Events
    recorded while paging go to a separate pending set and are never mixed
    into the open generation.

    Not thread-safe on its own; ChangeTracker serializes access.
    """

    def __init__(
        self,
        recorder: ChangeRecorder,
        overflow: OverflowController,
        page_size: int = 500,
        max_page_size: int = 1000,
        snapshot_timeout: float = 300.0,
    ):
        """
        Initialize the protocol.

        Args:
            recorder: Recorder holding the live and frozen sets
            overflow: Overflow controller whose flag is delivered in pages
            page_size: Default page size
            max_page_size: Clamp for requested page sizes
            snapshot_timeout: Seconds of inactivity before auto-abandon
        """
        self.recorder = recorder
        self.overflow = overflow
        self.page_size = page_size
        self.max_page_size = max_page_size
        self.snapshot_timeout = snapshot_timeout
        self._active: Optional[Generation] = None
        self._last_generation = 0
        self.overflow.add_listener(self._on_overflow)

    @property
    def state(self) -> ProtocolState:
        return ProtocolState.PAGING if self._active is not None else ProtocolState.IDLE

    @property
    def active_generation(self) -> Optional[int]:
        return self._active.id if self._active is not None else None

    def begin_snapshot(self, now: Optional[float] = None) -> SnapshotHandle:
        """
        Freeze the current change set into a new generation.

        Args:
            now: Current timestamp

        Returns:
            Handle with the generation id and its first cursor

        Raises:
            BusyError: If another generation is still open
        """
        now = time.time() if now is None else now

        if self._active is not None:
            if not self.expire(now):
                raise BusyError(f"Generation {self._active.id} is still being paged")

        records = self.recorder.freeze()
        self._last_generation += 1
        generation = Generation(
            id=self._last_generation,
            records=records,
            overflow=self.overflow.is_set,
            overflow_reason=self.overflow.reason,
            last_activity=now,
        )
        self._active = generation

        logger.info(
            f"Began generation {generation.id} with {len(records)} record(s)"
            + (" [overflow]" if generation.overflow else "")
        )
        return SnapshotHandle(
            generation=generation.id,
            cursor=encode_cursor(generation.id, 0),
            total=len(records),
        )

    def get_page(
        self,
        cursor: str,
        page_size: Optional[int] = None,
        generation: Optional[int] = None,
        now: Optional[float] = None,
    ) -> Page:
        """
        Read one page from the active generation.

        Args:
            cursor: Cursor returned by begin_snapshot or a previous page
            page_size: Maximum records to return (defaults to page_size)
            generation: Generation the caller believes it is reading
            now: Current timestamp

        Returns:
            The page

        Raises:
            InvalidCursorError: If the cursor is not for the active generation
            ValueError: If page_size is below 1
        """
        now = time.time() if now is None else now
        size = self._resolve_page_size(page_size)
        gen_id, offset = decode_cursor(cursor)

        active = self._active
        if active is None or gen_id != active.id:
            raise InvalidCursorError(f"Cursor {cursor!r} does not belong to the active generation")
        if generation is not None and generation != active.id:
            raise InvalidCursorError(
                f"Cursor {cursor!r} used with generation {generation}, active is {active.id}"
            )

        active.last_activity = now
        total = len(active.records)
        offset = min(offset, total)
        records = active.records[offset:offset + size]
        end = offset + len(records)
        done = end >= total

        if done:
            active.done_observed = True
            if active.overflow and not active.overflow_delivered:
                self.overflow.consume()
                active.overflow_delivered = True

        logger.debug(f"Generation {active.id}: page {offset}-{end} of {total}, done={done}")
        return Page(
            generation=active.id,
            records=records,
            next_cursor=None if done else encode_cursor(active.id, end),
            overflow=active.overflow,
            overflow_reason=active.overflow_reason,
            done=done,
        )

    def commit(self, generation: int) -> int:
        """
        Acknowledge a fully delivered generation.

        Args:
            generation: Generation id to commit

        Returns:
            Number of records removed

        Raises:
            InvalidStateError: If the generation is not active or not done
        """
        active = self._active
        if active is None or active.id != generation:
            raise InvalidStateError(f"Generation {generation} is not active")
        if not active.done_observed:
            raise InvalidStateError(f"Generation {generation} has not been fully delivered")

        removed = self.recorder.release_frozen()
        self._active = None

        logger.info(f"Committed generation {generation}: removed {removed} record(s)")
        return removed

    def abandon(self, generation: int, reason: str = "requested") -> bool:
        """
        Close a generation without removing anything.

        Args:
            generation: Generation id to abandon
            reason: Logged reason (requested, timeout, ...)

        Returns:
            True if the generation was active and is now abandoned
        """
        active = self._active
        if active is None or active.id != generation:
            logger.debug(f"Abandon of inactive generation {generation} ignored")
            return False

        merged = self.recorder.restore_frozen()
        self._active = None
        logger.info(
            f"Abandoned generation {generation} ({reason}); "
            f"{len(active.records)} record(s) kept, {merged} pending merged back"
        )
        return True

    def expire(self, now: Optional[float] = None) -> bool:
        """
        Abandon the active generation if it has been idle too long.

        Args:
            now: Current timestamp

        Returns:
            True if a generation was abandoned
        """
        now = time.time() if now is None else now
        active = self._active
        if active is None:
            return False
        if now - active.last_activity < self.snapshot_timeout:
            return False
        logger.warning(
            f"Generation {active.id} idle for {now - active.last_activity:.1f}s, abandoning"
        )
        return self.abandon(active.id, reason="timeout")

    def discard(self) -> None:
        """Drop the active generation without restoring its records."""
        if self._active is not None:
            logger.info(f"Discarded generation {self._active.id}")
        self.recorder.release_frozen()
        self._active = None

    def _resolve_page_size(self, page_size: Optional[int]) -> int:
        if page_size is None:
            page_size = self.page_size
        if page_size < 1:
            raise ValueError(f"page_size must be at least 1: {page_size}")
        return min(page_size, self.max_page_size)

    def _on_overflow(self, reason: OverflowReason) -> None:
        """Truncate the open generation when its data was cleared."""
        active = self._active
        if active is None or active.done_observed:
            return
        active.records = []
        active.overflow = True
        if active.overflow_reason is None or reason == OverflowReason.WATCHER_ERROR:
            active.overflow_reason = reason
        logger.warning(f"Generation {active.id} truncated by overflow ({reason.value})")
