"""Overflow detection and one-time flag delivery."""

import logging
from typing import Callable, List, Optional, Tuple

from .models import OverflowReason
from .recorder import ChangeRecorder

logger = logging.getLogger(__name__)


class OverflowController:
    """
    Resets the recorder when tracking can no longer be trusted.

    Triggering clears every tracked record (frozen generation included),
    suspends recording and sets the overflow flag. The flag is delivered to
    the scanner exactly once via consume(), after which tracking resumes
    from an empty state.
    """

    def __init__(self, recorder: ChangeRecorder):
        """
        Initialize the controller and attach it to the recorder.

        Args:
            recorder: Recorder to clear and suspend on overflow
        """
        self.recorder = recorder
        self.recorder.on_capacity_exceeded = self.on_capacity_exceeded
        self._flag = False
        self._reason: Optional[OverflowReason] = None
        self._listeners: List[Callable[[OverflowReason], None]] = []
        self.overflow_count = 0

    @property
    def is_set(self) -> bool:
        return self._flag

    @property
    def reason(self) -> Optional[OverflowReason]:
        return self._reason

    def add_listener(self, listener: Callable[[OverflowReason], None]) -> None:
        """Register a callback invoked after every trigger."""
        self._listeners.append(listener)

    def on_capacity_exceeded(self) -> None:
        """Recorder callback for an insert beyond capacity."""
        self.trigger(OverflowReason.CAPACITY)

    def trigger(self, reason: OverflowReason) -> None:
        """
        Clear all tracked state and set the overflow flag.

        A watcher error outranks a capacity overflow that has not been
        delivered yet.

        Args:
            reason: Why tracking is being reset
        """
        dropped = self.recorder.clear()
        self.recorder.suspend()

        if self._reason is None or reason == OverflowReason.WATCHER_ERROR:
            self._reason = reason
        self._flag = True
        self.overflow_count += 1

        logger.warning(
            f"Overflow ({reason.value}): dropped {dropped} tracked path(s), "
            f"limit is {self.recorder.max_tracked_files}; a full scan is required"
        )

        for listener in self._listeners:
            listener(reason)

    def consume(self) -> Tuple[bool, Optional[OverflowReason]]:
        """
        Deliver and clear the flag, resuming normal tracking.

        Returns:
            (flag, reason) as they were before clearing
        """
        flag, reason = self._flag, self._reason
        if flag:
            logger.info(f"Overflow ({reason.value if reason else 'unknown'}) delivered, tracking resumed")
        self._flag = False
        self._reason = None
        self.recorder.resume()
        return flag, reason

    def reset(self) -> None:
        """Drop the flag without delivering it."""
        self._flag = False
        self._reason = None
        self.recorder.resume()
