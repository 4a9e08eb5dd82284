"""Tests for overflow controller module."""

from src.incremental_agent.models import ChangeKind, OverflowReason, RecordOutcome
from src.incremental_agent.overflow import OverflowController
from src.incremental_agent.recorder import ChangeRecorder

C = ChangeKind.CREATED
M = ChangeKind.MODIFIED


class TestOverflowController:
    """Tests for OverflowController class."""

    def test_capacity_exceeded_clears_and_flags(self):
        recorder = ChangeRecorder(max_tracked_files=2)
        overflow = OverflowController(recorder)

        recorder.record("/a", C, 1.0)
        recorder.record("/b", C, 1.0)
        outcome = recorder.record("/c", C, 1.0)

        assert outcome == RecordOutcome.OVERFLOW
        assert overflow.is_set is True
        assert overflow.reason == OverflowReason.CAPACITY
        assert len(recorder) == 0

    def test_recording_suspended_while_flagged(self):
        recorder = ChangeRecorder(max_tracked_files=1)
        overflow = OverflowController(recorder)
        recorder.record("/a", C, 1.0)
        recorder.record("/b", C, 1.0)

        assert recorder.record("/c", M, 2.0) == RecordOutcome.SUSPENDED
        assert len(recorder) == 0
        assert overflow.overflow_count == 1

    def test_consume_delivers_once_and_resumes(self):
        recorder = ChangeRecorder(max_tracked_files=10)
        overflow = OverflowController(recorder)
        overflow.trigger(OverflowReason.CAPACITY)

        assert overflow.consume() == (True, OverflowReason.CAPACITY)
        assert overflow.consume() == (False, None)
        assert recorder.record("/a", M, 1.0) == RecordOutcome.RECORDED

    def test_watcher_error_takes_precedence(self):
        recorder = ChangeRecorder(max_tracked_files=10)
        overflow = OverflowController(recorder)

        overflow.trigger(OverflowReason.CAPACITY)
        overflow.trigger(OverflowReason.WATCHER_ERROR)
        assert overflow.reason == OverflowReason.WATCHER_ERROR

        overflow.consume()
        overflow.trigger(OverflowReason.WATCHER_ERROR)
        overflow.trigger(OverflowReason.CAPACITY)
        assert overflow.reason == OverflowReason.WATCHER_ERROR

    def test_listeners_notified(self):
        recorder = ChangeRecorder(max_tracked_files=10)
        overflow = OverflowController(recorder)
        seen = []
        overflow.add_listener(seen.append)

        overflow.trigger(OverflowReason.WATCHER_ERROR)

        assert seen == [OverflowReason.WATCHER_ERROR]

    def test_reset_drops_flag(self):
        recorder = ChangeRecorder(max_tracked_files=10)
        overflow = OverflowController(recorder)
        overflow.trigger(OverflowReason.CAPACITY)

        overflow.reset()

        assert overflow.is_set is False
        assert recorder.suspended is False

    def test_overflow_logged(self, caplog):
        recorder = ChangeRecorder(max_tracked_files=10)
        overflow = OverflowController(recorder)
        with caplog.at_level("WARNING"):
            overflow.trigger(OverflowReason.CAPACITY)
        assert "full scan is required" in caplog.text
