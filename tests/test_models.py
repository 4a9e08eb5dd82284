"""Tests for models module."""

import pytest

from src.incremental_agent.models import (
    ChangeEvent,
    ChangeKind,
    ChangeRecord,
    OverflowReason,
    Page,
    SnapshotHandle,
    TrackerStats,
)


class TestChangeRecord:
    """Tests for ChangeRecord class."""

    def test_to_dict(self):
        record = ChangeRecord("/data/a.txt", ChangeKind.DELETED, 12.5)
        assert record.to_dict() == {
            "path": "/data/a.txt",
            "kind": "deleted",
            "timestamp": 12.5,
        }

    def test_from_dict(self):
        record = ChangeRecord.from_dict({"path": "/data/a.txt", "kind": "created", "timestamp": 3.0})
        assert record == ChangeRecord("/data/a.txt", ChangeKind.CREATED, 3.0)

    def test_immutable(self):
        record = ChangeRecord("/data/a.txt", ChangeKind.CREATED, 1.0)
        with pytest.raises(AttributeError):
            record.kind = ChangeKind.MODIFIED


class TestChangeEvent:
    """Tests for ChangeEvent class."""

    def test_default_timestamp(self):
        event = ChangeEvent("/data/a.txt", ChangeKind.MODIFIED)
        assert event.timestamp > 0

    def test_empty_path_rejected(self):
        with pytest.raises(ValueError):
            ChangeEvent("", ChangeKind.CREATED)


class TestPage:
    """Tests for Page class."""

    def test_roundtrip_with_overflow(self):
        page = Page(
            generation=3,
            records=[],
            next_cursor=None,
            overflow=True,
            done=True,
            overflow_reason=OverflowReason.CAPACITY,
        )
        data = page.to_dict()

        assert data["overflow_reason"] == "capacity"
        assert Page.from_dict(data) == page

    def test_records_serialized(self):
        page = Page(
            generation=1,
            records=[ChangeRecord("/a", ChangeKind.MODIFIED, 1.0)],
            next_cursor="1.1",
            overflow=False,
            done=False,
        )
        data = page.to_dict()

        assert data["records"] == [{"path": "/a", "kind": "modified", "timestamp": 1.0}]
        assert data["overflow_reason"] is None
        assert data["next_cursor"] == "1.1"


class TestSnapshotHandle:
    """Tests for SnapshotHandle class."""

    def test_to_dict(self):
        handle = SnapshotHandle(generation=2, cursor="2.0", total=5)
        assert handle.to_dict() == {"generation": 2, "cursor": "2.0", "total": 5}


class TestTrackerStats:
    """Tests for TrackerStats class."""

    def test_state(self):
        stats = TrackerStats(
            overflow=True,
            overflow_reason=OverflowReason.WATCHER_ERROR,
            tracked=0,
            capacity=10,
            by_kind={"created": 0, "modified": 0, "deleted": 0},
            active_generation=None,
            self_change_entries=0,
        )
        assert stats.state == "overflow"
        assert stats.to_dict()["overflow_reason"] == "watcher_error"
