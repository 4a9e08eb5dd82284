"""Tests for the agent HTTP client."""

import httpx
import pytest
from fastapi.testclient import TestClient

from src.incremental_agent.api_server import create_app
from src.incremental_agent.client import AgentClient
from src.incremental_agent.config import AgentConfig
from src.incremental_agent.exceptions import (
    AgentAPIError,
    BusyError,
    InvalidCursorError,
    InvalidStateError,
)
from src.incremental_agent.models import ChangeKind, OverflowReason
from src.incremental_agent.tracker import ChangeTracker


@pytest.fixture
def tracker():
    t = ChangeTracker(AgentConfig(max_tracked_files=3, page_size=2))
    yield t
    t.close()


@pytest.fixture
def client(tracker):
    return AgentClient(client=TestClient(create_app(tracker)))


class TestAgentClient:
    """Tests for AgentClient class."""

    def test_drain(self, tracker, client):
        tracker.record("/a", ChangeKind.CREATED)
        tracker.record("/b", ChangeKind.MODIFIED)
        tracker.record("/c", ChangeKind.DELETED)

        records, overflow, reason = client.drain()

        assert [(r.path, r.kind) for r in records] == [
            ("/a", ChangeKind.CREATED),
            ("/b", ChangeKind.MODIFIED),
            ("/c", ChangeKind.DELETED),
        ]
        assert overflow is False
        assert reason is None
        assert len(tracker) == 0

    def test_drain_reports_overflow(self, tracker, client):
        for name in ["/a", "/b", "/c", "/d"]:
            tracker.record(name, ChangeKind.CREATED)

        records, overflow, reason = client.drain(page_size=1)

        assert records == []
        assert overflow is True
        assert reason == OverflowReason.CAPACITY
        assert client.stats()["overflow"] is False

    def test_drain_abandons_on_failure(self, tracker, client, monkeypatch):
        tracker.record("/a", ChangeKind.CREATED)

        def broken_commit(generation):
            raise AgentAPIError("connection dropped")

        monkeypatch.setattr(client, "commit", broken_commit)

        with pytest.raises(AgentAPIError):
            client.drain()

        assert tracker.stats().active_generation is None
        assert len(tracker) == 1

    def test_protocol_errors_mapped(self, client):
        handle = client.begin_snapshot()

        with pytest.raises(BusyError):
            client.begin_snapshot()
        with pytest.raises(InvalidCursorError):
            client.get_page(handle.generation, "bogus")
        with pytest.raises(InvalidStateError):
            client.commit(handle.generation)

    def test_other_errors(self, client):
        with pytest.raises(AgentAPIError) as exc_info:
            client.register_self_change("")
        assert exc_info.value.status_code == 400

    def test_register_self_change(self, tracker, client):
        expiry = client.register_self_change("/out/", 5)
        assert expiry > 0
        assert tracker.stats().self_change_entries == 1

    def test_reset_and_health(self, tracker, client):
        tracker.record("/a", ChangeKind.CREATED)
        client.reset()
        assert len(tracker) == 0
        assert client.health()["status"] == "ok"

    def test_unreachable_agent(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = httpx.MockTransport(refuse)
        http = httpx.Client(base_url="http://agent:8080", transport=transport)
        with AgentClient("http://agent:8080", client=http) as client:
            with pytest.raises(AgentAPIError):
                client.stats()
