"""Tests for agent REST API server."""

import pytest
from fastapi.testclient import TestClient

from src.incremental_agent.config import AgentConfig
from src.incremental_agent.models import ChangeKind
from src.incremental_agent.api_server import create_app
from src.incremental_agent.tracker import ChangeTracker


@pytest.fixture
def tracker():
    t = ChangeTracker(AgentConfig(max_tracked_files=100, page_size=2), clock=lambda: 1000.0)
    yield t
    t.close()


@pytest.fixture
def client(tracker):
    return TestClient(create_app(tracker))


def test_full_cycle(tracker, client):
    tracker.record("/data/a.txt", ChangeKind.CREATED)
    tracker.record("/data/b.txt", ChangeKind.MODIFIED)
    tracker.record("/data/c.txt", ChangeKind.DELETED)

    resp = client.post("/snapshots")
    assert resp.status_code == 200
    handle = resp.json()
    assert handle["total"] == 3

    first = client.get(
        f"/snapshots/{handle['generation']}/page", params={"cursor": handle["cursor"]}
    ).json()
    assert [r["path"] for r in first["records"]] == ["/data/a.txt", "/data/b.txt"]
    assert first["done"] is False

    second = client.get(
        f"/snapshots/{handle['generation']}/page", params={"cursor": first["next_cursor"]}
    ).json()
    assert [r["kind"] for r in second["records"]] == ["deleted"]
    assert second["done"] is True
    assert second["next_cursor"] is None

    resp = client.post(f"/snapshots/{handle['generation']}/commit")
    assert resp.json() == {"ok": True, "removed": 3}
    assert len(tracker) == 0


def test_begin_while_paging_conflicts(client):
    client.post("/snapshots")
    resp = client.post("/snapshots")
    assert resp.status_code == 409
    assert resp.json()["error"] == "busy"


def test_invalid_cursor_not_found(client):
    handle = client.post("/snapshots").json()
    resp = client.get(f"/snapshots/{handle['generation']}/page", params={"cursor": "nope"})
    assert resp.status_code == 404
    assert resp.json()["error"] == "invalid_cursor"


def test_bad_page_size(client):
    handle = client.post("/snapshots").json()
    resp = client.get(
        f"/snapshots/{handle['generation']}/page",
        params={"cursor": handle["cursor"], "size": 0},
    )
    assert resp.status_code == 400


def test_commit_before_done_conflicts(tracker, client):
    tracker.record("/a", ChangeKind.CREATED)
    handle = client.post("/snapshots").json()
    resp = client.post(f"/snapshots/{handle['generation']}/commit")
    assert resp.status_code == 409
    assert resp.json()["error"] == "invalid_state"


def test_abandon(tracker, client):
    tracker.record("/a", ChangeKind.CREATED)
    handle = client.post("/snapshots").json()

    resp = client.post(f"/snapshots/{handle['generation']}/abandon")
    assert resp.json() == {"ok": True, "abandoned": True}

    resp = client.post(f"/snapshots/{handle['generation']}/abandon")
    assert resp.json() == {"ok": True, "abandoned": False}
    assert len(tracker) == 1


def test_register_self_change(tracker, client):
    resp = client.post("/self-changes", json={"path_prefix": "/out/", "ttl_seconds": 5})
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "expires_at": 1005.0}
    assert tracker.stats().self_change_entries == 1


def test_register_self_change_default_ttl(client):
    resp = client.post("/self-changes", json={"path_prefix": "/out/"})
    assert resp.json()["expires_at"] == 1030.0


@pytest.mark.parametrize("payload", [
    {},
    {"path_prefix": ""},
    {"path_prefix": "/out/", "ttl_seconds": 0},
    {"path_prefix": "/out/", "ttl_seconds": "soon"},
    ["/out/"],
])
def test_register_self_change_bad_input(client, payload):
    resp = client.post("/self-changes", json=payload)
    assert resp.status_code == 400
    assert resp.json()["error"] == "bad_request"


def test_stats(tracker, client):
    tracker.record("/a", ChangeKind.CREATED)
    body = client.get("/stats").json()
    assert body["state"] == "ok"
    assert body["tracked"] == 1
    assert body["capacity"] == 100
    assert body["by_kind"]["created"] == 1
    assert body["active_generation"] is None


def test_overflow_reported(tracker, client):
    tracker.report_watcher_error("lost events")

    assert client.get("/stats").json()["overflow_reason"] == "watcher_error"

    handle = client.post("/snapshots").json()
    page = client.get(
        f"/snapshots/{handle['generation']}/page", params={"cursor": handle["cursor"]}
    ).json()
    assert page["overflow"] is True
    assert page["overflow_reason"] == "watcher_error"


def test_reset(tracker, client):
    tracker.record("/a", ChangeKind.CREATED)
    assert client.put("/reset").json() == {"ok": True}
    assert len(tracker) == 0


def test_health_without_process(client):
    assert client.get("/health").json() == {"status": "ok", "watching": False}
