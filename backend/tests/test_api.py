"""
Tests for the HTTP layer: store outcomes translated to responses.
"""
import asyncio

import pytest
from fastapi.testclient import TestClient

import main
from main import app, get_store
from storage import Page, Upload, Outcome, Repository


@pytest.fixture
def client(store):
    """Test client wired to a temporary content store (startup events not run)."""
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_save_and_get_page(client):
    response = client.put("/api/pages/Home", json={"content": "welcome"})
    assert response.status_code == 200
    assert response.json() == {"name": "Home", "modified": True}

    response = client.get("/api/pages/Home")
    assert response.status_code == 200
    assert response.json() == {"name": "Home", "content": "welcome"}


def test_save_unchanged_page_is_not_an_error(client):
    client.put("/api/pages/Home", json={"content": "welcome"})

    response = client.put("/api/pages/Home", json={"content": "welcome"})

    assert response.status_code == 200
    assert response.json()["modified"] is False


def test_invalid_name_is_bad_request(client):
    response = client.put("/api/pages/bad;name", json={"content": "x"})
    assert response.status_code == 400


def test_missing_page_is_not_found(client):
    assert client.get("/api/pages/Nope").status_code == 404
    assert client.delete("/api/pages/Nope").status_code == 404
    assert client.post("/api/pages/Nope/rename", json={"new_name": "Other"}).status_code == 404
    assert client.get("/api/pages/Nope/history").status_code == 404


def test_list_pages(client, store):
    for name in ["Zebra", "Home", "Apple"]:
        store.save(Page(name, name))

    response = client.get("/api/pages")

    assert response.json() == {"pages": ["Home", "Apple", "Zebra"]}


def test_rename_and_delete_page(client, store):
    store.save(Page("A", "payload"))

    response = client.post("/api/pages/A/rename", json={"new_name": "B"})
    assert response.status_code == 200
    assert response.json() == {"name": "B"}
    assert store.load(Page, "B").body == "payload"

    assert client.post("/api/pages/B/rename", json={"new_name": "semi;colon"}).status_code == 400

    assert client.delete("/api/pages/B").status_code == 200
    assert not store.exists(Page, "B")


def test_page_history(client, store):
    store.save(Page("A", "one"))
    store.save(Page("A", "two"))

    response = client.get("/api/pages/A/history")

    assert response.status_code == 200
    assert len(response.json()["history"]) == 2


def test_uploads(client, store):
    data = b"\x89PNG\r\n\x1a\n\x00"

    response = client.put("/api/uploads/logo.png", content=data)
    assert response.status_code == 200
    assert response.json()["modified"] is True
    assert store.load(Upload, "logo.png").body == data

    response = client.get("/api/uploads/logo.png")
    assert response.status_code == 200
    assert response.content == data

    assert client.get("/api/uploads").json() == {"uploads": ["logo.png"]}
    assert client.delete("/api/uploads/logo.png").status_code == 200
    assert client.get("/api/uploads/logo.png").status_code == 404


def test_search(client, store):
    store.save(Page("Alpha", "hay\nneedle\n"))
    store.save(Page("Beta", "hay\n"))

    response = client.get("/api/search", params={"q": "needle"})

    assert response.json() == {
        "query": "needle",
        "results": [{"name": "Alpha", "matches": [{"line": 2, "text": "needle"}]}],
    }


def test_conflicts_empty(client):
    assert client.get("/api/conflicts").json() == {"conflicts": []}


def test_sync_status_before_startup(client):
    assert client.get("/api/sync").json() == {"state": None, "last_outcome": None}


def test_startup_opens_repository_off_the_event_loop(tmp_path, origin, monkeypatch):
    """Startup git work (clone, fetch) runs in a worker thread, then the app serves the working copy"""
    open_or_create = Repository.open_or_create
    loop_running = []

    def tracking_open_or_create(*args, **kwargs):
        try:
            asyncio.get_running_loop()
            loop_running.append(True)
        except RuntimeError:
            loop_running.append(False)
        return open_or_create(*args, **kwargs)

    monkeypatch.setattr(main, "WIKI_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setattr(main, "WIKI_ORIGIN_URI", origin)
    monkeypatch.setattr(Repository, "open_or_create", tracking_open_or_create)

    try:
        with TestClient(app) as client:
            assert client.put("/api/pages/Home", json={"content": "welcome"}).json()["modified"] is True
            assert client.get("/api/sync").json()["last_outcome"] == Outcome.OK.value
    finally:
        app.state.store = None
        app.state.sync_manager = None

    assert loop_running == [False]
    assert (tmp_path / "data" / "pages" / "Home.textile").read_text() == "welcome"
