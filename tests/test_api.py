"""HTTP API tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from aniki.config import Settings
from aniki.library import LibraryDatabase
from aniki.main import register_routes
from aniki.metadata import MetadataIndex, MetadataRecord
from aniki.services.sync import SyncService
from aniki.utils import current_timestamp


class DummyAniListClient:
    async def fetch_viewer_id(self, access_token: str) -> int:
        return 7


@pytest.fixture
def api(tmp_path: Path, make_title) -> tuple[FastAPI, LibraryDatabase]:
    make_title("Show A", "Show A - 01.mkv", "Show A - 02.mkv")
    make_title("Show B", "Show B - 01.mkv")
    root = tmp_path / "library"
    show_a = MetadataRecord(
        title="Show A",
        sources=("https://anilist.co/anime/42",),
        tags=("action",),
    )
    index = MetadataIndex([show_a, MetadataRecord(title="Cowboy Bebop", synonyms=("Bebop",))])
    library = LibraryDatabase(index, clock=lambda: current_timestamp() + 60)
    library.scan_root(root)
    library.set_metadata(library.handle_for("Show A"), show_a)

    app = FastAPI()
    register_routes(app)
    app.state.settings = Settings(_env_file=None, VIDEO_PATHS=str(root))
    app.state.library = library
    app.state.sync = SyncService(library, DummyAniListClient())  # type: ignore[arg-type]
    return app, library


def test_list_library_returns_visible_entries(api) -> None:
    app, library = api

    with TestClient(app) as client:
        response = client.get("/library")

    assert response.status_code == 200
    entries = response.json()["entries"]
    assert {entry["folderName"] for entry in entries} == {"Show A", "Show B"}
    show_a = next(entry for entry in entries if entry["folderName"] == "Show A")
    assert show_a["currentEpisode"] == "S01 E01"
    assert show_a["nextEpisode"] == "S01 E02"
    assert show_a["tags"] == ["action"]


def test_mark_watched_moves_current_episode(api) -> None:
    app, library = api
    handle = library.handle_for("Show A")

    with TestClient(app) as client:
        response = client.post(
            f"/library/{handle}/watched",
            json={"kind": "numbered", "season": 1, "episode": 2},
        )

    assert response.status_code == 200
    assert response.json()["currentEpisode"] == "S01 E02"
    assert library.get(handle).last_watched_at > 0


def test_mark_watched_unknown_episode_conflicts(api) -> None:
    app, library = api
    handle = library.handle_for("Show A")

    with TestClient(app) as client:
        missing = client.post(
            f"/library/{handle}/watched",
            json={"kind": "numbered", "season": 1, "episode": 9},
        )
        malformed = client.post(f"/library/{handle}/watched", json={"kind": "movie"})

    assert missing.status_code == 409
    assert "does not exist" in missing.json()["detail"]
    assert malformed.status_code == 400
    assert library.get(handle).last_watched_at == 0


def test_unknown_handle_is_not_found(api) -> None:
    app, _ = api

    with TestClient(app) as client:
        assert client.get("/library/99").status_code == 404
        assert client.post("/library/99/next").status_code == 404


def test_mark_next_advances(api) -> None:
    app, library = api
    handle = library.handle_for("Show A")

    with TestClient(app) as client:
        first = client.post(f"/library/{handle}/next")
        second = client.post(f"/library/{handle}/next")

    assert first.json()["currentEpisode"] == "S01 E02"
    assert second.status_code == 409


def test_alias_and_metadata_attach(api) -> None:
    app, library = api
    handle = library.handle_for("Show B")

    with TestClient(app) as client:
        aliased = client.post(f"/library/{handle}/alias", json={"alias": "Nickname"})
        attached = client.post(f"/library/{handle}/metadata", json={"title": "Bebop"})
        unknown = client.post(f"/library/{handle}/metadata", json={"title": "Nope"})

    assert aliased.json()["title"] == "Nickname"
    assert attached.status_code == 200
    assert library.get(handle).catalog_metadata.title == "Cowboy Bebop"
    assert unknown.status_code == 404


def test_metadata_search(api) -> None:
    app, _ = api

    with TestClient(app) as client:
        response = client.get("/metadata/search", params={"q": "Bebop"})

    assert [result["title"] for result in response.json()["results"]] == ["Cowboy Bebop"]


def test_rescan_picks_up_new_folders(api, make_title) -> None:
    app, library = api
    make_title("Show C", "Show C - 01.mkv")

    with TestClient(app) as client:
        response = client.post("/library/rescan")

    assert response.json() == {"titles": 3, "visible": 3}
    assert library.handle_for("Show C") is not None


def test_session_flow(api) -> None:
    app, library = api

    with TestClient(app) as client:
        status = client.get("/session").json()
        sync = client.post("/sync")
        skipped = client.post("/session/skip").json()
        login = client.post("/session", json={"access_token": "token"})

    assert status["state"] == "none"
    assert status["userId"] is None
    assert sync.status_code == 409
    assert skipped == {"skipLogin": True}
    assert library.skip_login is True
    assert login.status_code == 202
    assert login.json() == {"state": "pending"}


def test_thumbnail_must_exist(api, tmp_path: Path) -> None:
    app, library = api
    handle = library.handle_for("Show A")
    image = tmp_path / "cover.jpg"
    image.write_bytes(b"\xff\xd8")

    with TestClient(app) as client:
        missing = client.post(f"/library/{handle}/thumbnail", json={"path": str(tmp_path / "x.jpg")})
        stored = client.post(f"/library/{handle}/thumbnail", json={"path": str(image)})

    assert missing.status_code == 400
    assert stored.json()["thumbnail"] == str(image)


def test_healthcheck(api) -> None:
    app, _ = api

    with TestClient(app) as client:
        assert client.get("/healthz").json() == {"status": "ok"}
