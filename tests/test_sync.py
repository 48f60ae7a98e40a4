"""Background sync service tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from aniki.episode import numbered
from aniki.exceptions import RemoteRequestFailed
from aniki.library import LibraryDatabase
from aniki.metadata import MetadataIndex, MetadataRecord
from aniki.models import MediaListEntry, MediaListGroup, RemoteCredentials
from aniki.services.sync import SyncService
from aniki.utils import current_timestamp


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


class DummyAniListClient:
    """Records calls and returns canned AniList responses."""

    def __init__(self) -> None:
        self.viewer_id = 7
        self.fail_login = False
        self.groups: list[MediaListGroup] = []
        self.updates: list[tuple[str, int, int]] = []

    async def fetch_viewer_id(self, access_token: str) -> int:
        if self.fail_login:
            raise RemoteRequestFailed("viewer: HTTP 401")
        return self.viewer_id

    async def fetch_media_lists(self, user_id: int, access_token: str) -> list[MediaListGroup]:
        return self.groups

    async def update_progress(
        self, access_token: str, media_id: int, episode: int
    ) -> MediaListEntry:
        self.updates.append((access_token, media_id, episode))
        return MediaListEntry.model_validate(
            {"progress": episode, "updatedAt": 5000, "media": {"id": media_id}}
        )


@pytest.fixture
def library(tmp_path: Path, make_title) -> LibraryDatabase:
    make_title("Show A", "Show A - 01.mkv", "Show A - 02.mkv", "Show A - 03.mkv")
    record = MetadataRecord(title="Show A", sources=("https://anilist.co/anime/42",))
    database = LibraryDatabase(MetadataIndex([record]), clock=lambda: current_timestamp() + 60)
    database.scan_root(tmp_path / "library")
    database.set_metadata(database.handle_for("Show A"), record)
    return database


async def drain(service: SyncService) -> int:
    await service.wait_for_requests()
    return service.process_results()


@pytest.mark.anyio("asyncio")
async def test_login_then_refresh_applies_remote_progress(library: LibraryDatabase) -> None:
    client = DummyAniListClient()
    client.groups = [
        MediaListGroup.model_validate(
            {
                "name": "Watching",
                "entries": [{"progress": 2, "updatedAt": 4000, "media": {"id": 42}}],
            }
        )
    ]
    service = SyncService(library, client)  # type: ignore[arg-type]

    service.login("token")
    assert service.login_state == "pending"
    assert await drain(service) == 1

    assert service.login_state == "connected"
    assert library.credentials == RemoteCredentials(user_id=7, access_token="token")

    assert await drain(service) == 1
    entry = library.get(library.handle_for("Show A"))
    assert entry.current_episode == numbered(1, 2)
    assert entry.last_watched_at == 4000
    assert client.updates == []


@pytest.mark.anyio("asyncio")
async def test_newer_local_progress_is_pushed(library: LibraryDatabase) -> None:
    client = DummyAniListClient()
    client.groups = [
        MediaListGroup.model_validate(
            {"entries": [{"progress": 1, "updatedAt": 100, "media": {"id": 42}}]}
        )
    ]
    library.set_credentials(RemoteCredentials(user_id=7, access_token="token"))
    handle = library.handle_for("Show A")
    library.set_watched(handle, numbered(1, 3), now=200)
    service = SyncService(library, client)  # type: ignore[arg-type]

    assert service.refresh() is True
    assert await drain(service) == 1
    assert await drain(service) == 1

    assert client.updates == [("token", 42, 3)]
    assert library.get(handle).current_episode == numbered(1, 3)
    assert library.get(handle).last_watched_at == 5000


@pytest.mark.anyio("asyncio")
async def test_failed_login_is_reported(library: LibraryDatabase) -> None:
    client = DummyAniListClient()
    client.fail_login = True
    service = SyncService(library, client)  # type: ignore[arg-type]

    service.login("bad-token")
    await drain(service)

    assert service.login_state == "failed"
    assert library.credentials is None


@pytest.mark.anyio("asyncio")
async def test_requests_need_credentials_and_remote_id(
    library: LibraryDatabase, tmp_path: Path, make_title
) -> None:
    service = SyncService(library, DummyAniListClient())  # type: ignore[arg-type]
    handle = library.handle_for("Show A")

    assert service.refresh() is False
    assert service.push(handle) is False

    library.set_credentials(RemoteCredentials(user_id=7, access_token="token"))
    make_title("Unlinked", "Unlinked - 01.mkv")
    library.scan_root(tmp_path / "library")
    assert service.push(library.handle_for("Unlinked")) is False
    assert service.push(handle) is True
    await drain(service)


@pytest.mark.anyio("asyncio")
async def test_logout_clears_credentials(library: LibraryDatabase) -> None:
    library.set_credentials(RemoteCredentials(user_id=7, access_token="token"))
    service = SyncService(library, DummyAniListClient())  # type: ignore[arg-type]
    assert service.login_state == "connected"

    service.logout()

    assert service.login_state == "none"
    assert library.credentials is None


@pytest.mark.anyio("asyncio")
async def test_start_and_stop_background_loops(library: LibraryDatabase) -> None:
    service = SyncService(library, DummyAniListClient(), interval_seconds=3600)  # type: ignore[arg-type]

    await service.start()
    await service.start()
    await service.stop()
    await service.stop()
