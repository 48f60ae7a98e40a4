"""Entry point for the FastAPI service driving the library engine."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .config import Settings, settings
from .episode import Episode
from .exceptions import UnknownEpisode
from .library import LibraryDatabase
from .metadata import download_dataset, load_index
from .models import CatalogEntry
from .services.anilist import AniListClient
from .services.sync import SyncService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

EPISODE_ADAPTER: TypeAdapter[Episode] = TypeAdapter(Episode)


class AliasRequest(BaseModel):
    alias: str | None = None


class ThumbnailRequest(BaseModel):
    path: str | None = None


class MetadataRequest(BaseModel):
    title: str | None = None


class LoginRequest(BaseModel):
    access_token: str = Field(min_length=1)


def create_app(app_settings: Settings | None = None) -> FastAPI:
    config = app_settings or settings

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        exit_stack = AsyncExitStack()
        anilist_http = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(config.anilist_api_url),
                timeout=httpx.Timeout(config.remote_timeout_seconds, connect=5.0),
            )
        )

        dataset_path = config.metadata_dataset_path
        if not dataset_path.exists() and config.metadata_dataset_url is not None:
            async with httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0)) as client:
                await download_dataset(client, str(config.metadata_dataset_url), dataset_path)
        metadata_index = load_index(str(dataset_path))

        library = LibraryDatabase.open(
            config.database_path,
            config.video_paths,
            metadata_index=metadata_index,
        )
        logger.info("Library opened with %s titles", len(library))
        sync_service = SyncService(
            library,
            AniListClient(config, anilist_http),
            interval_seconds=config.sync_interval_seconds,
        )

        fastapi_app.state.settings = config
        fastapi_app.state.library = library
        fastapi_app.state.sync = sync_service
        await sync_service.start()

        try:
            yield
        finally:  # pragma: no cover - teardown path exercised at runtime
            await sync_service.stop()
            library.persist(config.database_path)
            await exit_stack.aclose()

    fastapi_app = FastAPI(
        title=config.app_name,
        description="Local video library with AniList progress sync",
        version="1.0.0",
        lifespan=lifespan,
    )
    fastapi_app.state.settings = config
    register_routes(fastapi_app)
    return fastapi_app


def get_library(fastapi_app: FastAPI) -> LibraryDatabase:
    library = getattr(fastapi_app.state, "library", None)
    if not isinstance(library, LibraryDatabase):
        raise RuntimeError("Library not initialised")
    return library


def get_sync(fastapi_app: FastAPI) -> SyncService:
    service = getattr(fastapi_app.state, "sync", None)
    if not isinstance(service, SyncService):
        raise RuntimeError("Sync service not initialised")
    return service


def register_routes(fastapi_app: FastAPI) -> None:
    # Handlers are coroutines so the library is only touched from the event loop.

    def _entry(handle: int) -> CatalogEntry:
        try:
            return get_library(fastapi_app).get(handle)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    def _mark_watched(handle: int, episode) -> dict[str, Any]:
        library = get_library(fastapi_app)
        entry = _entry(handle)
        try:
            library.set_watched(handle, episode)
        except UnknownEpisode as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        get_sync(fastapi_app).push(handle)
        return entry.to_payload(handle)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/library")
    async def list_library() -> dict[str, Any]:
        library = get_library(fastapi_app)
        return {
            "entries": [
                library.get(handle).to_payload(handle)
                for handle in library.visible_view()
            ]
        }

    @fastapi_app.get("/library/{handle}")
    async def library_entry(handle: int) -> dict[str, Any]:
        return _entry(handle).to_payload(handle)

    @fastapi_app.post("/library/{handle}/watched")
    async def mark_watched(handle: int, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            episode = EPISODE_ADAPTER.validate_python(payload)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.errors()) from exc
        return _mark_watched(handle, episode)

    @fastapi_app.post("/library/{handle}/next")
    async def mark_next(handle: int) -> dict[str, Any]:
        next_episode = _entry(handle).next_episode()
        if next_episode is None:
            raise HTTPException(status_code=409, detail="No next episode")
        return _mark_watched(handle, next_episode)

    @fastapi_app.post("/library/{handle}/alias")
    async def set_alias(handle: int, payload: AliasRequest) -> dict[str, Any]:
        entry = _entry(handle)
        get_library(fastapi_app).set_alias(handle, payload.alias)
        return entry.to_payload(handle)

    @fastapi_app.post("/library/{handle}/thumbnail")
    async def set_thumbnail(handle: int, payload: ThumbnailRequest) -> dict[str, Any]:
        entry = _entry(handle)
        if payload.path and not Path(payload.path).is_file():
            raise HTTPException(status_code=400, detail="Thumbnail file not found")
        get_library(fastapi_app).set_thumbnail(handle, payload.path or None)
        return entry.to_payload(handle)

    @fastapi_app.post("/library/{handle}/metadata")
    async def attach_metadata(handle: int, payload: MetadataRequest) -> dict[str, Any]:
        entry = _entry(handle)
        library = get_library(fastapi_app)
        record = None
        if payload.title:
            record = library.metadata_index.find_exact(payload.title)
            if record is None:
                raise HTTPException(status_code=404, detail="Unknown metadata title")
        library.set_metadata(handle, record)
        return entry.to_payload(handle)

    @fastapi_app.post("/library/rescan")
    async def rescan() -> dict[str, Any]:
        library = get_library(fastapi_app)
        library.scan(fastapi_app.state.settings.video_paths)
        return {"titles": len(library), "visible": len(library.visible_view())}

    @fastapi_app.get("/metadata/search")
    async def search_metadata(q: str, limit: int = 10) -> dict[str, Any]:
        records = get_library(fastapi_app).metadata_index.search(
            q, limit=max(1, min(limit, 50))
        )
        return {
            "results": [
                {
                    "title": record.title,
                    "synonyms": list(record.synonyms),
                    "cover": record.cover_image_url,
                    "sources": list(record.sources),
                }
                for record in records
            ]
        }

    @fastapi_app.get("/session")
    async def session_status() -> dict[str, Any]:
        library = get_library(fastapi_app)
        credentials = library.credentials
        return {
            "state": get_sync(fastapi_app).login_state,
            "userId": credentials.user_id if credentials else None,
            "skipLogin": library.skip_login,
            "authorizeUrl": fastapi_app.state.settings.authorize_url,
        }

    @fastapi_app.post("/session", status_code=202)
    async def login(payload: LoginRequest) -> dict[str, Any]:
        sync_service = get_sync(fastapi_app)
        sync_service.login(payload.access_token)
        return {"state": sync_service.login_state}

    @fastapi_app.post("/session/skip")
    async def skip_login() -> dict[str, Any]:
        library = get_library(fastapi_app)
        library.skip_login = True
        return {"skipLogin": True}

    @fastapi_app.delete("/session")
    async def logout() -> dict[str, Any]:
        sync_service = get_sync(fastapi_app)
        sync_service.logout()
        return {"state": sync_service.login_state}

    @fastapi_app.post("/sync", status_code=202)
    async def sync_now() -> dict[str, Any]:
        if not get_sync(fastapi_app).refresh():
            raise HTTPException(status_code=409, detail="Not logged in to AniList")
        return {"queued": True}


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "aniki.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
