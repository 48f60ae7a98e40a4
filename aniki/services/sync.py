"""Background synchronisation with the remote tracking service."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from typing import Awaitable, Literal, Union

from ..episode import NumberedEpisode
from ..exceptions import RemoteRequestFailed
from ..library import LibraryDatabase
from ..models import MediaListEntry, MediaListGroup, RemoteCredentials
from ..reconcile import ProgressReconciler
from .anilist import AniListClient

logger = logging.getLogger(__name__)

LoginState = Literal["none", "pending", "failed", "connected"]


@dataclass(slots=True)
class ViewerResult:
    access_token: str
    user_id: int


@dataclass(slots=True)
class MediaListResult:
    groups: list[MediaListGroup]


@dataclass(slots=True)
class UpdateResult:
    handle: int
    entry: MediaListEntry


@dataclass(slots=True)
class RequestFailed:
    operation: str
    error: str


SyncResult = Union[ViewerResult, MediaListResult, UpdateResult, RequestFailed]


class SyncService:
    """Dispatches remote calls and applies their results to the library.

    Each call runs as an independent task and posts its outcome to a queue.
    :meth:`process_results` is the only consumer of that queue and the only
    place remote data reaches the library, so it must run on the event loop
    thread that owns the library.
    """

    def __init__(
        self,
        library: LibraryDatabase,
        client: AniListClient,
        *,
        interval_seconds: int = 900,
    ) -> None:
        self._library = library
        self._client = client
        self._reconciler = ProgressReconciler(library)
        self._interval_seconds = interval_seconds
        self._results: asyncio.Queue[SyncResult] = asyncio.Queue()
        self._requests: set[asyncio.Task[None]] = set()
        self._consumer_task: asyncio.Task[None] | None = None
        self._refresh_task: asyncio.Task[None] | None = None
        self.login_state: LoginState = (
            "connected" if library.credentials is not None else "none"
        )

    async def start(self) -> None:
        """Launch the result consumer and the periodic refresh loop."""

        if self._consumer_task is None:
            self._consumer_task = asyncio.create_task(self._consume_loop())
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def stop(self) -> None:
        """Stop background loops; in-flight requests are left to finish."""

        for task in (self._consumer_task, self._refresh_task):
            if task is None:
                continue
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self._consumer_task = None
        self._refresh_task = None

    async def wait_for_requests(self) -> None:
        """Wait until every dispatched request has posted its result."""

        while self._requests:
            await asyncio.gather(*list(self._requests), return_exceptions=True)

    def _dispatch(self, operation: str, call: Awaitable[SyncResult]) -> None:
        async def _runner() -> None:
            try:
                result = await call
            except RemoteRequestFailed as exc:
                result = RequestFailed(operation=operation, error=str(exc))
            await self._results.put(result)

        task = asyncio.create_task(_runner())
        self._requests.add(task)
        task.add_done_callback(self._requests.discard)

    def login(self, access_token: str) -> None:
        """Resolve the viewer for ``access_token`` in the background."""

        async def _call() -> SyncResult:
            user_id = await self._client.fetch_viewer_id(access_token)
            return ViewerResult(access_token=access_token, user_id=user_id)

        self.login_state = "pending"
        self._dispatch("login", _call())

    def logout(self) -> None:
        self._library.clear_credentials()
        self.login_state = "none"

    def refresh(self) -> bool:
        """Fetch the remote lists; returns ``False`` when not logged in."""

        credentials = self._library.credentials
        if credentials is None:
            return False

        async def _call() -> SyncResult:
            groups = await self._client.fetch_media_lists(
                credentials.user_id, credentials.access_token
            )
            return MediaListResult(groups=groups)

        self._dispatch("refresh", _call())
        return True

    def push(self, handle: int) -> bool:
        """Send the entry's current episode to the remote service."""

        credentials = self._library.credentials
        if credentials is None:
            return False
        entry = self._library.get(handle)
        remote_id = self._library.resolve_remote_id(entry)
        current = entry.current_episode
        if remote_id is None or not isinstance(current, NumberedEpisode):
            return False

        async def _call() -> SyncResult:
            record = await self._client.update_progress(
                credentials.access_token, remote_id, current.episode
            )
            return UpdateResult(handle=handle, entry=record)

        self._dispatch("update", _call())
        return True

    def process_results(self) -> int:
        """Apply every queued result; returns how many were handled."""

        handled = 0
        while True:
            try:
                result = self._results.get_nowait()
            except asyncio.QueueEmpty:
                return handled
            self._apply(result)
            handled += 1

    def _apply(self, result: SyncResult) -> None:
        if isinstance(result, ViewerResult):
            self._library.set_credentials(
                RemoteCredentials(user_id=result.user_id, access_token=result.access_token)
            )
            self.login_state = "connected"
            logger.info("Logged in to AniList as user %s", result.user_id)
            self.refresh()
        elif isinstance(result, MediaListResult):
            for handle in self._reconciler.reconcile_lists(result.groups):
                self.push(handle)
            self._library.refresh_view()
        elif isinstance(result, UpdateResult):
            self._reconciler.apply_update(result.handle, result.entry)
        else:
            if result.operation == "login":
                self.login_state = "failed"
            logger.warning("AniList %s failed: %s", result.operation, result.error)

    async def _consume_loop(self) -> None:
        while True:
            result = await self._results.get()
            try:
                self._apply(result)
            except Exception as exc:  # pragma: no cover - background safety net
                logger.exception("Applying sync result failed: %s", exc)

    async def _refresh_loop(self) -> None:
        while True:
            self.refresh()
            await asyncio.sleep(self._interval_seconds)
