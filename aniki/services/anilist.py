"""Utilities for communicating with the AniList GraphQL API."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..exceptions import RemoteRequestFailed
from ..models import MediaListEntry, MediaListGroup

logger = logging.getLogger(__name__)

VIEWER_QUERY = "query { Viewer { id } }"

MEDIA_LIST_QUERY = """
query ($userId: Int) {
  MediaListCollection(userId: $userId, type: ANIME) {
    lists {
      name
      status
      entries {
        progress
        updatedAt
        media { id }
      }
    }
  }
}
"""

UPDATE_PROGRESS_MUTATION = """
mutation ($mediaId: Int, $progress: Int) {
  SaveMediaListEntry(mediaId: $mediaId, progress: $progress) {
    progress
    updatedAt
    media { id }
  }
}
"""


class AniListClient:
    """Thin wrapper around the AniList GraphQL endpoint.

    Every failure (transport errors, HTTP errors, GraphQL errors and
    unexpected payloads) surfaces as :class:`RemoteRequestFailed`.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    def _headers(self, access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"{self._settings.app_name} (aniki)",
        }

    async def _execute(
        self,
        operation: str,
        query: str,
        variables: dict[str, Any],
        *,
        access_token: str,
    ) -> dict[str, Any]:
        try:
            response = await self._client.post(
                "/",
                json={"query": query, "variables": variables},
                headers=self._headers(access_token),
            )
        except httpx.HTTPError as exc:
            logger.warning("AniList %s request failed: %s", operation, exc)
            raise RemoteRequestFailed(f"{operation}: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "AniList %s request failed with %s: %s",
                operation,
                response.status_code,
                response.text,
            )
            raise RemoteRequestFailed(f"{operation}: HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            logger.warning("Unexpected non-JSON AniList response for %s", operation)
            raise RemoteRequestFailed(f"{operation}: invalid JSON") from exc

        if not isinstance(payload, dict) or payload.get("errors"):
            logger.warning("AniList %s returned errors: %s", operation, payload)
            raise RemoteRequestFailed(f"{operation}: request rejected")
        data = payload.get("data")
        if not isinstance(data, dict):
            logger.warning("Unexpected AniList response structure for %s", operation)
            raise RemoteRequestFailed(f"{operation}: missing data")
        return data

    async def fetch_viewer_id(self, access_token: str) -> int:
        """Return the id of the user that owns ``access_token``."""

        data = await self._execute("viewer", VIEWER_QUERY, {}, access_token=access_token)
        viewer = data.get("Viewer")
        if not isinstance(viewer, dict) or not isinstance(viewer.get("id"), int):
            raise RemoteRequestFailed("viewer: missing id")
        return viewer["id"]

    async def fetch_media_lists(
        self, user_id: int, access_token: str
    ) -> list[MediaListGroup]:
        """Return the user's anime lists with per-title progress."""

        data = await self._execute(
            "media list",
            MEDIA_LIST_QUERY,
            {"userId": user_id},
            access_token=access_token,
        )
        collection = data.get("MediaListCollection")
        if not isinstance(collection, dict):
            raise RemoteRequestFailed("media list: missing collection")
        try:
            return [
                MediaListGroup.model_validate(group)
                for group in collection.get("lists") or []
                if isinstance(group, dict)
            ]
        except ValidationError as exc:
            logger.warning("Malformed AniList media list: %s", exc)
            raise RemoteRequestFailed("media list: malformed entries") from exc

    async def update_progress(
        self, access_token: str, media_id: int, episode: int
    ) -> MediaListEntry:
        """Set the watched episode count for ``media_id``."""

        data = await self._execute(
            "update",
            UPDATE_PROGRESS_MUTATION,
            {"mediaId": media_id, "progress": episode},
            access_token=access_token,
        )
        try:
            return MediaListEntry.model_validate(data.get("SaveMediaListEntry"))
        except ValidationError as exc:
            logger.warning("Malformed AniList update response: %s", exc)
            raise RemoteRequestFailed("update: malformed entry") from exc
