"""Pydantic models describing library entries and remote payloads."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from .episode import Episode, NumberedEpisode, SpecialEpisode, numbered
from .metadata import MetadataRecord

EpisodeMap = list[tuple[Episode, list[str]]]


class RemoteCredentials(BaseModel):
    """Credentials for the remote tracking service."""

    user_id: int
    access_token: str


class CatalogEntry(BaseModel):
    """One cataloged title folder and its watch state."""

    folder_name: str
    source_paths: list[str] = Field(default_factory=list)
    last_watched_at: int = 0
    last_scanned_at: int = 0
    current_episode: Episode = Field(default_factory=lambda: numbered(1, 1))
    episode_map: EpisodeMap = Field(default_factory=list)
    thumbnail_path: str | None = None
    alias: str | None = None
    catalog_metadata: MetadataRecord | None = None

    @property
    def title(self) -> str:
        """Return the catalog title, falling back to the folder name."""

        if self.catalog_metadata is not None:
            return self.catalog_metadata.title
        return self.folder_name

    @property
    def display_title(self) -> str:
        return self.alias or self.title

    def has_episode(self, episode: NumberedEpisode | SpecialEpisode) -> bool:
        return any(key == episode for key, _ in self.episode_map)

    def episode_paths(self, episode: NumberedEpisode | SpecialEpisode) -> list[str]:
        """Return the files backing ``episode``, or an empty list."""

        for key, paths in self.episode_map:
            if key == episode:
                return list(paths)
        return []

    def next_episode(self) -> NumberedEpisode | None:
        """Return the episode after the current one.

        Tries the next number in the same season, then episode 0 and
        episode 1 of the following season. Specials have no successor.
        """

        current = self.current_episode
        if not isinstance(current, NumberedEpisode):
            return None
        for candidate in (
            numbered(current.season, current.episode + 1),
            numbered(current.season + 1, 0),
            numbered(current.season + 1, 1),
        ):
            if self.has_episode(candidate):
                return candidate
        return None

    def exists_on_disk(self) -> bool:
        return any(os.path.isdir(path) for path in self.source_paths)

    def has_files_under(self, directory: str) -> bool:
        """Return ``True`` when a known episode file lives below ``directory``."""

        base = Path(directory)
        for _, paths in self.episode_map:
            for path in paths:
                if base in Path(path).parents:
                    return True
        return False

    def to_payload(self, handle: int) -> dict[str, object]:
        """Return the API representation of the entry."""

        payload: dict[str, object] = {
            "handle": handle,
            "folderName": self.folder_name,
            "title": self.display_title,
            "currentEpisode": str(self.current_episode),
            "lastWatchedAt": self.last_watched_at,
            "episodes": [
                {"episode": str(episode), "paths": list(paths)}
                for episode, paths in self.episode_map
            ],
        }
        next_episode = self.next_episode()
        if next_episode is not None:
            payload["nextEpisode"] = str(next_episode)
        if self.alias:
            payload["alias"] = self.alias
        if self.thumbnail_path:
            payload["thumbnail"] = self.thumbnail_path
        if self.catalog_metadata is not None:
            payload["cover"] = self.catalog_metadata.cover_image_url
            payload["tags"] = list(self.catalog_metadata.tags)
        return payload


class MediaRef(BaseModel):
    id: int


class MediaListEntry(BaseModel):
    """A progress record held by the remote tracking service."""

    model_config = ConfigDict(populate_by_name=True)

    progress: int = Field(default=0, ge=0)
    updated_at: int = Field(default=0, alias="updatedAt")
    media: MediaRef

    @property
    def remote_id(self) -> int:
        return self.media.id


class MediaListGroup(BaseModel):
    """A named list of remote progress records."""

    name: str = ""
    status: str | None = None
    entries: list[MediaListEntry] = Field(default_factory=list)
