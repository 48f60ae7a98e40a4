"""Application configuration models."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Iterable, Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_DATASET_URL = (
    "https://github.com/manami-project/anime-offline-database/raw/master/"
    "anime-offline-database-minified.json"
)


def default_cache_dir() -> Path:
    """Return ``$XDG_CACHE_HOME/aniki``, falling back to ``$HOME/aniki``."""

    xdg_cache_home = os.environ.get("XDG_CACHE_HOME")
    base = Path(xdg_cache_home) if xdg_cache_home else Path.home()
    return base / "aniki"


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Aniki", alias="APP_NAME")
    server_host: str = Field(default="127.0.0.1", alias="HOST")
    server_port: int = Field(default=8750, alias="PORT")

    video_paths: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(), alias="VIDEO_PATHS"
    )
    database_path: Path = Field(
        default_factory=lambda: default_cache_dir() / "aniki.db",
        alias="DATABASE_PATH",
    )
    thumbnail_path: Path = Field(
        default_factory=lambda: default_cache_dir() / "thumbnails",
        alias="THUMBNAIL_PATH",
    )
    metadata_dataset_path: Path = Field(
        default_factory=lambda: default_cache_dir() / "anime-offline-database.json",
        alias="METADATA_DATASET_PATH",
    )
    metadata_dataset_url: HttpUrl | None = Field(
        default=DEFAULT_DATASET_URL, alias="METADATA_DATASET_URL"
    )

    anilist_api_url: HttpUrl = Field(
        default="https://graphql.anilist.co", alias="ANILIST_API_URL"
    )
    anilist_authorize_url: HttpUrl = Field(
        default="https://anilist.co/api/v2/oauth/authorize",
        alias="ANILIST_AUTHORIZE_URL",
    )
    anilist_client_id: str | None = Field(default="15365", alias="ANILIST_CLIENT_ID")
    sync_interval_seconds: int = Field(default=900, alias="SYNC_INTERVAL", ge=60)
    remote_timeout_seconds: float = Field(default=10.0, alias="REMOTE_TIMEOUT", gt=0)

    environment: Literal["development", "production"] = Field(
        default="production", alias="ENVIRONMENT"
    )

    @field_validator("video_paths", mode="before")
    @classmethod
    def _parse_video_paths(cls, value: object) -> tuple[str, ...]:
        """Normalise library roots given as a delimited string or a list."""

        if value is None:
            return ()
        if isinstance(value, (str, Path)):
            raw_values = str(value).replace(os.pathsep, ",").split(",")
        elif isinstance(value, Iterable):
            raw_values = [str(part) for part in value]
        else:
            raise TypeError("VIDEO_PATHS must be a string or iterable of paths")

        cleaned: list[str] = []
        for entry in raw_values:
            entry = entry.strip()
            if not entry:
                continue
            path = os.path.abspath(os.path.expanduser(entry))
            if path not in cleaned:
                cleaned.append(path)
        return tuple(cleaned)

    @property
    def authorize_url(self) -> str | None:
        """Return the implicit-grant URL used to obtain an access token."""

        if not self.anilist_client_id:
            return None
        return (
            f"{str(self.anilist_authorize_url).rstrip('/')}"
            f"?client_id={self.anilist_client_id}&response_type=token"
        )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", populate_by_name=True
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
