"""Exception types raised by the Aniki engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .episode import Episode


class AnikiError(Exception):
    """Base class for recoverable engine errors."""


class UnknownEpisode(AnikiError):
    """Raised when watch state targets an episode missing from the episode map."""

    def __init__(self, folder_name: str, episode: "Episode") -> None:
        super().__init__(f'{episode} does not exist in "{folder_name}"')
        self.folder_name = folder_name
        self.episode = episode


class SnapshotError(AnikiError):
    """Raised when a persisted snapshot is missing, unreadable or incompatible."""


class RemoteRequestFailed(AnikiError):
    """Generic failure talking to the remote tracking service."""
