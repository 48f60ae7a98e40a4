"""The persisted library of cataloged titles and their watch state."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Iterable, Iterator, Sequence

from .episode import NumberedEpisode, SpecialEpisode, episode_from_path
from .exceptions import SnapshotError, UnknownEpisode
from .metadata import ANILIST_DOMAIN, MetadataIndex, MetadataRecord
from .models import CatalogEntry, RemoteCredentials
from .sanitize import search_key
from .snapshot import LibrarySnapshot, load_snapshot, save_snapshot
from .utils import current_timestamp, dir_modified_time, trailing_id

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = frozenset({".mkv", ".mp4", ".ts", ".avi", ".webm", ".m4v"})
MAX_WALK_DEPTH = 5


def iter_video_files(directory: str) -> Iterator[str]:
    """Yield video files one to five levels below ``directory``."""

    if not os.path.isdir(directory):
        logger.debug("Source directory %s no longer exists", directory)
        return

    def _on_error(exc: OSError) -> None:
        logger.warning("Skipping unreadable path %s: %s", exc.filename, exc)

    base = Path(directory)
    for dirpath, dirnames, filenames in os.walk(directory, onerror=_on_error):
        depth = len(Path(dirpath).relative_to(base).parts)
        if depth >= MAX_WALK_DEPTH - 1:
            dirnames[:] = []
        dirnames.sort()
        for filename in sorted(filenames):
            if os.path.splitext(filename)[1].lower() in VIDEO_EXTENSIONS:
                yield os.path.join(dirpath, filename)


def resolve_remote_id(entry: CatalogEntry) -> int | None:
    """Return the remote tracking id encoded in the entry's metadata sources."""

    if entry.catalog_metadata is None:
        return None
    for source in entry.catalog_metadata.sources:
        remote_id = trailing_id(source, ANILIST_DOMAIN)
        if remote_id is not None:
            return remote_id
    return None


class LibraryDatabase:
    """Owns every cataloged entry, the scan ledger and account state.

    Entries are addressed by integer handles. A handle is the entry's position
    in an append-only list, so it stays valid for the life of the process;
    nothing is ever removed from the library.
    """

    def __init__(
        self,
        metadata_index: MetadataIndex | None = None,
        *,
        clock: Callable[[], int] = current_timestamp,
    ) -> None:
        self._metadata_index = metadata_index or MetadataIndex()
        self._clock = clock
        self._entries: list[CatalogEntry] = []
        self._handles: dict[str, int] = {}
        self.scan_ledger: dict[str, int] = {}
        self.credentials: RemoteCredentials | None = None
        self.skip_login = False
        self._view: list[int] = []
        self._view_built_at = 0
        self._view_dirty = True

    @classmethod
    def open(
        cls,
        snapshot_path: str | Path,
        roots: Sequence[str | Path],
        *,
        metadata_index: MetadataIndex | None = None,
        clock: Callable[[], int] = current_timestamp,
    ) -> "LibraryDatabase":
        """Restore the library from ``snapshot_path`` and bring it up to date.

        With a usable snapshot only roots that changed since their last scan,
        or that were never scanned, are walked again. Otherwise every root is
        scanned from an empty library.
        """

        library = cls(metadata_index, clock=clock)
        try:
            snapshot = load_snapshot(snapshot_path)
        except SnapshotError as exc:
            logger.warning("Rebuilding library from scratch: %s", exc)
            library.scan(roots)
        else:
            library._restore(snapshot)
            now = clock()
            for root in roots:
                root = str(root)
                if not os.path.isdir(root):
                    logger.warning("Library root %s does not exist", root)
                    continue
                previous = library.scan_ledger.get(root)
                if previous is None or previous < dir_modified_time(root):
                    library.scan_root(root, now)

        library._sort_entries()
        library.refresh_view()
        return library

    def _restore(self, snapshot: LibrarySnapshot) -> None:
        self._entries = list(snapshot.entries)
        self._handles = {
            entry.folder_name: handle for handle, entry in enumerate(self._entries)
        }
        self.scan_ledger = dict(snapshot.scan_ledger)
        self.skip_login = snapshot.skip_login
        self.credentials = snapshot.credentials
        self._view_dirty = True

    def _sort_entries(self) -> None:
        self._entries.sort(key=lambda entry: entry.folder_name)
        self._handles = {
            entry.folder_name: handle for handle, entry in enumerate(self._entries)
        }
        self._view_dirty = True

    def snapshot(self) -> LibrarySnapshot:
        return LibrarySnapshot(
            entries=self.entries(),
            scan_ledger=dict(self.scan_ledger),
            skip_login=self.skip_login,
            credentials=self.credentials,
        )

    def persist(self, path: str | Path) -> None:
        """Write the full library to ``path``."""

        save_snapshot(path, self.snapshot())

    # -- entry access -----------------------------------------------------

    @property
    def metadata_index(self) -> MetadataIndex:
        return self._metadata_index

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, handle: int) -> CatalogEntry:
        if not 0 <= handle < len(self._entries):
            raise KeyError(f"Unknown library handle {handle}")
        return self._entries[handle]

    def handle_for(self, folder_name: str) -> int | None:
        return self._handles.get(folder_name)

    def entries(self) -> list[CatalogEntry]:
        """Return every entry ordered by folder name."""

        return sorted(self._entries, key=lambda entry: entry.folder_name)

    def remote_handles(self) -> dict[int, list[int]]:
        """Group handles by the remote id their metadata resolves to."""

        grouped: dict[int, list[int]] = {}
        for handle, entry in enumerate(self._entries):
            remote_id = resolve_remote_id(entry)
            if remote_id is not None:
                grouped.setdefault(remote_id, []).append(handle)
        return grouped

    def resolve_remote_id(self, entry: CatalogEntry) -> int | None:
        return resolve_remote_id(entry)

    # -- scanning ---------------------------------------------------------

    def scan(self, roots: Iterable[str | Path], now: int | None = None) -> None:
        """Scan every existing root."""

        now = self._clock() if now is None else now
        for root in roots:
            if os.path.isdir(root):
                self.scan_root(root, now)
            else:
                logger.warning("Library root %s does not exist", root)

    def scan_root(self, root: str | Path, now: int | None = None) -> None:
        """Catalog new title folders under ``root`` and refresh changed ones."""

        now = self._clock() if now is None else now
        root = str(root)
        try:
            children = sorted(Path(root).iterdir())
        except OSError as exc:
            logger.warning("Unable to read library root %s: %s", root, exc)
            return

        for child in children:
            try:
                if not child.is_dir() or not any(child.iterdir()):
                    continue
            except OSError as exc:
                logger.warning("Skipping unreadable directory %s: %s", child, exc)
                continue

            directory = os.path.abspath(child)
            handle = self._handles.get(child.name)
            if handle is None:
                self._add_entry(child.name, directory, now)
                continue

            entry = self._entries[handle]
            modified = dir_modified_time(directory) > entry.last_scanned_at
            if modified or not entry.has_files_under(directory):
                if directory not in entry.source_paths:
                    entry.source_paths = sorted({*entry.source_paths, directory})
                self.rebuild_episode_map(entry)
                entry.last_scanned_at = now

        self.scan_ledger[root] = now
        self._view_dirty = True

    def _add_entry(self, folder_name: str, directory: str, now: int) -> int:
        metadata = self._metadata_index.lookup(search_key(folder_name))
        if metadata is None:
            logger.info("No metadata match for %s", folder_name)
        entry = CatalogEntry(
            folder_name=folder_name,
            source_paths=[directory],
            last_scanned_at=now,
            catalog_metadata=metadata,
        )
        self.rebuild_episode_map(entry)
        handle = len(self._entries)
        self._entries.append(entry)
        self._handles[folder_name] = handle
        return handle

    def rebuild_episode_map(self, entry: CatalogEntry) -> None:
        """Walk the entry's source paths and regroup its files by episode."""

        grouped: dict[NumberedEpisode | SpecialEpisode, set[str]] = {}
        for directory in entry.source_paths:
            for path in iter_video_files(directory):
                grouped.setdefault(episode_from_path(path), set()).add(path)

        entry.episode_map = sorted(
            ((episode, sorted(paths)) for episode, paths in grouped.items()),
            key=lambda item: item[0],
        )
        if entry.episode_map and not entry.has_episode(entry.current_episode):
            entry.current_episode = entry.episode_map[0][0]

    # -- watch state ------------------------------------------------------

    def set_watched(
        self,
        handle: int,
        episode: NumberedEpisode | SpecialEpisode,
        now: int | None = None,
    ) -> None:
        """Mark ``episode`` as the current one, raising if it is not on disk."""

        entry = self.get(handle)
        if not entry.has_episode(episode):
            raise UnknownEpisode(entry.folder_name, episode)
        self.set_watched_unchecked(handle, episode, now)

    def set_watched_unchecked(
        self,
        handle: int,
        episode: NumberedEpisode | SpecialEpisode,
        now: int | None = None,
    ) -> None:
        """Like :meth:`set_watched` for callers that already checked membership."""

        entry = self.get(handle)
        entry.last_watched_at = self._clock() if now is None else now
        entry.current_episode = episode
        self._view_dirty = True

    def advance_progress(self, handle: int, progress: int) -> None:
        """Move the current episode to match a remote progress counter.

        The remote counter is a 1-based position in the remote ordering, which
        can disagree with local numbering when specials are interleaved. Only
        numbered episodes sitting at that position are candidates; an episode
        whose number also equals the counter wins outright, otherwise the
        closest episode number does. The current episode is left untouched
        when no candidate exists.
        """

        entry = self.get(handle)
        best: NumberedEpisode | None = None
        best_distance: int | None = None
        for position, (episode, _) in enumerate(entry.episode_map, start=1):
            if not isinstance(episode, NumberedEpisode) or position != progress:
                continue
            if episode.episode == progress:
                best = episode
                break
            distance = abs(position - progress) + abs(episode.episode - progress)
            if best_distance is None or distance < best_distance:
                best = episode
                best_distance = distance

        if best is not None:
            entry.current_episode = best

    def touch_watched(self, handle: int, timestamp: int) -> None:
        """Raise the entry's ``last_watched_at`` to ``timestamp`` if it is newer."""

        entry = self.get(handle)
        if timestamp > entry.last_watched_at:
            entry.last_watched_at = timestamp
            self._view_dirty = True

    def set_alias(self, handle: int, alias: str | None) -> None:
        self.get(handle).alias = alias or None

    def set_thumbnail(self, handle: int, path: str | None) -> None:
        self.get(handle).thumbnail_path = path

    def set_metadata(self, handle: int, metadata: MetadataRecord | None) -> None:
        """Attach (or detach) catalog metadata chosen by the user."""

        self.get(handle).catalog_metadata = metadata

    # -- account ----------------------------------------------------------

    def set_credentials(self, credentials: RemoteCredentials) -> None:
        self.credentials = credentials
        self.skip_login = False

    def clear_credentials(self) -> None:
        self.credentials = None

    # -- visible view -----------------------------------------------------

    def refresh_view(self) -> None:
        """Rebuild the list of on-disk entries, most recently watched first."""

        visible = [
            handle
            for handle, entry in enumerate(self._entries)
            if entry.exists_on_disk()
        ]
        visible.sort(key=lambda handle: self._entries[handle].last_watched_at, reverse=True)
        self._view = visible
        self._view_built_at = self._clock()
        self._view_dirty = False

    def visible_view(self) -> list[int]:
        """Return handles of entries still on disk, most recently watched first.

        The returned handles are only meaningful until the next rescan.
        """

        if self._view_dirty or any(
            self._entries[handle].last_watched_at > self._view_built_at
            for handle in self._view
        ):
            self.refresh_view()
        return list(self._view)
