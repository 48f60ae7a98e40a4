"""Last-write-wins reconciliation between local and remote progress."""

from __future__ import annotations

import logging
from typing import Iterable, Literal

from .library import LibraryDatabase
from .models import MediaListEntry, MediaListGroup

logger = logging.getLogger(__name__)


# Follow-up required after reconciling one remote record.
SyncAction = Literal["none", "push"]


class ProgressReconciler:
    """Merges remote progress records into the library's watch state."""

    def __init__(self, library: LibraryDatabase) -> None:
        self._library = library

    def reconcile(self, handle: int, record: MediaListEntry) -> SyncAction:
        """Apply ``record`` to the entry at ``handle``.

        A newer local watch wins and must be pushed to the remote service.
        Otherwise the remote progress is adopted along with its timestamp.
        Records that belong to another title are ignored.
        """

        entry = self._library.get(handle)
        if self._library.resolve_remote_id(entry) != record.remote_id:
            return "none"

        if entry.last_watched_at > record.updated_at:
            return "push"

        self._library.advance_progress(handle, record.progress)
        self._library.touch_watched(handle, record.updated_at)
        return "none"

    def reconcile_lists(self, groups: Iterable[MediaListGroup]) -> list[int]:
        """Reconcile every remote list; return handles whose state must be pushed."""

        pushes: list[int] = []
        remote_handles = self._library.remote_handles()
        for group in groups:
            for record in group.entries:
                for handle in remote_handles.get(record.remote_id, ()):
                    action = self.reconcile(handle, record)
                    if action == "push" and handle not in pushes:
                        pushes.append(handle)
        if pushes:
            logger.info("%s titles are newer locally than on the remote list", len(pushes))
        return pushes

    def apply_update(self, handle: int, record: MediaListEntry) -> None:
        """Adopt the timestamp echoed back by a successful push."""

        entry = self._library.get(handle)
        if self._library.resolve_remote_id(entry) != record.remote_id:
            logger.warning(
                "Ignoring update echo for media %s on %s",
                record.remote_id,
                entry.folder_name,
            )
            return
        self._library.touch_watched(handle, record.updated_at)
