"""Reading and writing the library snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from .database import Database, sqlite_url
from .db_models import CatalogEntryRecord, ScanLedgerRecord, SnapshotHeader
from .exceptions import SnapshotError
from .models import CatalogEntry, RemoteCredentials

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
_HEADER_ID = 1


@dataclass(slots=True)
class LibrarySnapshot:
    """Everything the library persists between runs."""

    entries: list[CatalogEntry] = field(default_factory=list)
    scan_ledger: dict[str, int] = field(default_factory=dict)
    skip_login: bool = False
    credentials: RemoteCredentials | None = None


def load_snapshot(path: str | Path) -> LibrarySnapshot:
    """Restore a snapshot, raising :class:`SnapshotError` when it is unusable."""

    snapshot_path = Path(path)
    if not snapshot_path.is_file():
        raise SnapshotError(f"No snapshot at {snapshot_path}")

    database = Database(sqlite_url(snapshot_path))
    try:
        with database.session() as session:
            header = session.get(SnapshotHeader, _HEADER_ID)
            if header is None:
                raise SnapshotError(f"Snapshot {snapshot_path} has no header")
            if header.version != SNAPSHOT_VERSION:
                raise SnapshotError(
                    f"Snapshot {snapshot_path} has version {header.version}, "
                    f"expected {SNAPSHOT_VERSION}"
                )

            records = session.scalars(
                select(CatalogEntryRecord).order_by(CatalogEntryRecord.folder_name)
            ).all()
            entries = [CatalogEntry.model_validate(record.payload) for record in records]
            ledger = {
                record.root: record.scanned_at
                for record in session.scalars(select(ScanLedgerRecord)).all()
            }

            credentials = None
            if header.anilist_user_id is not None and header.anilist_access_token:
                credentials = RemoteCredentials(
                    user_id=header.anilist_user_id,
                    access_token=header.anilist_access_token,
                )
            return LibrarySnapshot(
                entries=entries,
                scan_ledger=ledger,
                skip_login=bool(header.skip_login),
                credentials=credentials,
            )
    except (SQLAlchemyError, ValidationError) as exc:
        raise SnapshotError(f"Snapshot {snapshot_path} is unreadable: {exc}") from exc
    finally:
        database.dispose()


def save_snapshot(path: str | Path, snapshot: LibrarySnapshot) -> None:
    """Replace the snapshot stored at ``path`` with ``snapshot``."""

    snapshot_path = Path(path)
    snapshot_path.parent.mkdir(parents=True, exist_ok=True)
    database = Database(sqlite_url(snapshot_path))
    try:
        database.create_all()
        with database.session() as session:
            session.execute(delete(CatalogEntryRecord))
            session.execute(delete(ScanLedgerRecord))
            session.execute(delete(SnapshotHeader))

            credentials = snapshot.credentials
            session.add(
                SnapshotHeader(
                    id=_HEADER_ID,
                    version=SNAPSHOT_VERSION,
                    skip_login=snapshot.skip_login,
                    anilist_user_id=credentials.user_id if credentials else None,
                    anilist_access_token=credentials.access_token if credentials else None,
                )
            )
            session.add_all(
                ScanLedgerRecord(root=root, scanned_at=scanned_at)
                for root, scanned_at in snapshot.scan_ledger.items()
            )
            session.add_all(
                CatalogEntryRecord(
                    folder_name=entry.folder_name,
                    last_watched_at=entry.last_watched_at,
                    payload=entry.model_dump(mode="json"),
                )
                for entry in snapshot.entries
            )
    finally:
        database.dispose()
    logger.info("Saved %s catalog entries to %s", len(snapshot.entries), snapshot_path)
