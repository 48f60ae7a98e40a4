"""SQLAlchemy ORM models backing the persisted snapshot."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class SnapshotHeader(Base):
    """Single-row table holding the snapshot version and account state."""

    __tablename__ = "snapshot_header"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    version: Mapped[int] = mapped_column(Integer)
    skip_login: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    anilist_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    anilist_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    written_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ScanLedgerRecord(Base):
    """Last scan time of each configured library root."""

    __tablename__ = "scan_ledger"

    root: Mapped[str] = mapped_column(String(4096), primary_key=True)
    scanned_at: Mapped[int] = mapped_column(Integer, default=0)


class CatalogEntryRecord(Base):
    """Serialised catalog entry keyed by its folder name."""

    __tablename__ = "catalog_entries"

    folder_name: Mapped[str] = mapped_column(String(1024), primary_key=True)
    last_watched_at: Mapped[int] = mapped_column(Integer, default=0)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
