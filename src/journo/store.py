"""Entry stores: where canonical entry text lives.

Two layouts satisfy the same interface:

- ``FileEntryStore`` keeps one markdown file per day under
  ``data/YYYY/MM/DD/entry.md``; the SQLite index is a separate file.
- ``DatabaseEntryStore`` keeps the text in the index database itself, so the
  canonical write and the derived rows share one SQLite transaction.
"""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

from loguru import logger

from .errors import StorageFailure
from .index import JournalIndex
from .locking import atomic_write_text, remove_file
from .models import format_date, parse_date


class EntryStore(ABC):
    """Owns canonical entry content, keyed by date."""

    #: True if writes join the index transaction (rolled back with it)
    transactional = False

    @abstractmethod
    def read_content(self, day: date) -> Optional[str]:
        """Canonical text for a date, or None if there is no entry."""

    @abstractmethod
    def write_content(self, day: date, content: Optional[str]) -> None:
        """Persist canonical text; None removes the entry.

        Raises:
            StorageFailure: If the content could not be persisted
        """

    @abstractmethod
    def list_dates(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> list[date]:
        """Dates with an entry, oldest first."""

    @abstractmethod
    def locate(self, day: date) -> str:
        """Opaque locator of a date's canonical content (handed to hooks)."""


class FileEntryStore(EntryStore):
    """One markdown file per day, replaced atomically on every write."""

    FILE_NAME = "entry.md"

    def __init__(self, data_path: Path):
        self.data_path = data_path
        self.data_path.mkdir(parents=True, exist_ok=True)

    def entry_path(self, day: date) -> Path:
        return self.data_path / f"{day.year:04d}" / f"{day.month:02d}" / f"{day.day:02d}" / self.FILE_NAME

    def locate(self, day: date) -> str:
        return str(self.entry_path(day))

    def read_content(self, day: date) -> Optional[str]:
        path = self.entry_path(day)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageFailure(f"Cannot read {path}: {e}") from e

    def write_content(self, day: date, content: Optional[str]) -> None:
        path = self.entry_path(day)
        try:
            if content is None:
                if remove_file(path, stop_at=self.data_path):
                    logger.debug(f"Removed {path}")
            else:
                atomic_write_text(path, content)
        except OSError as e:
            raise StorageFailure(f"Cannot write {path}: {e}") from e

    def list_dates(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> list[date]:
        dates = []
        for path in self.data_path.glob(f"[0-9][0-9][0-9][0-9]/[0-9][0-9]/[0-9][0-9]/{self.FILE_NAME}"):
            day_dir = path.parent
            try:
                day = date(int(day_dir.parent.parent.name), int(day_dir.parent.name), int(day_dir.name))
            except ValueError:
                logger.debug(f"Skipping entry file with invalid date path: {path}")
                continue
            if date_from and day < date_from:
                continue
            if date_to and day > date_to:
                continue
            dates.append(day)
        return sorted(dates)


class DatabaseEntryStore(EntryStore):
    """Canonical text stored alongside the index in one SQLite file."""

    transactional = True

    def __init__(self, index: JournalIndex):
        self.index = index

    def locate(self, day: date) -> str:
        return f"{self.index.db_path}#canonical_entries/{format_date(day)}"

    def read_content(self, day: date) -> Optional[str]:
        try:
            row = self.index.connection.execute(
                "SELECT content FROM canonical_entries WHERE date = ?", (format_date(day),)
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageFailure(f"Cannot read entry {day}: {e}") from e
        return row["content"] if row else None

    def write_content(self, day: date, content: Optional[str]) -> None:
        date_str = format_date(day)
        try:
            with self.index.transaction() as conn:
                if content is None:
                    conn.execute("DELETE FROM canonical_entries WHERE date = ?", (date_str,))
                else:
                    conn.execute(
                        """
                        INSERT INTO canonical_entries (date, content, updated_at) VALUES (?, ?, ?)
                        ON CONFLICT(date) DO UPDATE SET
                            content = excluded.content,
                            updated_at = excluded.updated_at
                        """,
                        (date_str, content, datetime.now(timezone.utc).isoformat(timespec="milliseconds")),
                    )
        except sqlite3.Error as e:
            raise StorageFailure(f"Cannot write entry {date_str}: {e}") from e

    def list_dates(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> list[date]:
        conditions = []
        params = []
        if date_from:
            conditions.append("date >= ?")
            params.append(format_date(date_from))
        if date_to:
            conditions.append("date <= ?")
            params.append(format_date(date_to))
        where_clause = "WHERE " + " AND ".join(conditions) if conditions else ""
        rows = self.index.connection.execute(
            f"SELECT date FROM canonical_entries {where_clause} ORDER BY date", params
        ).fetchall()
        return [parse_date(row["date"]) for row in rows]


def make_store(layout: str, data_path: Path, index: JournalIndex) -> EntryStore:
    """Build the entry store for a configured layout ("files" or "database")."""
    if layout == "files":
        return FileEntryStore(data_path)
    if layout == "database":
        return DatabaseEntryStore(index)
    raise ValueError(f"Unknown storage layout: {layout}")
