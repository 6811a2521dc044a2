"""SQLite index derived from journal entries.

Canonical entry content lives in the entry store; everything here can be
thrown away and rebuilt by replaying every entry through ``apply_diff``.

Tables:
    entry_stats       aggregate counts per date
    bullets           one row per bullet, for type/state queries
    entry_fts         FTS5 full-text index of entry content
    term_frequency    number of entries containing each term
    cross_references  [[YYYY-MM-DD]] links between dates
    canonical_entries entry text, used only by the database layout
"""

from __future__ import annotations

import re
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Generator, Optional

from loguru import logger

from .errors import IndexFailure
from .models import (
    TERM_PATTERN,
    AggregateCounts,
    BulletType,
    CrossReference,
    Entry,
    TaskState,
    TermFrequencyRecord,
    format_date,
    parse_date,
)

REFERENCE_PATTERN = re.compile(r"\[\[(?:([a-z][a-z0-9_-]*):)?(\d{4}-\d{2}-\d{2})\]\]")
DEFAULT_REFERENCE_TYPE = "link"

_TYPE_COLUMNS = {t: f"{t.value}_count" for t in BulletType}
_STATE_COLUMNS = {s: f"{s.value}_tasks" for s in TaskState}


def extract_references(entry: Entry) -> set[CrossReference]:
    """Find every ``[[date]]`` / ``[[type:date]]`` marker in an entry.

    Markers naming impossible dates (2026-02-30) are ignored.
    """
    refs = set()
    for bullet in entry.bullets:
        for ref_type, target in REFERENCE_PATTERN.findall(bullet.content):
            try:
                target_date = parse_date(target)
            except ValueError:
                continue
            refs.add(CrossReference(
                source_date=entry.date,
                target_date=target_date,
                reference_type=ref_type or DEFAULT_REFERENCE_TYPE,
            ))
    return refs


class JournalIndex:
    """SQLite index for journal entries."""

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path, prune_zero_terms: bool = True):
        """Initialize the journal index.

        Args:
            db_path: Path to the SQLite database file
            prune_zero_terms: Delete term records whose frequency drops to 0
        """
        self.db_path = db_path
        self.prune_zero_terms = prune_zero_terms
        self._connection: Optional[sqlite3.Connection] = None
        self._depth = 0
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._get_connection()

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._connection is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode; transactions are opened explicitly by transaction()
            self._connection = sqlite3.connect(str(self.db_path), isolation_level=None)
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA journal_mode = WAL")
        return self._connection

    def _ensure_schema(self) -> None:
        """Create the database schema if it doesn't exist."""
        conn = self._get_connection()

        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
        )
        if cursor.fetchone() is None:
            self._init_schema(conn)
        else:
            row = conn.execute("SELECT version FROM schema_version").fetchone()
            if row is None or row[0] < self.SCHEMA_VERSION:
                self._migrate_schema(conn, row[0] if row else 0)

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        """Initialize the database schema."""
        type_columns = ",\n".join(f"{c} INTEGER NOT NULL DEFAULT 0" for c in _TYPE_COLUMNS.values())
        state_columns = ",\n".join(f"{c} INTEGER NOT NULL DEFAULT 0" for c in _STATE_COLUMNS.values())
        conn.executescript(f"""
            BEGIN;
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
            INSERT OR REPLACE INTO schema_version (version) VALUES ({self.SCHEMA_VERSION});

            -- Aggregate counts, recomputed from the entry on every write
            CREATE TABLE IF NOT EXISTS entry_stats (
                date TEXT PRIMARY KEY,          -- YYYY-MM-DD
                word_count INTEGER NOT NULL,
                bullet_count INTEGER NOT NULL,
                {type_columns},
                {state_columns},
                location TEXT,                  -- where the canonical content lives
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS bullets (
                date TEXT NOT NULL,
                position INTEGER NOT NULL,      -- document order within the day
                bullet_id TEXT NOT NULL,        -- task-1, note-3, ...
                type TEXT NOT NULL,
                task_state TEXT,                -- tasks only
                content TEXT NOT NULL,
                PRIMARY KEY (date, position)
            );
            CREATE INDEX IF NOT EXISTS idx_bullets_type ON bullets(type, date);
            CREATE INDEX IF NOT EXISTS idx_bullets_state ON bullets(task_state, date);

            CREATE VIRTUAL TABLE IF NOT EXISTS entry_fts USING fts5(
                date UNINDEXED,
                content,
                tokenize = 'unicode61'
            );

            CREATE TABLE IF NOT EXISTS term_frequency (
                term TEXT PRIMARY KEY,
                frequency INTEGER NOT NULL DEFAULT 0,
                first_seen TEXT NOT NULL,
                last_seen TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_term_frequency_last_seen ON term_frequency(last_seen);

            CREATE TABLE IF NOT EXISTS cross_references (
                source_date TEXT NOT NULL,
                target_date TEXT NOT NULL,
                reference_type TEXT NOT NULL,
                PRIMARY KEY (source_date, target_date, reference_type)
            );
            CREATE INDEX IF NOT EXISTS idx_cross_references_target ON cross_references(target_date);

            CREATE TABLE IF NOT EXISTS canonical_entries (
                date TEXT PRIMARY KEY,
                content TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            COMMIT;
        """)

    def _migrate_schema(self, conn: sqlite3.Connection, from_version: int) -> None:
        """Migrate schema from an older version."""
        # Only version 1 exists so far
        if from_version < 1:
            self._init_schema(conn)

    def close(self) -> None:
        """Close the database connection, folding the WAL back into the main file."""
        if self._connection is not None:
            try:
                self._connection.execute("PRAGMA wal_checkpoint(TRUNCATE)")
                self._connection.execute("PRAGMA journal_mode = DELETE")
            except sqlite3.Error as e:
                logger.debug(f"Ignoring error while closing index: {e}")
            self._connection.close()
            self._connection = None

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """All-or-nothing boundary for derived rows (and database-layout content).

        Nested calls join the outermost transaction. An exception inside rolls
        everything back; a failed COMMIT is rolled back and raised as
        IndexFailure.
        """
        conn = self._get_connection()
        if self._depth:
            self._depth += 1
            try:
                yield conn
            finally:
                self._depth -= 1
            return

        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise IndexFailure(f"Could not open index transaction: {e}") from e
        self._depth = 1
        try:
            yield conn
        except BaseException:
            self._depth = 0
            self._rollback(conn)
            raise
        self._depth = 0
        try:
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn)
            raise IndexFailure(f"Index commit failed: {e}") from e

    def _rollback(self, conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    # ========== Synchronization ==========

    def apply_diff(
        self,
        day: date,
        old_entry: Optional[Entry],
        new_entry: Optional[Entry],
        location: Optional[str] = None,
    ) -> None:
        """Bring the derived rows for ``day`` in line with ``new_entry``.

        Aggregate counts, bullet rows, the full-text row and outgoing
        cross-references are replaced wholesale. Term frequencies are
        adjusted by the set difference of old and new terms only, so
        re-saving unchanged content touches no term record.

        Args:
            day: Date being written
            old_entry: Entry as previously committed (None if absent)
            new_entry: Entry about to be committed (None or empty to delete)
            location: Locator of the canonical content, kept with the counts

        Raises:
            IndexFailure: On any database error (the transaction rolls back)
        """
        if new_entry is not None and new_entry.is_empty:
            new_entry = None
        date_str = format_date(day)

        try:
            with self.transaction() as conn:
                self._replace_counts(conn, date_str, new_entry, location)
                self._replace_bullets(conn, date_str, new_entry)
                self._replace_text(conn, date_str, new_entry)
                self._replace_references(conn, date_str, new_entry)
                old_terms = old_entry.terms() if old_entry is not None else set()
                new_terms = new_entry.terms() if new_entry is not None else set()
                self._apply_term_diff(conn, date_str, old_terms, new_terms)
        except sqlite3.Error as e:
            raise IndexFailure(f"Index update failed for {date_str}: {e}") from e

        logger.debug(f"Index synchronized for {date_str}")

    def _replace_counts(
        self, conn: sqlite3.Connection, date_str: str, entry: Optional[Entry], location: Optional[str]
    ) -> None:
        conn.execute("DELETE FROM entry_stats WHERE date = ?", (date_str,))
        if entry is None:
            return
        counts = entry.counts
        columns = ["date", "word_count", "bullet_count"]
        values: list[Any] = [date_str, counts.word_count, counts.bullet_count]
        for bullet_type, column in _TYPE_COLUMNS.items():
            columns.append(column)
            values.append(counts.count(bullet_type))
        for state, column in _STATE_COLUMNS.items():
            columns.append(column)
            values.append(counts.state_count(state))
        columns.extend(["location", "updated_at"])
        values.extend([location, datetime.now(timezone.utc).isoformat(timespec="milliseconds")])
        placeholders = ", ".join("?" for _ in columns)
        conn.execute(
            f"INSERT INTO entry_stats ({', '.join(columns)}) VALUES ({placeholders})",
            values,
        )

    def _replace_bullets(self, conn: sqlite3.Connection, date_str: str, entry: Optional[Entry]) -> None:
        conn.execute("DELETE FROM bullets WHERE date = ?", (date_str,))
        if entry is None:
            return
        conn.executemany(
            "INSERT INTO bullets (date, position, bullet_id, type, task_state, content) VALUES (?, ?, ?, ?, ?, ?)",
            [
                (
                    date_str,
                    position,
                    bullet.bullet_id,
                    bullet.bullet_type.value,
                    bullet.task_state.value if bullet.task_state else None,
                    bullet.content,
                )
                for position, bullet in enumerate(entry.bullets)
            ],
        )

    def _replace_text(self, conn: sqlite3.Connection, date_str: str, entry: Optional[Entry]) -> None:
        conn.execute("DELETE FROM entry_fts WHERE date = ?", (date_str,))
        if entry is None:
            return
        conn.execute("INSERT INTO entry_fts (date, content) VALUES (?, ?)", (date_str, entry.text()))

    def _replace_references(self, conn: sqlite3.Connection, date_str: str, entry: Optional[Entry]) -> None:
        conn.execute("DELETE FROM cross_references WHERE source_date = ?", (date_str,))
        if entry is None:
            return
        conn.executemany(
            "INSERT OR IGNORE INTO cross_references (source_date, target_date, reference_type) VALUES (?, ?, ?)",
            [
                (date_str, format_date(ref.target_date), ref.reference_type)
                for ref in extract_references(entry)
            ],
        )

    def _apply_term_diff(
        self, conn: sqlite3.Connection, date_str: str, old_terms: set[str], new_terms: set[str]
    ) -> None:
        added = sorted(new_terms - old_terms)
        removed = sorted(old_terms - new_terms)

        if added:
            conn.executemany(
                """
                INSERT INTO term_frequency (term, frequency, first_seen, last_seen)
                VALUES (?, 1, ?, ?)
                ON CONFLICT(term) DO UPDATE SET
                    frequency = frequency + 1,
                    first_seen = min(first_seen, excluded.first_seen),
                    last_seen = max(last_seen, excluded.last_seen)
                """,
                [(term, date_str, date_str) for term in added],
            )

        if removed:
            conn.executemany(
                "UPDATE term_frequency SET frequency = max(frequency - 1, 0) WHERE term = ?",
                [(term,) for term in removed],
            )
            if self.prune_zero_terms:
                conn.executemany(
                    "DELETE FROM term_frequency WHERE term = ? AND frequency = 0",
                    [(term,) for term in removed],
                )

    def clear(self) -> None:
        """Delete every derived row (canonical entries are left alone)."""
        with self.transaction() as conn:
            for table in ("entry_stats", "bullets", "entry_fts", "term_frequency", "cross_references"):
                conn.execute(f"DELETE FROM {table}")

    # ========== Queries ==========

    def search(
        self,
        query: str,
        mode: str = "token",
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 100,
    ) -> list[date]:
        """Full-text search returning matching dates.

        Args:
            query: Search text
            mode: "token" matches every word of the query as a whole token,
                  ranked by bm25 then newest date first; "substring" matches
                  the query anywhere in the content, newest date first
            date_from: Earliest date (inclusive)
            date_to: Latest date (inclusive)
            limit: Maximum results

        Returns:
            Matching dates
        """
        conn = self._get_connection()
        conditions = []
        params: list[Any] = []

        if mode == "token":
            tokens = TERM_PATTERN.findall(query.lower())
            if not tokens:
                return []
            conditions.append("entry_fts MATCH ?")
            params.append(self._escape_fts_query(tokens))
            order = "bm25(entry_fts), date DESC"
        elif mode == "substring":
            if not query.strip():
                return []
            conditions.append("instr(lower(content), ?) > 0")
            params.append(query.lower())
            order = "date DESC"
        else:
            raise ValueError(f"Invalid search mode: {mode}")

        if date_from:
            conditions.append("date >= ?")
            params.append(format_date(date_from))
        if date_to:
            conditions.append("date <= ?")
            params.append(format_date(date_to))

        sql = f"""
            SELECT date FROM entry_fts
            WHERE {" AND ".join(conditions)}
            ORDER BY {order}
            LIMIT ?
        """
        params.append(limit)
        return [parse_date(row["date"]) for row in conn.execute(sql, params).fetchall()]

    def _escape_fts_query(self, tokens: list[str]) -> str:
        """Quote each token so FTS5 operators in user text are taken literally."""
        return " ".join('"' + token.replace('"', '""') + '"' for token in tokens)

    def term_frequency(self, term: str) -> Optional[TermFrequencyRecord]:
        """Look up one term (case-insensitive)."""
        conn = self._get_connection()
        row = conn.execute(
            "SELECT * FROM term_frequency WHERE term = ?", (term.lower(),)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_term(row)

    def top_terms(self, limit: int = 20, min_frequency: int = 1) -> list[TermFrequencyRecord]:
        """Most frequent terms, ties broken alphabetically."""
        conn = self._get_connection()
        rows = conn.execute(
            """
            SELECT * FROM term_frequency
            WHERE frequency >= ?
            ORDER BY frequency DESC, term ASC
            LIMIT ?
            """,
            (min_frequency, limit),
        ).fetchall()
        return [self._row_to_term(row) for row in rows]

    def cross_references(self, day: date) -> list[CrossReference]:
        """Outgoing references from ``day``'s entry."""
        conn = self._get_connection()
        rows = conn.execute(
            """
            SELECT * FROM cross_references WHERE source_date = ?
            ORDER BY target_date, reference_type
            """,
            (format_date(day),),
        ).fetchall()
        return [self._row_to_reference(row) for row in rows]

    def backlinks(self, day: date) -> list[CrossReference]:
        """References from other entries pointing at ``day``."""
        conn = self._get_connection()
        rows = conn.execute(
            """
            SELECT * FROM cross_references WHERE target_date = ?
            ORDER BY source_date, reference_type
            """,
            (format_date(day),),
        ).fetchall()
        return [self._row_to_reference(row) for row in rows]

    def entry_counts(self, day: date) -> Optional[AggregateCounts]:
        """Stored aggregate counts for one date."""
        conn = self._get_connection()
        row = conn.execute("SELECT * FROM entry_stats WHERE date = ?", (format_date(day),)).fetchone()
        if row is None:
            return None
        return AggregateCounts(
            word_count=row["word_count"],
            bullet_count=row["bullet_count"],
            by_type={t: row[c] for t, c in _TYPE_COLUMNS.items()},
            by_state={s: row[c] for s, c in _STATE_COLUMNS.items()},
        )

    def indexed_dates(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> list[date]:
        """Dates that have a row in entry_stats, oldest first."""
        conn = self._get_connection()
        conditions = []
        params: list[Any] = []
        if date_from:
            conditions.append("date >= ?")
            params.append(format_date(date_from))
        if date_to:
            conditions.append("date <= ?")
            params.append(format_date(date_to))
        where_clause = "WHERE " + " AND ".join(conditions) if conditions else ""
        rows = conn.execute(f"SELECT date FROM entry_stats {where_clause} ORDER BY date", params)
        return [parse_date(row["date"]) for row in rows.fetchall()]

    def aggregate(self, date_from: date, date_to: date) -> dict[str, Any]:
        """Summed counts over a date range (week/month views).

        Returns:
            Dict with "entries", "word_count", "bullet_count", one key per
            bullet type and a "task_states" breakdown
        """
        conn = self._get_connection()
        sums = ", ".join(
            f"COALESCE(SUM({c}), 0) AS {c}"
            for c in ["word_count", "bullet_count", *_TYPE_COLUMNS.values(), *_STATE_COLUMNS.values()]
        )
        row = conn.execute(
            f"SELECT COUNT(*) AS entries, {sums} FROM entry_stats WHERE date >= ? AND date <= ?",
            (format_date(date_from), format_date(date_to)),
        ).fetchone()

        result: dict[str, Any] = {
            "date_from": format_date(date_from),
            "date_to": format_date(date_to),
            "entries": row["entries"],
            "word_count": row["word_count"],
            "bullet_count": row["bullet_count"],
        }
        for bullet_type, column in _TYPE_COLUMNS.items():
            result[bullet_type.value] = row[column]
        result["task_states"] = {s.value: row[c] for s, c in _STATE_COLUMNS.items()}
        return result

    def bullets_by_type(
        self,
        bullet_type: BulletType,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        task_state: Optional[TaskState] = None,
    ) -> list[dict[str, Any]]:
        """Bullets of one type, oldest first (e.g. every pending task this month)."""
        conn = self._get_connection()
        conditions = ["type = ?"]
        params: list[Any] = [bullet_type.value]
        if task_state is not None:
            conditions.append("task_state = ?")
            params.append(task_state.value)
        if date_from:
            conditions.append("date >= ?")
            params.append(format_date(date_from))
        if date_to:
            conditions.append("date <= ?")
            params.append(format_date(date_to))

        rows = conn.execute(
            f"""
            SELECT date, bullet_id, type, task_state, content FROM bullets
            WHERE {" AND ".join(conditions)}
            ORDER BY date, position
            """,
            params,
        ).fetchall()
        return [dict(row) for row in rows]

    def get_stats(self) -> dict[str, Any]:
        """Index statistics."""
        conn = self._get_connection()
        stats: dict[str, Any] = {}

        stats["total_entries"] = conn.execute("SELECT COUNT(*) FROM entry_stats").fetchone()[0]
        stats["total_bullets"] = conn.execute("SELECT COUNT(*) FROM bullets").fetchone()[0]
        stats["total_words"] = conn.execute(
            "SELECT COALESCE(SUM(word_count), 0) FROM entry_stats"
        ).fetchone()[0]

        cursor = conn.execute("SELECT type, COUNT(*) FROM bullets GROUP BY type")
        stats["by_type"] = {row[0]: row[1] for row in cursor.fetchall()}

        cursor = conn.execute(
            "SELECT task_state, COUNT(*) FROM bullets WHERE task_state IS NOT NULL GROUP BY task_state"
        )
        stats["by_task_state"] = {row[0]: row[1] for row in cursor.fetchall()}

        row = conn.execute("SELECT MIN(date), MAX(date) FROM entry_stats").fetchone()
        stats["date_range"] = {"min": row[0], "max": row[1]}

        stats["distinct_terms"] = conn.execute("SELECT COUNT(*) FROM term_frequency").fetchone()[0]
        stats["cross_references"] = conn.execute("SELECT COUNT(*) FROM cross_references").fetchone()[0]

        return stats

    def _row_to_term(self, row: sqlite3.Row) -> TermFrequencyRecord:
        return TermFrequencyRecord(
            term=row["term"],
            frequency=row["frequency"],
            first_seen=parse_date(row["first_seen"]),
            last_seen=parse_date(row["last_seen"]),
        )

    def _row_to_reference(self, row: sqlite3.Row) -> CrossReference:
        return CrossReference(
            source_date=parse_date(row["source_date"]),
            target_date=parse_date(row["target_date"]),
            reference_type=row["reference_type"],
        )
