"""Core journal engine - entry writes, index synchronization and queries."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Generator, Optional, Union

import portalocker
from loguru import logger

from .config import JournalConfig
from .errors import (
    BulletNotFoundError,
    IndexFailure,
    InvalidStateTransition,
    JournalError,
    MigrationError,
    StorageFailure,
)
from .hooks import FunctionHook, HookDispatcher, HookFailure, HookRegistry, WriteHook, WriteLogHook, hook_name
from .index import JournalIndex
from .locking import file_lock
from .migration import MigrationCoordinator
from .models import (
    AggregateCounts,
    Bullet,
    BulletType,
    CrossReference,
    DateRange,
    Entry,
    TaskState,
    TermFrequencyRecord,
    WriteContext,
    format_date,
    parse_date,
)
from .parser import parse, parse_entry, serialize
from .store import EntryStore, make_store

__all__ = [
    "BulletNotFoundError",
    "IndexFailure",
    "InvalidStateTransition",
    "JournalEngine",
    "JournalError",
    "MigrationError",
    "StorageFailure",
    "WriteResult",
]

DateLike = Union[date, str]


def as_date(value: DateLike) -> date:
    """Accept a date or a YYYY-MM-DD string."""
    if isinstance(value, date):
        return value
    try:
        return parse_date(value)
    except ValueError as e:
        raise ValueError(f"Invalid date (expected YYYY-MM-DD): {value!r}") from e


@dataclass
class WriteResult:
    """Outcome of one committed write."""
    entry: Optional[Entry]
    context: WriteContext
    hook_failures: list[HookFailure] = field(default_factory=list)
    warnings: list = field(default_factory=list)


class JournalEngine:
    """Owns the write path: parse, persist, synchronize the index, notify hooks."""

    def __init__(self, config: JournalConfig, registry: Optional[HookRegistry] = None):
        self.config = config
        self._ensure_directories()
        self._index: Optional[JournalIndex] = None
        self._store: Optional[EntryStore] = None

        self.registry = registry if registry is not None else self._default_registry()
        self.dispatcher = HookDispatcher(
            self.registry,
            enabled=config.enabled_hooks,
            disabled=config.disabled_hooks,
            concurrent=config.concurrent_hooks,
        )
        self.migrations = MigrationCoordinator(self)
        self.last_write: Optional[WriteResult] = None

        self._lock = threading.RLock()
        self._writer_depth = 0

    @property
    def index(self) -> JournalIndex:
        """Lazily initialize and return the journal index."""
        if self._index is None:
            self._index = JournalIndex(
                self.config.get_index_path(),
                prune_zero_terms=self.config.prune_zero_terms,
            )
        return self._index

    @property
    def store(self) -> EntryStore:
        """Lazily initialize and return the entry store for the configured layout."""
        if self._store is None:
            self._store = make_store(self.config.layout, self.config.get_data_path(), self.index)
        return self._store

    def _ensure_directories(self) -> None:
        self.config.journal_root.mkdir(parents=True, exist_ok=True)
        self.config.get_indexes_path().mkdir(parents=True, exist_ok=True)
        if self.config.layout == "files":
            self.config.get_data_path().mkdir(parents=True, exist_ok=True)

    def _default_registry(self) -> HookRegistry:
        registry = HookRegistry()
        registry.register(WriteLogHook(self.config.get_write_log_path()))
        for name, func in self.config.hooks.items():
            registry.register(FunctionHook(name, func))
        return registry

    def register_hook(self, hook: WriteHook) -> None:
        """Register a write hook after the ones already present."""
        self.registry.register(hook)

    def close(self) -> None:
        if self._index is not None:
            self._index.close()
            self._index = None
        self._store = None

    @contextmanager
    def write_lock(self) -> Generator[None, None, None]:
        """Hold the single-writer lock (re-entrant within this engine).

        Raises:
            StorageFailure: If another process holds the journal lock
        """
        with self._lock:
            self._writer_depth += 1
            try:
                if self._writer_depth == 1:
                    try:
                        with file_lock(self.config.get_lock_path(), timeout=self.config.lock_timeout):
                            yield
                    except portalocker.LockException as e:
                        raise StorageFailure(f"Journal is locked by another writer: {e}") from e
                else:
                    yield
            finally:
                self._writer_depth -= 1

    # ========== Writes ==========

    def write(self, day: DateLike, raw_content: str) -> Optional[Entry]:
        """Replace a day's entry with the parsed form of ``raw_content``.

        Malformed sections are skipped, not fatal. Writing content with no
        bullets removes the entry and all of its index rows.

        Returns:
            The committed entry, or None if the day is now empty.

        Raises:
            StorageFailure: If canonical content could not be persisted.
            IndexFailure: If the index could not be updated (nothing changed).
        """
        day = as_date(day)
        result = parse(raw_content, day)
        return self._commit(result.entry, warnings=result.warnings).entry

    def write_entry(self, entry: Entry) -> Optional[Entry]:
        """Persist a structured entry through the same path as write()."""
        return self._commit(entry).entry

    def delete(self, day: DateLike) -> bool:
        """Remove a day's entry. Returns True if there was one."""
        day = as_date(day)
        with self.write_lock():
            existed = self.store.read_content(day) is not None
            self._commit(Entry(day))
        return existed

    def _commit(self, new_entry: Entry, warnings: Optional[list] = None) -> WriteResult:
        day = new_entry.date
        date_str = format_date(day)

        with self.write_lock():
            previous_content = self.store.read_content(day)
            old_entry = parse_entry(previous_content, day) if previous_content is not None else None
            content = None if new_entry.is_empty else serialize(new_entry)
            if content is not None:
                # Index, hooks and caller all see the entry as it will read back.
                new_entry = parse_entry(content, day)
                content = None if new_entry.is_empty else serialize(new_entry)
            location = self.store.locate(day)
            context = WriteContext(
                date=day,
                entry_location=location,
                index_location=str(self.index.db_path),
                content=content or "",
            )

            if previous_content is None and content is None:
                logger.debug(f"Nothing to write for {date_str}")
                self.last_write = WriteResult(entry=None, context=context, warnings=warnings or [])
                return self.last_write

            replaced = False
            try:
                with self.index.transaction():
                    self.index.apply_diff(day, old_entry, new_entry, location=location)
                    self.store.write_content(day, content)
                    replaced = True
            except Exception as e:
                if replaced and not self.store.transactional:
                    self._restore(day, previous_content)
                logger.error(f"Write for {date_str} failed ({getattr(e, 'stage', 'unexpected')}): {e}")
                raise

            if content is None:
                logger.info(f"Removed entry for {date_str}")
            else:
                logger.info(f"Committed entry for {date_str} ({len(new_entry)} bullets)")

            failures = self.dispatcher.notify(context, new_entry)
            result = WriteResult(
                entry=None if new_entry.is_empty else new_entry,
                context=context,
                hook_failures=failures,
                warnings=warnings or [],
            )
            self.last_write = result
            return result

    def _restore(self, day: date, previous_content: Optional[str]) -> None:
        """Put back the canonical content replaced by a write whose index commit failed."""
        try:
            self.store.write_content(day, previous_content)
        except StorageFailure as e:
            logger.error(f"Could not restore entry for {format_date(day)} after failed commit: {e}")

    def add_bullet(
        self,
        day: DateLike,
        bullet_type: BulletType,
        content: str,
        task_state: Optional[TaskState] = None,
    ) -> Entry:
        """Append one bullet to a day's entry (rapid logging)."""
        day = as_date(day)
        content = content.strip()
        if len(content.splitlines()) != 1:
            raise ValueError("Bullet content must be a single non-empty line")

        with self.write_lock():
            entry = self.read(day) or Entry(day)
            bullet = Bullet(bullet_type=bullet_type, content=content, task_state=task_state)
            if bullet.task_state is TaskState.MIGRATED:
                raise InvalidStateTransition("New tasks cannot start out migrated")
            return self.write_entry(entry.append(bullet))

    def set_task_state(self, day: DateLike, bullet_id: str, state: TaskState) -> Entry:
        """Complete, schedule or reopen a task.

        Migrated is terminal and only reachable through migrate().

        Raises:
            BulletNotFoundError: If the bullet does not exist
            InvalidStateTransition: For non-tasks or migrated tasks
        """
        day = as_date(day)
        if state is TaskState.MIGRATED:
            raise InvalidStateTransition("Use migrate() to migrate a task")

        with self.write_lock():
            entry = self.read(day)
            bullet = entry.find(bullet_id) if entry is not None else None
            if entry is None or bullet is None:
                raise BulletNotFoundError(f"No bullet {bullet_id} on {format_date(day)}")
            if not bullet.is_task:
                raise InvalidStateTransition(f"{bullet_id} is a {bullet.bullet_type.value}, not a task")
            if bullet.task_state is TaskState.MIGRATED:
                raise InvalidStateTransition(f"{bullet_id} has already been migrated")
            if bullet.task_state is state:
                return entry
            return self.write_entry(entry.replace_bullet(bullet_id, bullet.with_state(state)))

    def migrate(self, source_date: DateLike, bullet_id: str, target_date: DateLike) -> tuple[Entry, Entry]:
        """Move a pending or scheduled task to another date. See MigrationCoordinator."""
        return self.migrations.migrate(as_date(source_date), bullet_id, as_date(target_date))

    # ========== Reads ==========

    def read(self, day: DateLike) -> Optional[Entry]:
        """The entry for a date, or None if it has no bullets."""
        day = as_date(day)
        content = self.store.read_content(day)
        if content is None:
            return None
        entry = parse_entry(content, day)
        return None if entry.is_empty else entry

    def read_content(self, day: DateLike) -> Optional[str]:
        """Canonical text of a date's entry."""
        return self.store.read_content(as_date(day))

    def list_dates(self, date_from: Optional[DateLike] = None, date_to: Optional[DateLike] = None) -> list[date]:
        return self.store.list_dates(
            as_date(date_from) if date_from else None,
            as_date(date_to) if date_to else None,
        )

    def entries_in_range(self, date_range: DateRange) -> list[Entry]:
        """Entries within a range, oldest first (week/month views)."""
        entries = []
        for day in self.store.list_dates(date_range.start, date_range.end):
            entry = self.read(day)
            if entry is not None:
                entries.append(entry)
        return entries

    def counts(self, day: DateLike) -> Optional[AggregateCounts]:
        """Indexed aggregate counts for a date."""
        return self.index.entry_counts(as_date(day))

    def aggregate(self, date_range: DateRange) -> dict[str, Any]:
        """Summed counts over a range."""
        return self.index.aggregate(date_range.start, date_range.end)

    def search(
        self,
        query: str,
        mode: str = "token",
        date_from: Optional[DateLike] = None,
        date_to: Optional[DateLike] = None,
        limit: int = 100,
    ) -> list[date]:
        """Full-text search returning matching dates (see JournalIndex.search for ordering)."""
        return self.index.search(
            query,
            mode=mode,
            date_from=as_date(date_from) if date_from else None,
            date_to=as_date(date_to) if date_to else None,
            limit=limit,
        )

    def term_frequency(self, term: str) -> Optional[TermFrequencyRecord]:
        return self.index.term_frequency(term)

    def top_terms(self, limit: int = 20) -> list[TermFrequencyRecord]:
        return self.index.top_terms(limit=limit)

    def cross_references(self, day: DateLike) -> list[CrossReference]:
        return self.index.cross_references(as_date(day))

    def backlinks(self, day: DateLike) -> list[CrossReference]:
        return self.index.backlinks(as_date(day))

    def open_tasks(self, date_range: Optional[DateRange] = None) -> list[dict[str, Any]]:
        """Pending tasks, oldest first - the usual candidates for migration."""
        return self.index.bullets_by_type(
            BulletType.TASK,
            date_from=date_range.start if date_range else None,
            date_to=date_range.end if date_range else None,
            task_state=TaskState.PENDING,
        )

    def stats(self) -> dict[str, Any]:
        stats = self.index.get_stats()
        stats["layout"] = self.config.layout
        stats["hooks"] = [hook_name(hook) for hook in self.dispatcher.active_hooks()]
        return stats

    # ========== Maintenance ==========

    def rebuild_index(self) -> dict[str, int]:
        """Throw away every derived row and replay all canonical entries.

        Returns:
            Dictionary with rebuild statistics
        """
        entries_indexed = 0
        warnings = 0
        errors = 0

        with self.write_lock():
            dates = self.store.list_dates()
            with self.index.transaction():
                self.index.clear()
                for day in dates:
                    try:
                        content = self.store.read_content(day)
                    except StorageFailure as e:
                        logger.warning(f"Skipping {format_date(day)} during rebuild: {e}")
                        errors += 1
                        continue
                    if content is None:
                        continue
                    result = parse(content, day)
                    warnings += len(result.warnings)
                    if result.entry.is_empty:
                        continue
                    self.index.apply_diff(day, None, result.entry, location=self.store.locate(day))
                    entries_indexed += 1

        logger.info(f"Rebuilt index from {entries_indexed} entries ({errors} errors)")
        return {
            "entries_found": len(dates),
            "entries_indexed": entries_indexed,
            "parse_warnings": warnings,
            "errors": errors,
        }
