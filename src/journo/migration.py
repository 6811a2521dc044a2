"""Task migration: move an open task to another date.

A migration is two writes, each committed on its own:

1. the source task is marked migrated (``[>]``);
2. a fresh pending copy is inserted on the target date, after its last task.

If the second write fails, the source entry is rewritten to its content from
before the migration. The caller always learns which side failed and whether
that compensating write succeeded.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from loguru import logger

from .errors import BulletNotFoundError, InvalidStateTransition, JournalError, MigrationError
from .models import Bullet, BulletType, Entry, TaskState, format_date
from .parser import parse_entry

if TYPE_CHECKING:
    from .engine import JournalEngine

MIGRATABLE_STATES = (TaskState.PENDING, TaskState.SCHEDULED)


class MigrationCoordinator:
    """Runs task migrations through an engine's write path."""

    def __init__(self, engine: JournalEngine):
        self.engine = engine

    def migrate(self, source_date: date, bullet_id: str, target_date: date) -> tuple[Entry, Entry]:
        """Migrate a task.

        Args:
            source_date: Date holding the task
            bullet_id: Id of the task on that date (e.g. "task-2")
            target_date: Date receiving the pending copy

        Returns:
            Tuple of (updated source entry, updated target entry)

        Raises:
            BulletNotFoundError: If the task does not exist
            InvalidStateTransition: If the bullet is not an open task, or the
                dates are the same
            MigrationError: If either write failed
        """
        if source_date == target_date:
            raise InvalidStateTransition("A task cannot be migrated to its own date")

        with self.engine.write_lock():
            source_content = self.engine.read_content(source_date)
            if source_content is None:
                raise BulletNotFoundError(f"No entry for {format_date(source_date)}")
            source = parse_entry(source_content, source_date)
            bullet = source.find(bullet_id)
            if bullet is None:
                raise BulletNotFoundError(f"No bullet {bullet_id} on {format_date(source_date)}")
            self._check_migratable(bullet)

            target = self.engine.read(target_date) or Entry(target_date)
            migrated_source = source.replace_bullet(bullet_id, bullet.with_state(TaskState.MIGRATED))
            updated_target = target.insert_task(
                Bullet(bullet_type=BulletType.TASK, content=bullet.content, task_state=TaskState.PENDING)
            )

            try:
                committed_source = self.engine.write_entry(migrated_source)
            except JournalError as e:
                raise MigrationError(
                    f"Could not mark {bullet_id} migrated on {format_date(source_date)}: {e}",
                    side="source",
                ) from e

            try:
                committed_target = self.engine.write_entry(updated_target)
            except JournalError as e:
                compensated = self._compensate(source_date, source_content)
                raise MigrationError(
                    f"Could not add migrated task to {format_date(target_date)}: {e}"
                    + ("" if compensated else " (source entry left marked migrated)"),
                    side="target",
                    compensated=compensated,
                ) from e

        logger.info(
            f"Migrated {bullet_id} from {format_date(source_date)} to {format_date(target_date)}"
        )
        return committed_source, committed_target

    def _check_migratable(self, bullet: Bullet) -> None:
        if not bullet.is_task:
            raise InvalidStateTransition(
                f"{bullet.bullet_id} is a {bullet.bullet_type.value}; only tasks migrate"
            )
        if bullet.task_state not in MIGRATABLE_STATES:
            raise InvalidStateTransition(
                f"{bullet.bullet_id} is {bullet.task_state.value}; only pending or scheduled tasks migrate"
            )

    def _compensate(self, source_date: date, source_content: str) -> bool:
        """Rewrite the source entry as it was before the migration."""
        try:
            self.engine.write(source_date, source_content)
        except JournalError as e:
            logger.error(f"Compensating write for {format_date(source_date)} failed: {e}")
            return False
        logger.warning(f"Rolled back migrated state on {format_date(source_date)}")
        return True
