"""Tests for task migration and its compensating write."""

from datetime import date

import pytest

from journo.engine import (
    BulletNotFoundError,
    InvalidStateTransition,
    MigrationError,
    StorageFailure,
)
from journo.models import BulletType, TaskState

SOURCE = date(2026, 1, 5)
TARGET = date(2026, 1, 6)

SOURCE_TEXT = """\
# Tasks
- [ ] Write the quarterly report
- [x] Call the dentist
- [<] Book flights
- [>] Already moved

# Notes
- Report is due Friday
"""

TARGET_TEXT = """\
# Tasks
- [ ] Existing task

# Events
- Lunch with Sam
"""


@pytest.fixture
def journal(engine):
    engine.write(SOURCE, SOURCE_TEXT)
    engine.write(TARGET, TARGET_TEXT)
    return engine


def fail_writes_for(engine, monkeypatch, day, method="write_entry"):
    original = getattr(engine, method)

    def flaky(*args, **kwargs):
        written = args[0]
        written_date = written if isinstance(written, date) else written.date
        if written_date == day:
            raise StorageFailure(f"disk full writing {day}")
        return original(*args, **kwargs)

    monkeypatch.setattr(engine, method, flaky)


class TestMigrate:
    def test_marks_source_and_inserts_after_last_task(self, journal):
        source, target = journal.migrate(SOURCE, "task-1", TARGET)

        assert source.find("task-1").task_state is TaskState.MIGRATED
        assert [b.content for b in target] == [
            "Existing task",
            "Write the quarterly report",
            "Lunch with Sam",
        ]
        assert target.find("task-2").task_state is TaskState.PENDING
        assert journal.read(SOURCE) == source
        assert journal.read(TARGET) == target

    def test_index_follows_both_writes(self, journal):
        journal.migrate(SOURCE, "task-1", TARGET)
        assert journal.counts(SOURCE).state_count(TaskState.MIGRATED) == 2
        assert journal.counts(TARGET).count(BulletType.TASK) == 2
        assert journal.term_frequency("quarterly").frequency == 2
        assert set(journal.search("quarterly")) == {SOURCE, TARGET}

    def test_scheduled_task_can_migrate(self, journal):
        source, target = journal.migrate(SOURCE, "task-3", TARGET)
        assert source.find("task-3").task_state is TaskState.MIGRATED
        assert target.find("task-2").content == "Book flights"
        assert target.find("task-2").task_state is TaskState.PENDING

    def test_target_without_entry(self, journal):
        later = date(2026, 1, 20)
        _, target = journal.migrate(SOURCE, "task-1", later)
        assert [b.bullet_id for b in target] == ["task-1"]
        assert journal.read(later) == target

    def test_migrating_backwards_is_allowed(self, journal):
        earlier = date(2026, 1, 1)
        _, target = journal.migrate(SOURCE, "task-1", earlier)
        assert target.date == earlier

    def test_hooks_see_both_writes(self, journal, recorder):
        journal.register_hook(recorder)
        journal.migrate(SOURCE, "task-1", TARGET)
        assert [context.date for context, _ in recorder.calls] == [SOURCE, TARGET]

    def test_accepts_date_strings(self, journal):
        source, target = journal.migrate("2026-01-05", "task-1", "2026-01-06")
        assert source.date == SOURCE
        assert target.date == TARGET


class TestMigrateRejections:
    @pytest.mark.parametrize(
        "bullet_id, error",
        [
            ("task-9", BulletNotFoundError),
            ("note-1", InvalidStateTransition),
            ("task-2", InvalidStateTransition),
            ("task-4", InvalidStateTransition),
        ],
    )
    def test_invalid_bullets(self, journal, bullet_id, error):
        with pytest.raises(error):
            journal.migrate(SOURCE, bullet_id, TARGET)
        assert journal.read_content(SOURCE) == SOURCE_TEXT
        assert journal.read_content(TARGET) == TARGET_TEXT

    def test_same_date(self, journal):
        with pytest.raises(InvalidStateTransition):
            journal.migrate(SOURCE, "task-1", SOURCE)
        assert journal.read_content(SOURCE) == SOURCE_TEXT

    def test_missing_source_entry(self, journal):
        with pytest.raises(BulletNotFoundError):
            journal.migrate(date(2025, 12, 31), "task-1", TARGET)

    def test_migrated_task_cannot_migrate_twice(self, journal):
        journal.migrate(SOURCE, "task-1", TARGET)
        with pytest.raises(InvalidStateTransition):
            journal.migrate(SOURCE, "task-1", date(2026, 1, 7))


class TestMigrateFailures:
    def test_target_failure_is_compensated(self, journal, monkeypatch):
        fail_writes_for(journal, monkeypatch, TARGET)

        with pytest.raises(MigrationError) as exc_info:
            journal.migrate(SOURCE, "task-1", TARGET)

        assert exc_info.value.side == "target"
        assert exc_info.value.compensated is True
        assert isinstance(exc_info.value.__cause__, StorageFailure)
        assert journal.read_content(SOURCE) == SOURCE_TEXT
        assert journal.read_content(TARGET) == TARGET_TEXT
        assert journal.read(SOURCE).find("task-1").task_state is TaskState.PENDING
        assert journal.counts(SOURCE).state_count(TaskState.MIGRATED) == 1
        assert journal.term_frequency("quarterly").frequency == 1

    def test_target_failure_notifies_source_write_and_compensation(self, journal, recorder, monkeypatch):
        journal.register_hook(recorder)
        fail_writes_for(journal, monkeypatch, TARGET)

        with pytest.raises(MigrationError):
            journal.migrate(SOURCE, "task-1", TARGET)

        notified = [entry.find("task-1").task_state for _, entry in recorder.calls]
        assert notified == [TaskState.MIGRATED, TaskState.PENDING]

    def test_failed_compensation_is_reported(self, journal, monkeypatch):
        fail_writes_for(journal, monkeypatch, TARGET)
        fail_writes_for(journal, monkeypatch, SOURCE, method="write")

        with pytest.raises(MigrationError) as exc_info:
            journal.migrate(SOURCE, "task-1", TARGET)

        assert exc_info.value.side == "target"
        assert exc_info.value.compensated is False
        assert journal.read(SOURCE).find("task-1").task_state is TaskState.MIGRATED

    def test_source_failure_changes_nothing(self, journal, monkeypatch):
        fail_writes_for(journal, monkeypatch, SOURCE)

        with pytest.raises(MigrationError) as exc_info:
            journal.migrate(SOURCE, "task-1", TARGET)

        assert exc_info.value.side == "source"
        assert exc_info.value.compensated is None
        assert journal.read_content(SOURCE) == SOURCE_TEXT
        assert journal.read_content(TARGET) == TARGET_TEXT
