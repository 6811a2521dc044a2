"""Data models for bullets, entries, and derived index records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from enum import Enum
from typing import Iterator, Optional


class BulletType(Enum):
    """Type of a bullet within a day's entry."""
    TASK = "task"
    EVENT = "event"
    NOTE = "note"
    PRIORITY = "priority"
    INSPIRATION = "inspiration"
    INSIGHT = "insight"
    MISSTEP = "misstep"


class TaskState(Enum):
    """State of a task bullet."""
    PENDING = "pending"
    COMPLETED = "completed"
    MIGRATED = "migrated"
    SCHEDULED = "scheduled"


TERM_PATTERN = re.compile(r"[^\W_]+(?:'[^\W_]+)*")


def format_date(day: date) -> str:
    """Format a date as YYYY-MM-DD."""
    return day.isoformat()


def parse_date(s: str) -> date:
    """Parse a YYYY-MM-DD string."""
    return date.fromisoformat(s)


def generate_bullet_id(bullet_type: BulletType, ordinal: int) -> str:
    """Generate bullet ID in format <type>-<n>, n being 1-based per type."""
    return f"{bullet_type.value}-{ordinal}"


def extract_terms(text: str) -> set[str]:
    """Distinct lowercase terms of a text."""
    return set(TERM_PATTERN.findall(text.lower()))


@dataclass(frozen=True)
class Bullet:
    """A single typed micro-entry.

    ``task_state`` is only meaningful for tasks; it is forced to ``None`` for
    every other type and defaults to ``PENDING`` for tasks.
    """
    bullet_type: BulletType
    content: str
    task_state: Optional[TaskState] = None
    bullet_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.bullet_type is BulletType.TASK:
            if self.task_state is None:
                object.__setattr__(self, "task_state", TaskState.PENDING)
        elif self.task_state is not None:
            object.__setattr__(self, "task_state", None)

    @property
    def is_task(self) -> bool:
        return self.bullet_type is BulletType.TASK

    def with_state(self, state: TaskState) -> Bullet:
        """Return a copy with a new task state."""
        if not self.is_task:
            raise ValueError(f"Only tasks carry a state, not {self.bullet_type.value}")
        return replace(self, task_state=state)

    def with_content(self, content: str) -> Bullet:
        """Return a copy with new content; the type never changes."""
        return replace(self, content=content)

    def same_as(self, other: Bullet) -> bool:
        """Compare by type, content and state, ignoring the id."""
        return (
            self.bullet_type is other.bullet_type
            and self.content == other.content
            and self.task_state is other.task_state
        )

    def to_dict(self) -> dict:
        """Convert bullet to dictionary for JSON serialization."""
        return {
            "bullet_id": self.bullet_id,
            "type": self.bullet_type.value,
            "content": self.content,
            "task_state": self.task_state.value if self.task_state else None,
        }


@dataclass(frozen=True)
class AggregateCounts:
    """Per-entry counts, always derived from the bullets."""
    word_count: int = 0
    bullet_count: int = 0
    by_type: dict[BulletType, int] = field(default_factory=dict)
    by_state: dict[TaskState, int] = field(default_factory=dict)  # tasks only

    @classmethod
    def from_bullets(cls, bullets: tuple[Bullet, ...] | list[Bullet]) -> AggregateCounts:
        by_type = {t: 0 for t in BulletType}
        by_state = {s: 0 for s in TaskState}
        words = 0
        for bullet in bullets:
            by_type[bullet.bullet_type] += 1
            if bullet.task_state is not None:
                by_state[bullet.task_state] += 1
            words += len(bullet.content.split())
        return cls(word_count=words, bullet_count=len(bullets), by_type=by_type, by_state=by_state)

    def count(self, bullet_type: BulletType) -> int:
        return self.by_type.get(bullet_type, 0)

    def state_count(self, state: TaskState) -> int:
        return self.by_state.get(state, 0)

    def to_dict(self) -> dict:
        result = {"word_count": self.word_count, "bullet_count": self.bullet_count}
        for bullet_type in BulletType:
            result[bullet_type.value] = self.count(bullet_type)
        result["task_states"] = {s.value: self.state_count(s) for s in TaskState}
        return result


class Entry:
    """A day's ordered bullets.

    Bullet ids are (re)assigned on construction from document order, so an
    entry built from parsed text and one built from stored text agree.
    """

    def __init__(self, day: date, bullets: Optional[list[Bullet]] = None):
        self.date = day
        self.bullets: tuple[Bullet, ...] = self._assign_ids(bullets or [])

    @staticmethod
    def _assign_ids(bullets: list[Bullet]) -> tuple[Bullet, ...]:
        ordinals: dict[BulletType, int] = {}
        assigned = []
        for bullet in bullets:
            n = ordinals.get(bullet.bullet_type, 0) + 1
            ordinals[bullet.bullet_type] = n
            assigned.append(replace(bullet, bullet_id=generate_bullet_id(bullet.bullet_type, n)))
        return tuple(assigned)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entry):
            return NotImplemented
        return self.date == other.date and self.bullets == other.bullets

    def __repr__(self) -> str:
        return f"Entry(date={format_date(self.date)}, bullets={len(self.bullets)})"

    def __len__(self) -> int:
        return len(self.bullets)

    def __iter__(self) -> Iterator[Bullet]:
        return iter(self.bullets)

    @property
    def is_empty(self) -> bool:
        return not self.bullets

    @property
    def counts(self) -> AggregateCounts:
        return AggregateCounts.from_bullets(self.bullets)

    def bullets_of(self, bullet_type: BulletType) -> list[Bullet]:
        return [b for b in self.bullets if b.bullet_type is bullet_type]

    def find(self, bullet_id: str) -> Optional[Bullet]:
        for bullet in self.bullets:
            if bullet.bullet_id == bullet_id:
                return bullet
        return None

    def text(self) -> str:
        """All bullet content joined by newlines (what gets full-text indexed)."""
        return "\n".join(b.content for b in self.bullets)

    def terms(self) -> set[str]:
        return extract_terms(self.text())

    def replace_bullet(self, bullet_id: str, new: Bullet) -> Entry:
        """Return a new entry with one bullet replaced in place."""
        bullets = list(self.bullets)
        for i, bullet in enumerate(bullets):
            if bullet.bullet_id == bullet_id:
                if new.bullet_type is not bullet.bullet_type:
                    raise ValueError("A bullet's type cannot change")
                bullets[i] = new
                return Entry(self.date, bullets)
        raise KeyError(bullet_id)

    def append(self, bullet: Bullet) -> Entry:
        return Entry(self.date, [*self.bullets, bullet])

    def insert_task(self, bullet: Bullet) -> Entry:
        """Insert a task right after the last existing task (or at the end)."""
        bullets = list(self.bullets)
        position = len(bullets)
        for i, existing in enumerate(bullets):
            if existing.is_task:
                position = i + 1
        bullets.insert(position, bullet)
        return Entry(self.date, bullets)

    def to_dict(self) -> dict:
        return {
            "date": format_date(self.date),
            "bullets": [b.to_dict() for b in self.bullets],
            "counts": self.counts.to_dict(),
        }


@dataclass
class TermFrequencyRecord:
    """Number of entries containing a term, with first/last dates seen."""
    term: str
    frequency: int
    first_seen: date
    last_seen: date

    def to_dict(self) -> dict:
        return {
            "term": self.term,
            "frequency": self.frequency,
            "first_seen": format_date(self.first_seen),
            "last_seen": format_date(self.last_seen),
        }


@dataclass(frozen=True)
class CrossReference:
    """Directed, typed link from one day's entry to another date."""
    source_date: date
    target_date: date
    reference_type: str = "link"

    def to_dict(self) -> dict:
        return {
            "source_date": format_date(self.source_date),
            "target_date": format_date(self.target_date),
            "reference_type": self.reference_type,
        }


@dataclass(frozen=True)
class WriteContext:
    """What a write hook gets to know about a committed write."""
    date: date
    entry_location: str
    index_location: str
    content: str


class ViewScope(Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    CUSTOM = "custom"


@dataclass(frozen=True)
class DateRange:
    """Inclusive date range used for week/month aggregation."""
    start: date
    end: date
    scope: ViewScope = ViewScope.CUSTOM

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Range end {self.end} precedes start {self.start}")

    @classmethod
    def day(cls, day: date) -> DateRange:
        return cls(day, day, ViewScope.DAY)

    @classmethod
    def week(cls, start_of_week: date) -> DateRange:
        return cls(start_of_week, start_of_week + timedelta(days=6), ViewScope.WEEK)

    @classmethod
    def month(cls, year: int, month: int) -> DateRange:
        start = date(year, month, 1)
        if month == 12:
            next_month = date(year + 1, 1, 1)
        else:
            next_month = date(year, month + 1, 1)
        return cls(start, next_month - timedelta(days=1), ViewScope.MONTH)

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def days(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)
