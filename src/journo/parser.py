"""Convert between entry text and structured entries.

Format::

    # Tasks
    - [ ] Pending task
    - [x] Completed task
    - [>] Migrated task
    - [<] Scheduled task

    # Events
    - Team standup at 9am

Each non-blank line under a section header becomes one bullet of that
section's type, in document order. Parsing is forgiving: unknown headers and
stray lines are skipped and reported as warnings, never raised.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from loguru import logger

from .models import Bullet, BulletType, Entry, TaskState

SECTION_TITLES = {
    BulletType.TASK: "Tasks",
    BulletType.EVENT: "Events",
    BulletType.NOTE: "Notes",
    BulletType.PRIORITY: "Priority",
    BulletType.INSPIRATION: "Inspiration",
    BulletType.INSIGHT: "Insights",
    BulletType.MISSTEP: "Missteps",
}

SECTION_ALIASES = {
    "tasks": BulletType.TASK,
    "task": BulletType.TASK,
    "todo": BulletType.TASK,
    "events": BulletType.EVENT,
    "event": BulletType.EVENT,
    "notes": BulletType.NOTE,
    "note": BulletType.NOTE,
    "priority": BulletType.PRIORITY,
    "priorities": BulletType.PRIORITY,
    "inspiration": BulletType.INSPIRATION,
    "inspirations": BulletType.INSPIRATION,
    "insights": BulletType.INSIGHT,
    "insight": BulletType.INSIGHT,
    "missteps": BulletType.MISSTEP,
    "misstep": BulletType.MISSTEP,
}

STATE_MARKERS = {
    TaskState.PENDING: " ",
    TaskState.COMPLETED: "x",
    TaskState.MIGRATED: ">",
    TaskState.SCHEDULED: "<",
}

_MARKER_STATES = {
    " ": TaskState.PENDING,
    "x": TaskState.COMPLETED,
    "X": TaskState.COMPLETED,
    ">": TaskState.MIGRATED,
    "<": TaskState.SCHEDULED,
}

# ATX style: "#hashtag" at the start of a line is content, not a header
HEADER_PATTERN = re.compile(r"^#+(?:\s+|$)(.*?)\s*#*$")
LIST_MARKER_PATTERN = re.compile(r"^[-*](?:\s+|$)")
STATE_MARKER_PATTERN = re.compile(r"^\[([ xX<>])\]\s*")


@dataclass(frozen=True)
class ParseWarning:
    """A recoverable problem found while parsing."""
    line_number: int
    line: str
    reason: str

    def __str__(self) -> str:
        return f"line {self.line_number}: {self.reason}: {self.line!r}"


@dataclass
class ParseResult:
    """Parsed entry plus whatever was skipped on the way."""
    entry: Entry
    warnings: list[ParseWarning] = field(default_factory=list)


def section_type(header_title: str) -> Optional[BulletType]:
    """Map a header title to its bullet type, or None if unrecognized."""
    return SECTION_ALIASES.get(header_title.strip().lower())


def parse_line(bullet_type: BulletType, line: str) -> Optional[Bullet]:
    """Parse one content line into a bullet; None if nothing is left of it."""
    content = LIST_MARKER_PATTERN.sub("", line.strip(), count=1)
    state = None
    if bullet_type is BulletType.TASK:
        match = STATE_MARKER_PATTERN.match(content)
        if match:
            state = _MARKER_STATES[match.group(1)]
            content = content[match.end():]
        else:
            state = TaskState.PENDING
    content = content.strip()
    if not content:
        return None
    return Bullet(bullet_type=bullet_type, content=content, task_state=state)


def parse(text: str, day: date) -> ParseResult:
    """Parse entry text into an Entry.

    Args:
        text: Raw entry text (as edited by a human or written by serialize)
        day: Date the entry belongs to

    Returns:
        ParseResult with the entry and any warnings
    """
    bullets: list[Bullet] = []
    warnings: list[ParseWarning] = []
    current: Optional[BulletType] = None
    in_section = False

    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue

        header = HEADER_PATTERN.match(line)
        if header:
            current = section_type(header.group(1))
            in_section = True
            if current is None:
                warnings.append(ParseWarning(number, raw, "unrecognized section header"))
            continue

        if current is None:
            reason = "line in unrecognized section" if in_section else "line outside any section"
            warnings.append(ParseWarning(number, raw, reason))
            continue

        bullet = parse_line(current, line)
        if bullet is None:
            warnings.append(ParseWarning(number, raw, "empty bullet"))
            continue
        bullets.append(bullet)

    for warning in warnings:
        logger.debug(f"Parse warning for {day}: {warning}")

    return ParseResult(entry=Entry(day, bullets), warnings=warnings)


def parse_entry(text: str, day: date) -> Entry:
    """Parse entry text, discarding warnings."""
    return parse(text, day).entry


def format_bullet(bullet: Bullet) -> str:
    """Render one bullet as a list line."""
    if bullet.is_task:
        marker = STATE_MARKERS[bullet.task_state or TaskState.PENDING]
        return f"- [{marker}] {bullet.content}"
    return f"- {bullet.content}"


def serialize(entry: Entry) -> str:
    """Render an entry as canonical text.

    A new header is written whenever the bullet type changes, so document
    order survives a round trip even with interleaved sections.
    """
    lines: list[str] = []
    previous: Optional[BulletType] = None

    for bullet in entry.bullets:
        if bullet.bullet_type is not previous:
            if lines:
                lines.append("")
            lines.append(f"# {SECTION_TITLES[bullet.bullet_type]}")
            previous = bullet.bullet_type
        lines.append(format_bullet(bullet))

    if not lines:
        return ""
    return "\n".join(lines) + "\n"
