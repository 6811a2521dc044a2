"""Tests for entry parsing and serialization."""

from datetime import date

from hypothesis import given, settings, strategies as st

from journo.models import Bullet, BulletType, Entry, TaskState
from journo.parser import parse, parse_entry, serialize

DAY = date(2026, 1, 5)


class TestParse:
    def test_sample_entry(self, sample_text):
        result = parse(sample_text, DAY)
        entry = result.entry

        assert result.warnings == []
        assert entry.date == DAY
        assert [b.bullet_id for b in entry] == ["task-1", "task-2", "task-3", "event-1", "note-1"]
        assert [b.task_state for b in entry.bullets_of(BulletType.TASK)] == [
            TaskState.PENDING,
            TaskState.COMPLETED,
            TaskState.SCHEDULED,
        ]
        assert entry.find("event-1").content == "Team standup at 9am, see [[2026-01-06]]"

    def test_all_sections_and_aliases(self):
        text = (
            "## TODO\n- a\n"
            "# event\n- b\n"
            "# notes\n- c\n"
            "# Priorities\n- d\n"
            "# Inspiration\n- e\n"
            "# Insight\n- f\n"
            "# MISSTEPS\n- g\n"
        )
        entry = parse_entry(text, DAY)
        assert [b.bullet_type for b in entry] == list(BulletType)

    def test_task_markers(self):
        text = "# Tasks\n- [ ] a\n- [x] b\n- [X] c\n- [>] d\n- [<] e\n- f\n* [x] g\n"
        states = [b.task_state for b in parse_entry(text, DAY)]
        assert states == [
            TaskState.PENDING,
            TaskState.COMPLETED,
            TaskState.COMPLETED,
            TaskState.MIGRATED,
            TaskState.SCHEDULED,
            TaskState.PENDING,
            TaskState.COMPLETED,
        ]

    def test_markers_are_plain_text_outside_tasks(self):
        entry = parse_entry("# Notes\n- [x] not a task\n", DAY)
        assert entry.bullets[0].content == "[x] not a task"
        assert entry.bullets[0].task_state is None

    def test_lines_without_list_marker_are_bullets(self):
        entry = parse_entry("# Notes\nplain line\n", DAY)
        assert entry.bullets[0].content == "plain line"

    def test_hashtag_is_content_not_header(self):
        entry = parse_entry("# Notes\n#garden looks great\n", DAY)
        assert len(entry) == 1
        assert entry.bullets[0].content == "#garden looks great"

    def test_unknown_section_is_skipped_with_warning(self):
        result = parse("# Groceries\n- milk\n# Notes\n- kept\n", DAY)
        assert [b.content for b in result.entry] == ["kept"]
        assert [w.reason for w in result.warnings] == [
            "unrecognized section header",
            "line in unrecognized section",
        ]
        assert result.warnings[1].line_number == 2

    def test_text_before_any_header_is_skipped(self):
        result = parse("stray\n# Notes\n- kept\n", DAY)
        assert len(result.entry) == 1
        assert result.warnings[0].reason == "line outside any section"

    def test_empty_bullets_are_skipped(self):
        result = parse("# Tasks\n- [ ]\n-\n- real\n", DAY)
        assert [b.content for b in result.entry] == ["real"]
        assert len(result.warnings) == 2

    def test_blank_and_garbage_never_raise(self):
        assert parse_entry("", DAY).is_empty
        assert parse_entry("\n\n   \n", DAY).is_empty
        assert parse_entry("#\n##\n- \n[[", DAY).is_empty


class TestSerialize:
    def test_canonical_text_is_stable(self, sample_text):
        assert serialize(parse_entry(sample_text, DAY)) == sample_text

    def test_empty_entry(self):
        assert serialize(Entry(DAY)) == ""

    def test_interleaved_sections_keep_document_order(self):
        entry = Entry(DAY, [
            Bullet(BulletType.TASK, "a"),
            Bullet(BulletType.NOTE, "b"),
            Bullet(BulletType.TASK, "c"),
        ])
        text = serialize(entry)
        assert text == "# Tasks\n- [ ] a\n\n# Notes\n- b\n\n# Tasks\n- [ ] c\n"
        assert parse_entry(text, DAY) == entry

    def test_normalizes_loose_input(self):
        text = "##   tasks  \n   * [X]   done   \nopen\n\n#notes-are-content\n"
        assert serialize(parse_entry(text, DAY)) == "# Tasks\n- [x] done\n- [ ] open\n- [ ] #notes-are-content\n"

    def test_content_that_looks_like_markup_survives(self):
        entry = Entry(DAY, [
            Bullet(BulletType.TASK, "[x] literally bracketed"),
            Bullet(BulletType.NOTE, "- leading dash"),
            Bullet(BulletType.NOTE, "# not a header"),
        ])
        assert parse_entry(serialize(entry), DAY) == entry


_content = st.text(
    alphabet=st.sampled_from(list("abcdefghijklmnopqrstuvwxyzABC0123456789 -*#[]<>x.,'")),
    min_size=1,
    max_size=30,
).map(str.strip).filter(bool)

_bullets = st.builds(
    Bullet,
    bullet_type=st.sampled_from(list(BulletType)),
    content=_content,
    task_state=st.sampled_from(list(TaskState)),
)


class TestRoundTripProperties:
    @given(bullets=st.lists(_bullets, max_size=12))
    @settings(max_examples=200)
    def test_structured_round_trip(self, bullets):
        """Serializing then parsing gives back the same entry."""
        entry = Entry(DAY, bullets)
        assert parse_entry(serialize(entry), DAY) == entry

    @given(text=st.text(max_size=200))
    @settings(max_examples=200)
    def test_parse_normalizes_once(self, text):
        """parse(serialize(parse(t))) == parse(t) for arbitrary text."""
        first = parse_entry(text, DAY)
        assert parse_entry(serialize(first), DAY) == first
