"""Tests for the SQLite index and its diff-driven synchronization."""

from datetime import date

import pytest

from journo.errors import IndexFailure
from journo.index import JournalIndex, extract_references
from journo.models import BulletType, CrossReference, TaskState
from journo.parser import parse_entry

D1 = date(2026, 1, 5)
D2 = date(2026, 1, 6)
D3 = date(2026, 1, 7)


def note(day, *lines):
    return parse_entry("# Notes\n" + "".join(f"- {line}\n" for line in lines), day)


@pytest.fixture
def index(tmp_path):
    idx = JournalIndex(tmp_path / "index.db")
    yield idx
    idx.close()


def frequency(index, term):
    record = index.term_frequency(term)
    return record.frequency if record else None


class TestTermFrequency:
    def test_new_entry_counts_each_term_once(self, index):
        index.apply_diff(D1, None, note(D1, "alpha alpha beta", "Alpha"))
        assert frequency(index, "alpha") == 1
        assert frequency(index, "beta") == 1

    def test_set_difference_update(self, index):
        """{a,b,c} -> {b,c,d}: a decremented, d incremented, b and c untouched."""
        old = note(D1, "alpha beta gamma")
        index.apply_diff(D1, None, old)
        index.apply_diff(D2, None, note(D2, "beta"))

        index.apply_diff(D1, old, note(D1, "beta gamma delta"))

        assert frequency(index, "alpha") is None
        assert frequency(index, "beta") == 2
        assert frequency(index, "gamma") == 1
        assert frequency(index, "delta") == 1

    def test_resave_unchanged_content_is_a_no_op(self, index):
        entry = note(D1, "alpha beta")
        index.apply_diff(D1, None, entry)
        before = index.top_terms()
        index.apply_diff(D1, entry, entry)
        index.apply_diff(D1, entry, entry)
        assert index.top_terms() == before

    def test_first_and_last_seen(self, index):
        index.apply_diff(D2, None, note(D2, "alpha"))
        index.apply_diff(D3, None, note(D3, "alpha"))
        index.apply_diff(D1, None, note(D1, "alpha"))

        record = index.term_frequency("ALPHA")
        assert record.frequency == 3
        assert record.first_seen == D1
        assert record.last_seen == D3

    def test_zero_frequency_kept_when_pruning_disabled(self, tmp_path):
        index = JournalIndex(tmp_path / "keep.db", prune_zero_terms=False)
        try:
            entry = note(D1, "alpha")
            index.apply_diff(D1, None, entry)
            index.apply_diff(D1, entry, None)
            assert frequency(index, "alpha") == 0
            assert index.top_terms() == []
        finally:
            index.close()

    def test_top_terms_ordering(self, index):
        index.apply_diff(D1, None, note(D1, "beta alpha"))
        index.apply_diff(D2, None, note(D2, "beta"))
        assert [r.term for r in index.top_terms(limit=2)] == ["beta", "alpha"]


class TestCrossReferences:
    def test_extract_references(self):
        entry = note(D1, "see [[2026-01-06]] and [[followup:2026-01-07]]", "bad [[2026-02-30]] [[2026-1-6]]")
        assert extract_references(entry) == {
            CrossReference(D1, D2, "link"),
            CrossReference(D1, D3, "followup"),
        }

    def test_duplicate_markers_collapse(self, index):
        index.apply_diff(D1, None, note(D1, "[[2026-01-06]]", "again [[2026-01-06]]"))
        assert index.cross_references(D1) == [CrossReference(D1, D2)]

    def test_edges_replaced_per_source(self, index):
        old = note(D1, "[[2026-01-06]]")
        index.apply_diff(D1, None, old)
        index.apply_diff(D1, old, note(D1, "[[2026-01-07]]"))
        assert index.cross_references(D1) == [CrossReference(D1, D3)]
        assert index.backlinks(D2) == []
        assert index.backlinks(D3) == [CrossReference(D1, D3)]

    def test_incoming_edges_belong_to_source(self, index):
        index.apply_diff(D1, None, note(D1, "[[2026-01-06]]"))
        target = note(D2, "target day")
        index.apply_diff(D2, None, target)
        index.apply_diff(D2, target, None)
        assert index.backlinks(D2) == [CrossReference(D1, D2)]


class TestSearch:
    def test_token_search(self, index):
        index.apply_diff(D1, None, note(D1, "Planted tomatoes"))
        index.apply_diff(D2, None, note(D2, "Tomato soup for lunch"))
        assert index.search("tomatoes") == [D1]
        assert index.search("TOMATO soup") == [D2]
        assert index.search("missing") == []

    def test_token_search_treats_operators_literally(self, index):
        index.apply_diff(D1, None, note(D1, "cats OR dogs"))
        assert index.search('cats" OR "nothing') == []
        assert index.search("cats OR") == [D1]
        assert index.search("***") == []

    def test_substring_search_newest_first(self, index):
        index.apply_diff(D1, None, note(D1, "Planted tomatoes"))
        index.apply_diff(D3, None, note(D3, "More tomatoes"))
        index.apply_diff(D2, None, note(D2, "Nothing here"))
        assert index.search("tomato", mode="substring") == [D3, D1]
        assert index.search("TOES", mode="substring") == [D3, D1]

    def test_search_date_filters(self, index):
        for day in (D1, D2, D3):
            index.apply_diff(day, None, note(day, "walk"))
        assert index.search("walk", date_from=D2) == [D3, D2]
        assert index.search("walk", mode="substring", date_to=D2) == [D2, D1]
        assert index.search("walk", limit=1, mode="substring") == [D3]

    def test_invalid_mode(self, index):
        with pytest.raises(ValueError):
            index.search("x", mode="fuzzy")


class TestCounts:
    def test_counts_replaced(self, index):
        entry = parse_entry("# Tasks\n- [ ] one\n- [x] two\n# Events\n- three four\n", D1)
        index.apply_diff(D1, None, entry, location="/tmp/entry.md")
        counts = index.entry_counts(D1)
        assert counts == entry.counts
        assert counts.count(BulletType.TASK) == 2
        assert counts.state_count(TaskState.COMPLETED) == 1

    def test_aggregate_range(self, index):
        index.apply_diff(D1, None, parse_entry("# Tasks\n- [ ] a\n", D1))
        index.apply_diff(D2, None, parse_entry("# Tasks\n- [x] b c\n# Notes\n- d\n", D2))
        index.apply_diff(D3, None, parse_entry("# Notes\n- e\n", D3))

        totals = index.aggregate(D1, D2)
        assert totals["entries"] == 2
        assert totals["bullet_count"] == 3
        assert totals["word_count"] == 4
        assert totals["task"] == 2
        assert totals["note"] == 1
        assert totals["task_states"]["completed"] == 1

    def test_aggregate_empty_range(self, index):
        totals = index.aggregate(D1, D3)
        assert totals["entries"] == 0
        assert totals["word_count"] == 0

    def test_bullets_by_type(self, index):
        index.apply_diff(D1, None, parse_entry("# Tasks\n- [ ] a\n- [x] b\n# Notes\n- c\n", D1))
        index.apply_diff(D2, None, parse_entry("# Tasks\n- [ ] d\n", D2))
        pending = index.bullets_by_type(BulletType.TASK, task_state=TaskState.PENDING)
        assert [(row["date"], row["bullet_id"]) for row in pending] == [
            ("2026-01-05", "task-1"),
            ("2026-01-06", "task-1"),
        ]


class TestDeletion:
    def test_deleting_entry_removes_every_derived_row(self, index):
        entry = note(D1, "alpha [[2026-01-06]]")
        index.apply_diff(D1, None, entry)
        index.apply_diff(D1, entry, None)

        assert index.entry_counts(D1) is None
        assert index.cross_references(D1) == []
        assert index.search("alpha") == []
        assert frequency(index, "alpha") is None
        assert index.indexed_dates() == []
        stats = index.get_stats()
        assert stats["total_entries"] == 0
        assert stats["total_bullets"] == 0

    def test_empty_entry_counts_as_deletion(self, index):
        entry = note(D1, "alpha")
        index.apply_diff(D1, None, entry)
        index.apply_diff(D1, entry, parse_entry("", D1))
        assert index.indexed_dates() == []


class TestTransactions:
    def test_exception_rolls_back_everything(self, index):
        with pytest.raises(RuntimeError):
            with index.transaction():
                index.apply_diff(D1, None, note(D1, "alpha [[2026-01-06]]"))
                raise RuntimeError("boom")

        assert index.entry_counts(D1) is None
        assert frequency(index, "alpha") is None
        assert index.cross_references(D1) == []
        assert not index.in_transaction

    def test_nested_transactions_join(self, index):
        with index.transaction():
            with index.transaction():
                index.apply_diff(D1, None, note(D1, "alpha"))
            assert index.in_transaction
        assert frequency(index, "alpha") == 1

    def test_database_errors_become_index_failures(self, index):
        index.connection.execute("DROP TABLE term_frequency")
        with pytest.raises(IndexFailure):
            index.apply_diff(D1, None, note(D1, "alpha"))
        assert index.entry_counts(D1) is None

    def test_clear(self, index):
        index.apply_diff(D1, None, note(D1, "alpha [[2026-01-06]]"))
        index.clear()
        assert index.get_stats()["total_entries"] == 0
        assert index.get_stats()["distinct_terms"] == 0
        assert index.get_stats()["cross_references"] == 0

    def test_schema_survives_reopen(self, tmp_path):
        path = tmp_path / "index.db"
        first = JournalIndex(path)
        first.apply_diff(D1, None, note(D1, "alpha"))
        first.close()

        second = JournalIndex(path)
        try:
            assert frequency(second, "alpha") == 1
        finally:
            second.close()
