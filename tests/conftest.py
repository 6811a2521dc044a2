"""Shared pytest fixtures for journo tests."""

import tempfile
from pathlib import Path

import pytest

from journo.config import JournalConfig
from journo.engine import JournalEngine
from journo.hooks import WriteHook

SAMPLE_ENTRY = """\
# Tasks
- [ ] Write the quarterly report
- [x] Call the dentist
- [<] Book flights

# Events
- Team standup at 9am, see [[2026-01-06]]

# Notes
- The garden needs water
"""


@pytest.fixture
def sample_text():
    """A day with tasks in three states, an event with a link, and a note."""
    return SAMPLE_ENTRY


@pytest.fixture
def temp_journal():
    """Create a temporary journal directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(params=["files", "database"])
def layout(request):
    """Run a test once per storage layout."""
    return request.param


@pytest.fixture
def config(temp_journal, layout):
    """Create a test configuration."""
    return JournalConfig(
        journal_name="test-journal",
        journal_root=temp_journal,
        layout=layout,
        lock_timeout=1.0,
    )


@pytest.fixture
def engine(config):
    """Create a test engine with proper cleanup."""
    eng = JournalEngine(config)
    yield eng
    eng.close()


@pytest.fixture
def engine_factory(temp_journal):
    """Factory fixture that creates engines and ensures cleanup.

    Usage:
        def test_example(engine_factory, temp_journal):
            config = JournalConfig(journal_root=temp_journal, ...)
            engine = engine_factory(config)
    """
    engines = []

    def _create(config, **kwargs):
        eng = JournalEngine(config, **kwargs)
        engines.append(eng)
        return eng

    yield _create

    for eng in engines:
        eng.close()


class RecordingHook(WriteHook):
    """Collects (context, entry) pairs; optionally raises afterwards."""

    def __init__(self, name="recorder", fail=False, enabled=True):
        self._name = name
        self.fail = fail
        self.enabled = enabled
        self.calls = []

    def name(self):
        return self._name

    def enabled_by_default(self):
        return self.enabled

    def on_entry_written(self, context, entry):
        self.calls.append((context, entry))
        if self.fail:
            raise RuntimeError(f"{self._name} exploded")


@pytest.fixture
def recorder():
    """A hook that records every notification."""
    return RecordingHook()


@pytest.fixture
def make_hook():
    """Build extra recording hooks: make_hook("name", fail=True)."""
    return RecordingHook
