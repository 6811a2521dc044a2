"""Tests for the command-line entry point."""

import sys
from datetime import date

import pytest
from loguru import logger

from journo import server
from journo.config import JournalConfig
from journo.engine import JournalEngine


def run_main(monkeypatch, *args):
    levels = []
    monkeypatch.setattr(server, "configure_logging", levels.append)
    monkeypatch.setattr(sys, "argv", ["journo-mcp", *args])
    server.main()
    return levels


def test_init_creates_journal(monkeypatch, temp_journal, capsys):
    run_main(monkeypatch, "--journal-root", str(temp_journal), "--init")

    assert (temp_journal / "indexes" / "index.db").exists()
    assert (temp_journal / "data").is_dir()
    assert "Initialized journal" in capsys.readouterr().out


def test_rebuild_index(monkeypatch, temp_journal, capsys):
    engine = JournalEngine(JournalConfig(journal_root=temp_journal))
    engine.write(date(2026, 1, 5), "# Notes\n- hello\n")
    engine.close()

    run_main(monkeypatch, "-j", str(temp_journal), "--rebuild-index")
    assert "Indexed 1 of 1 entries (0 errors)" in capsys.readouterr().out


def test_bad_config_exits(monkeypatch, temp_journal):
    (temp_journal / "journal_config.toml").write_text("[storage]\nlayout = 'tape'\n")
    with pytest.raises(SystemExit):
        run_main(monkeypatch, "--journal-root", str(temp_journal), "--init")


def test_missing_mcp_exits(monkeypatch, temp_journal):
    monkeypatch.setattr(server, "HAS_MCP", False)
    with pytest.raises(SystemExit):
        run_main(monkeypatch, "--journal-root", str(temp_journal))


def test_create_server_requires_mcp(monkeypatch, temp_journal):
    monkeypatch.setattr(server, "HAS_MCP", False)
    with pytest.raises(ImportError):
        server.create_server(JournalConfig(journal_root=temp_journal))


def test_log_level_comes_from_config(monkeypatch, temp_journal):
    (temp_journal / ".journo.toml").write_text("[logging]\nlevel = 'warning'\n")
    assert run_main(monkeypatch, "-j", str(temp_journal), "--init") == ["WARNING"]


def test_configure_logging_filters_by_level(capsys):
    try:
        server.configure_logging("warning")
        logger.info("quiet")
        logger.warning("loud")
        err = capsys.readouterr().err
    finally:
        logger.remove()
        logger.add(sys.__stderr__)
    assert "loud" in err
    assert "quiet" not in err
