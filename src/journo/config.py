"""Configuration loading for journo.

Supports three tiers:
1. Simple config via .toml or .json - most users
2. Python config via .py - adds write hooks as ``hook_*`` functions
3. Building a JournalConfig directly - tests and embedding
"""

from __future__ import annotations

import importlib.util
import json
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

LAYOUTS = ("files", "database")


@dataclass
class JournalConfig:
    """Configuration for one journal directory."""

    journal_name: str = "journal"
    journal_root: Path = field(default_factory=Path.cwd)

    # Directory structure (relative to journal_root)
    data_dir: str = "data"
    indexes_dir: str = "indexes"
    index_file: str = "index.db"

    # "files": one markdown file per day; "database": text kept in the index db
    layout: str = "files"

    # Single-writer lock
    lock_timeout: float = 10.0

    # Index behaviour
    prune_zero_terms: bool = True

    # Hooks
    enabled_hooks: list[str] = field(default_factory=list)
    disabled_hooks: list[str] = field(default_factory=list)
    concurrent_hooks: bool = False
    hooks: dict[str, Callable] = field(default_factory=dict)  # from Python config

    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.layout not in LAYOUTS:
            raise ValueError(f"Unknown storage layout: {self.layout} (expected one of {LAYOUTS})")

    def get_data_path(self) -> Path:
        return self.journal_root / self.data_dir

    def get_indexes_path(self) -> Path:
        return self.journal_root / self.indexes_dir

    def get_index_path(self) -> Path:
        return self.get_indexes_path() / self.index_file

    def get_lock_path(self) -> Path:
        return self.journal_root / ".journo.lock"

    def get_write_log_path(self) -> Path:
        return self.journal_root / "write_log.txt"


def load_toml_config(path: Path) -> dict[str, Any]:
    """Load configuration from TOML file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_json_config(path: Path) -> dict[str, Any]:
    """Load configuration from JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_python_config(path: Path) -> tuple[dict[str, Any], dict[str, Callable]]:
    """Load configuration from Python file.

    Returns:
        Tuple of (config_dict, hooks_dict)

    Convention:
        - CONFIG dict or config dict for static configuration
        - Functions named hook_* become write hooks, called as
          ``hook_name(context, entry)`` after every committed write
    """
    spec = importlib.util.spec_from_file_location("journal_config", path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load Python config from {path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules["journal_config"] = module
    spec.loader.exec_module(module)

    config_dict = {}
    if hasattr(module, "CONFIG"):
        config_dict = module.CONFIG
    elif hasattr(module, "config"):
        config_dict = module.config

    hooks = {}
    for name in dir(module):
        if name.startswith("hook_"):
            func = getattr(module, name)
            if callable(func):
                hooks[name[5:]] = func

    return config_dict, hooks


def dict_to_config(data: dict[str, Any], journal_root: Path) -> JournalConfig:
    """Convert dictionary to JournalConfig."""
    config = JournalConfig(journal_root=journal_root)

    if "journal" in data:
        journal = data["journal"]
        if "name" in journal:
            config.journal_name = journal["name"]

    if "directories" in data:
        dirs = data["directories"]
        if "data" in dirs:
            config.data_dir = dirs["data"]
        if "indexes" in dirs:
            config.indexes_dir = dirs["indexes"]

    if "storage" in data:
        storage = data["storage"]
        if "layout" in storage:
            if storage["layout"] not in LAYOUTS:
                raise ValueError(f"Unknown storage layout: {storage['layout']} (expected one of {LAYOUTS})")
            config.layout = storage["layout"]
        if "lock_timeout" in storage:
            config.lock_timeout = float(storage["lock_timeout"])

    if "index" in data:
        index = data["index"]
        if "file" in index:
            config.index_file = index["file"]
        if "prune_zero_terms" in index:
            config.prune_zero_terms = bool(index["prune_zero_terms"])

    if "hooks" in data:
        hooks = data["hooks"]
        if "enabled" in hooks:
            config.enabled_hooks = list(hooks["enabled"])
        if "disabled" in hooks:
            config.disabled_hooks = list(hooks["disabled"])
        if "concurrent" in hooks:
            config.concurrent_hooks = bool(hooks["concurrent"])

    if "logging" in data:
        if "level" in data["logging"]:
            config.log_level = str(data["logging"]["level"]).upper()

    return config


def find_config_file(journal_root: Path) -> Optional[Path]:
    """Find configuration file in the journal root.

    Search order:
    1. journal_config.py (most flexible)
    2. journal_config.toml
    3. journal_config.json
    4. .journo.toml
    5. .journo.json
    """
    candidates = [
        "journal_config.py",
        "journal_config.toml",
        "journal_config.json",
        ".journo.toml",
        ".journo.json",
    ]

    for name in candidates:
        path = journal_root / name
        if path.exists():
            return path

    return None


def load_config(journal_root: Path, config_path: Optional[Path] = None) -> JournalConfig:
    """Load journal configuration.

    Args:
        journal_root: Root directory of the journal
        config_path: Optional explicit path to config file

    Returns:
        JournalConfig instance
    """
    if config_path is None:
        config_path = find_config_file(journal_root)

    if config_path is None:
        return JournalConfig(journal_root=journal_root)

    suffix = config_path.suffix.lower()

    if suffix == ".py":
        config_dict, hooks = load_python_config(config_path)
        config = dict_to_config(config_dict, journal_root)
        config.hooks = hooks
        return config

    elif suffix == ".toml":
        return dict_to_config(load_toml_config(config_path), journal_root)

    elif suffix == ".json":
        return dict_to_config(load_json_config(config_path), journal_root)

    else:
        raise ValueError(f"Unsupported config file type: {suffix}")
