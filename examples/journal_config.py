"""journo configuration - Python example

Copy to your journal root as journal_config.py to add write hooks.

Convention:
- CONFIG dict for static configuration (same structure as TOML)
- Functions named hook_* become write hooks, called as
  hook_<name>(context, entry) after every committed write
"""

import shutil
from pathlib import Path

# =============================================================================
# Static Configuration (same structure as TOML)
# =============================================================================

CONFIG = {
    "journal": {
        "name": "daily",
    },
    "directories": {
        "data": "data",
        "indexes": "indexes",
    },
    "storage": {
        "layout": "files",
        "lock_timeout": 5,
    },
    "index": {
        "prune_zero_terms": True,
    },
    "hooks": {
        "enabled": ["write-log"],
        "concurrent": False,
    },
    "logging": {
        "level": "info",
    },
}

BACKUP_DIR = Path.home() / "journal-backups"


# =============================================================================
# Hooks - called after each committed write
# =============================================================================

def hook_backup(context, entry):
    """Mirror each written entry file into BACKUP_DIR (files layout only).

    Args:
        context: WriteContext (date, entry_location, index_location, content)
        entry: The committed Entry; empty when the day was cleared
    """
    source = Path(context.entry_location)
    target = BACKUP_DIR / f"{context.date.isoformat()}.md"
    if entry.is_empty:
        target.unlink(missing_ok=True)
        return
    if source.exists():
        BACKUP_DIR.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)


def hook_open_task_reminder(context, entry):
    """Print how many tasks are still open for the day being written."""
    open_tasks = [b for b in entry.bullets if b.is_task and b.task_state.value == "pending"]
    if open_tasks:
        print(f"{context.date}: {len(open_tasks)} open task(s)")
