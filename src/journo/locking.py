"""Single-writer locking and atomic file replacement for entry files."""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import portalocker


@contextmanager
def file_lock(path: Path, timeout: float = 10.0) -> Generator[None, None, None]:
    """Hold an exclusive lock on ``path`` (a dedicated lock file).

    Args:
        path: Lock file path; created if missing
        timeout: Seconds to wait for the lock

    Raises:
        portalocker.LockException: If the lock cannot be acquired in time
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch(exist_ok=True)

    with portalocker.Lock(path, timeout=timeout):
        yield


def atomic_write_text(path: Path, content: str, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``content`` so readers see old or new, never half.

    Writes a sibling temp file, fsyncs it, then renames it over the target.
    The temp file is removed if anything fails before the rename.
    """
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(tmp_path, "w", encoding=encoding, newline="\n") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if tmp_path.exists():
            tmp_path.unlink()
        raise


def remove_file(path: Path, stop_at: Path) -> bool:
    """Delete ``path`` and prune parent directories left empty, up to ``stop_at``.

    Returns:
        True if a file was removed
    """
    if not path.exists():
        return False
    path.unlink()

    parent = path.parent
    while parent != stop_at and stop_at in parent.parents:
        try:
            parent.rmdir()
        except OSError:
            break
        parent = parent.parent
    return True
