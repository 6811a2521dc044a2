"""Post-commit write hooks.

Hooks observe writes that have already been committed. A hook that raises
is logged and reported back as a ``HookFailure``; it never undoes the write,
never stops the other hooks, and never blocks later writes.

Usage::

    class Backup(WriteHook):
        def name(self) -> str:
            return "backup"

        def on_entry_written(self, context, entry) -> None:
            shutil.copy(context.entry_location, BACKUP_DIR)

    registry = HookRegistry()
    registry.register(Backup())
    dispatcher = HookDispatcher(registry)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from loguru import logger

from .models import Entry, WriteContext, format_date


class WriteHook(ABC):
    """Capability implemented by write observers."""

    @abstractmethod
    def on_entry_written(self, context: WriteContext, entry: Entry) -> None:
        """Called once per committed write.

        ``entry`` is empty when the write removed the date's entry. Raise to
        report a failure.
        """

    @abstractmethod
    def name(self) -> str:
        """Human-readable hook name (unique within a registry)."""

    def enabled_by_default(self) -> bool:
        return True


class FunctionHook(WriteHook):
    """Adapts a plain ``hook_<name>(context, entry)`` function from a Python config."""

    def __init__(self, hook_name: str, func: Callable[[WriteContext, Entry], object], enabled: bool = True):
        self._name = hook_name
        self._func = func
        self._enabled = enabled

    def on_entry_written(self, context: WriteContext, entry: Entry) -> None:
        self._func(context, entry)

    def name(self) -> str:
        return self._name

    def enabled_by_default(self) -> bool:
        return self._enabled


class WriteLogHook(WriteHook):
    """Appends one line per committed write to ``write_log.txt``."""

    def __init__(self, log_path: Path):
        self.log_path = log_path

    def on_entry_written(self, context: WriteContext, entry: Entry) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        action = "removed" if entry.is_empty else f"written ({len(entry)} bullets)"
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(
                f"[{now}] Entry {action} for {format_date(context.date)}"
                f" - Location: {context.entry_location}"
                f" - Content length: {len(context.content)} characters\n"
            )

    def name(self) -> str:
        return "write-log"

    def enabled_by_default(self) -> bool:
        return False


@dataclass(frozen=True)
class HookFailure:
    """A hook that raised while observing a write."""
    hook_name: str
    error: BaseException

    def __str__(self) -> str:
        return f"{self.hook_name}: {type(self.error).__name__}: {self.error}"


def hook_name(hook: WriteHook) -> str:
    """The hook's name, or its class name if name() itself raises."""
    try:
        return hook.name()
    except Exception:
        return type(hook).__name__


class HookRegistry:
    """Ordered collection of write hooks."""

    def __init__(self, hooks: Iterable[WriteHook] = ()):
        self._hooks: list[WriteHook] = []
        for hook in hooks:
            self.register(hook)

    def register(self, hook: WriteHook) -> None:
        """Add a hook; it runs after every hook registered before it."""
        if hook.name() in self.names():
            raise ValueError(f"Hook already registered: {hook.name()}")
        self._hooks.append(hook)

    def unregister(self, name: str) -> bool:
        for i, hook in enumerate(self._hooks):
            if hook.name() == name:
                del self._hooks[i]
                return True
        return False

    def names(self) -> list[str]:
        return [hook.name() for hook in self._hooks]

    def __iter__(self) -> Iterator[WriteHook]:
        return iter(list(self._hooks))

    def __len__(self) -> int:
        return len(self._hooks)


class HookDispatcher:
    """Runs the enabled hooks of a registry after each committed write.

    A hook is enabled if it is enabled by default and not named in
    ``disabled``, or if it is named in ``enabled``.
    """

    def __init__(
        self,
        registry: HookRegistry,
        enabled: Iterable[str] = (),
        disabled: Iterable[str] = (),
        concurrent: bool = False,
        max_workers: int = 4,
    ):
        self.registry = registry
        self.enabled = set(enabled)
        self.disabled = set(disabled)
        self.concurrent = concurrent
        self.max_workers = max_workers

    def is_enabled(self, hook: WriteHook) -> bool:
        name = hook.name()
        if name in self.enabled:
            return True
        return bool(hook.enabled_by_default()) and name not in self.disabled

    def active_hooks(self) -> list[WriteHook]:
        return [hook for hook in self.registry if self._check(hook) is True]

    def notify(self, context: WriteContext, entry: Entry) -> list[HookFailure]:
        """Invoke every enabled hook once.

        A hook whose name or enablement cannot be determined is reported as
        failed and skipped.

        Returns:
            Failures, in registration order (empty if every hook succeeded)
        """
        checks = [(hook, self._check(hook)) for hook in self.registry]
        hooks = [hook for hook, outcome in checks if outcome is True]

        if self.concurrent and len(hooks) > 1:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(hooks))) as pool:
                results = list(pool.map(lambda h: self._run(h, context, entry), hooks))
        else:
            results = [self._run(hook, context, entry) for hook in hooks]
        ran = dict(zip(map(id, hooks), results))

        failures = []
        for hook, outcome in checks:
            failure = ran[id(hook)] if outcome is True else outcome
            if isinstance(failure, HookFailure):
                failures.append(failure)
        return failures

    def _check(self, hook: WriteHook) -> bool | HookFailure:
        try:
            return self.is_enabled(hook)
        except Exception as exc:
            name = hook_name(hook)
            logger.warning(f"Write hook '{name}' could not be checked: {exc}")
            return HookFailure(hook_name=name, error=exc)

    def _run(self, hook: WriteHook, context: WriteContext, entry: Entry) -> Optional[HookFailure]:
        try:
            hook.on_entry_written(context, entry)
        except Exception as exc:
            name = hook_name(hook)
            logger.warning(f"Write hook '{name}' failed for {format_date(context.date)}: {exc}")
            return HookFailure(hook_name=name, error=exc)
        return None
