"""Runtime variable store shared by every running automation.

Values are plain strings. Numeric and boolean meaning is decided by whoever
reads them (the condition evaluator, ``increment_variable``).
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable

from ..core.logger import get_logger

logger = get_logger("automation.variables")

# ``{{name}}`` plus the legacy ``{{$name}}`` spelling
PLACEHOLDER_PATTERN = re.compile(r"\{\{\$?([^{}]+?)\}\}")

# Optional sign and ASCII digits only
INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")

VariableListener = Callable[[str, str | None, str], None]


class VariableStore:
    """Thread-safe string map with ``{{name}}`` template substitution."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})
        self._persistent: set[str] = set()
        self._listeners: list[VariableListener] = []
        self._lock = threading.RLock()

    def set(self, name: str, value: str, persist: bool = False) -> None:
        """Set ``name`` to ``value``.

        ``persist`` marks the name for the persistence layer; the store itself
        keeps every value for the lifetime of the process either way.
        """
        value = str(value)
        with self._lock:
            previous = self._values.get(name)
            self._values[name] = value
            if persist:
                self._persistent.add(name)
            listeners = list(self._listeners)

        if previous != value:
            self._notify(listeners, name, previous, value)

    def get(self, name: str) -> str | None:
        with self._lock:
            return self._values.get(name)

    def get_all(self) -> dict[str, str]:
        """Snapshot copy of every variable."""
        with self._lock:
            return dict(self._values)

    def increment(self, name: str, by: int = 1) -> int:
        """Atomically add ``by`` to an integer variable and return the new value.

        Absent or non-integer values count as 0.
        """
        with self._lock:
            previous = self._values.get(name)
            if previous is not None and INTEGER_PATTERN.fullmatch(previous):
                current = int(previous)
            else:
                current = 0
            updated = current + by
            self._values[name] = str(updated)
            listeners = list(self._listeners)

        if previous != str(updated):
            self._notify(listeners, name, previous, str(updated))
        return updated

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
            self._persistent.clear()

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    # ------------------------------------------------------------------
    # Persistence hints
    # ------------------------------------------------------------------
    def persistent_items(self) -> dict[str, str]:
        """Variables that were written with ``persist=True``."""
        with self._lock:
            return {k: self._values[k] for k in self._persistent if k in self._values}

    def restore(self, values: dict[str, str]) -> None:
        """Load previously persisted variables without notifying listeners."""
        with self._lock:
            for name, value in values.items():
                self._values[name] = str(value)
                self._persistent.add(name)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_listener(self, listener: VariableListener) -> None:
        """Call ``listener(name, old_value, new_value)`` after every changing write."""
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: VariableListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @staticmethod
    def _notify(
        listeners: list[VariableListener], name: str, previous: str | None, value: str
    ) -> None:
        for listener in listeners:
            try:
                listener(name, previous, value)
            except Exception as exc:
                logger.error("Variable listener failed for %s: %s", name, exc, exc_info=True)

    # ------------------------------------------------------------------
    # Templating
    # ------------------------------------------------------------------
    def substitute(self, text: str) -> str:
        """Replace ``{{name}}`` and ``{{$name}}`` with current values.

        Each placeholder is looked up by its exact name in one pass, so names
        that prefix one another never collide and substituted values are not
        expanded again. Unknown placeholders are left verbatim.
        """
        if not text or "{{" not in text:
            return text
        values = self.get_all()

        def replace(match: re.Match[str]) -> str:
            value = values.get(match.group(1))
            return match.group(0) if value is None else value

        return PLACEHOLDER_PATTERN.sub(replace, text)


__all__ = ["PLACEHOLDER_PATTERN", "VariableListener", "VariableStore"]
