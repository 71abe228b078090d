"""Persistence collaborators for automation definitions and persistent variables.

Automations are stored as a JSON array using the camelCase record shape, with
a ``type`` discriminator on every trigger and action so nested trees load
back unchanged.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import TypeAdapter, ValidationError

from ..core.logger import get_logger
from .exceptions import PersistenceError
from .models import Automation

logger = get_logger("automation.persistence")

AUTOMATION_LIST = TypeAdapter(list[Automation])


def dump_automations(automations: list[Automation]) -> list[dict[str, Any]]:
    """Serialize automations to JSON-compatible dictionaries."""
    return AUTOMATION_LIST.dump_python(automations, mode="json", by_alias=True)


def load_automations(data: Any) -> list[Automation]:
    """Validate JSON-compatible data into automations."""
    try:
        return AUTOMATION_LIST.validate_python(data)
    except ValidationError as exc:
        raise PersistenceError(f"Invalid automation data: {exc}", exc) from exc


@runtime_checkable
class AutomationPersistence(Protocol):
    """Storage used by the registry: load on start, save after every mutation."""

    def load_all(self) -> list[Automation] | None:
        """Stored automations, or None when nothing has ever been saved."""
        ...

    def save_all(self, automations: list[Automation]) -> None: ...

    def load_variables(self) -> dict[str, str]: ...

    def save_variables(self, variables: dict[str, str]) -> None: ...


class InMemoryAutomationStore:
    """Keeps the serialized form in memory; useful for tests and ephemeral runs."""

    def __init__(self, automations: list[Automation] | None = None) -> None:
        self._data: list[dict[str, Any]] | None = (
            dump_automations(automations) if automations is not None else None
        )
        self._variables: dict[str, str] = {}
        self.save_count = 0

    def load_all(self) -> list[Automation] | None:
        if self._data is None:
            return None
        return load_automations(self._data)

    def save_all(self, automations: list[Automation]) -> None:
        self._data = dump_automations(automations)
        self.save_count += 1

    def load_variables(self) -> dict[str, str]:
        return dict(self._variables)

    def save_variables(self, variables: dict[str, str]) -> None:
        self._variables = dict(variables)


class JsonFileAutomationStore:
    """JSON file storage with atomic replace on save."""

    def __init__(
        self,
        path: str | Path,
        variables_path: str | Path | None = None,
    ) -> None:
        self.path = Path(path)
        self.variables_path = Path(variables_path) if variables_path else None
        self._lock = threading.Lock()

    def load_all(self) -> list[Automation] | None:
        if not self.path.exists():
            logger.info("No automation file at %s", self.path)
            return None
        data = self._read_json(self.path)
        automations = load_automations(data)
        logger.info("Loaded %d automations from %s", len(automations), self.path)
        return automations

    def save_all(self, automations: list[Automation]) -> None:
        self._write_json(self.path, dump_automations(automations))
        logger.debug("Saved %d automations to %s", len(automations), self.path)

    def load_variables(self) -> dict[str, str]:
        if not self.variables_path or not self.variables_path.exists():
            return {}
        data = self._read_json(self.variables_path)
        if not isinstance(data, dict):
            raise PersistenceError(f"Variables file must hold an object: {self.variables_path}")
        return {str(key): str(value) for key, value in data.items()}

    def save_variables(self, variables: dict[str, str]) -> None:
        if not self.variables_path:
            return
        self._write_json(self.variables_path, dict(sorted(variables.items())))

    @staticmethod
    def _read_json(path: Path) -> Any:
        try:
            with open(path, encoding="utf-8") as handle:
                return json.load(handle)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Invalid JSON in {path}: {exc}", exc) from exc
        except OSError as exc:
            raise PersistenceError(f"Cannot read {path}: {exc}", exc) from exc

    def _write_json(self, path: Path, data: Any) -> None:
        with self._lock:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as handle:
                        json.dump(data, handle, indent=2, ensure_ascii=False)
                    os.replace(tmp_name, path)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise
            except OSError as exc:
                raise PersistenceError(f"Cannot write {path}: {exc}", exc) from exc


__all__ = [
    "AUTOMATION_LIST",
    "AutomationPersistence",
    "InMemoryAutomationStore",
    "JsonFileAutomationStore",
    "dump_automations",
    "load_automations",
]
