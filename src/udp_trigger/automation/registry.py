"""In-memory automation registry backed by a persistence collaborator."""

from __future__ import annotations

import threading
from collections.abc import Callable

from ..core.logger import get_logger
from .defaults import create_default_automations
from .exceptions import AutomationNotFoundError, DuplicateAutomationError, PersistenceError
from .models import Automation, TriggerKind, now_ms
from .persistence import AutomationPersistence, InMemoryAutomationStore

logger = get_logger("automation.registry")


class AutomationRegistry:
    """CRUD over automation definitions.

    Every mutation is saved through the persistence collaborator. Ids are
    unique: adding a colliding id raises :class:`DuplicateAutomationError` and
    leaves the registry unchanged.
    """

    def __init__(
        self,
        persistence: AutomationPersistence | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._persistence = persistence if persistence is not None else InMemoryAutomationStore()
        self._clock = clock
        self._automations: list[Automation] = []
        self._change_listeners: list[Callable[[], None]] = []
        self._lock = threading.RLock()

    @property
    def persistence(self) -> AutomationPersistence:
        return self._persistence

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def load(self, create_defaults: bool = True) -> list[Automation]:
        """Load stored automations, seeding the defaults when nothing is stored."""
        try:
            stored = self._persistence.load_all()
        except PersistenceError as exc:
            logger.error("Failed to load automations, using defaults: %s", exc)
            stored = None

        if stored is None:
            automations = create_default_automations() if create_defaults else []
            with self._lock:
                self._automations = automations
                self._save()
            logger.info("Initialised registry with %d default automations", len(automations))
        else:
            unique: list[Automation] = []
            seen: set[str] = set()
            for automation in stored:
                if automation.id in seen:
                    logger.warning("Skipping duplicate stored automation id: %s", automation.id)
                    continue
                seen.add(automation.id)
                unique.append(automation)
            with self._lock:
                self._automations = unique

        self._notify_change()
        return self.get_all()

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------
    def add(self, automation: Automation) -> Automation:
        with self._lock:
            if self._find_index(automation.id) >= 0:
                raise DuplicateAutomationError(automation.id)
            self._automations.append(automation)
            self._save()
        logger.info("Added automation: %s", automation.id)
        self._notify_change()
        return automation

    def update(self, automation: Automation, strict: bool = False) -> bool:
        """Replace the stored automation with the same id, refreshing ``updated_at``."""
        with self._lock:
            index = self._find_index(automation.id)
            if index < 0:
                if strict:
                    raise AutomationNotFoundError(automation.id)
                return False
            self._automations[index] = automation.model_copy(
                update={"updated_at": self._clock()}
            )
            self._save()
        logger.info("Updated automation: %s", automation.id)
        self._notify_change()
        return True

    def delete(self, automation_id: str, strict: bool = False) -> bool:
        with self._lock:
            index = self._find_index(automation_id)
            if index < 0:
                if strict:
                    raise AutomationNotFoundError(automation_id)
                return False
            del self._automations[index]
            self._save()
        logger.info("Deleted automation: %s", automation_id)
        self._notify_change()
        return True

    def get_by_id(self, automation_id: str) -> Automation | None:
        with self._lock:
            index = self._find_index(automation_id)
            return self._automations[index] if index >= 0 else None

    def get_all(self) -> list[Automation]:
        with self._lock:
            return list(self._automations)

    def get_by_trigger_kind(self, kind: TriggerKind | str) -> list[Automation]:
        """Automations whose top-level trigger is of ``kind``."""
        kind_value = TriggerKind(kind).value
        with self._lock:
            return [a for a in self._automations if a.trigger.type == kind_value]

    def toggle_enabled(
        self, automation_id: str, enabled: bool | None = None, strict: bool = False
    ) -> bool:
        """Set ``enabled`` (or flip it when None) through the public update path."""
        automation = self.get_by_id(automation_id)
        if automation is None:
            if strict:
                raise AutomationNotFoundError(automation_id)
            return False
        target = (not automation.enabled) if enabled is None else enabled
        return self.update(automation.model_copy(update={"enabled": target}), strict=strict)

    # ------------------------------------------------------------------
    # Interpreter bookkeeping
    # ------------------------------------------------------------------
    def record_execution(self, automation: Automation, executed_at: int) -> bool:
        """Stamp a finished run on ``automation`` and on its registered copy.

        Unlike :meth:`update`, the timestamps come from the run itself. When
        the id was deleted mid-run this only touches the passed object.
        """
        automation.last_executed = executed_at
        automation.execution_count += 1
        automation.updated_at = executed_at

        with self._lock:
            index = self._find_index(automation.id)
            if index < 0:
                logger.debug("Automation %s no longer registered; skipping update", automation.id)
                return False
            stored = self._automations[index]
            if stored is not automation:
                stored.last_executed = executed_at
                stored.execution_count += 1
                stored.updated_at = executed_at
            self._save()
        return True

    def save_variables(self, variables: dict[str, str]) -> None:
        try:
            self._persistence.save_variables(variables)
        except PersistenceError as exc:
            logger.error("Failed to save persistent variables: %s", exc)

    def load_variables(self) -> dict[str, str]:
        try:
            return self._persistence.load_variables()
        except PersistenceError as exc:
            logger.error("Failed to load persistent variables: %s", exc)
            return {}

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------
    def add_change_listener(self, listener: Callable[[], None]) -> None:
        self._change_listeners.append(listener)

    def _notify_change(self) -> None:
        for listener in list(self._change_listeners):
            try:
                listener()
            except Exception as exc:
                logger.error("Registry change listener failed: %s", exc, exc_info=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _find_index(self, automation_id: str) -> int:
        for index, automation in enumerate(self._automations):
            if automation.id == automation_id:
                return index
        return -1

    def _save(self) -> None:
        try:
            self._persistence.save_all(list(self._automations))
        except PersistenceError as exc:
            logger.error("Failed to save automations: %s", exc)

    def __len__(self) -> int:
        with self._lock:
            return len(self._automations)

    def __contains__(self, automation_id: object) -> bool:
        with self._lock:
            return any(a.id == automation_id for a in self._automations)


__all__ = ["AutomationRegistry"]
