"""Custom exceptions for the automation module."""

from __future__ import annotations


class AutomationError(Exception):
    """Base exception for automation-related errors."""

    pass


class DuplicateAutomationError(AutomationError):
    """Raised when adding an automation whose id is already registered."""

    def __init__(self, automation_id: str) -> None:
        self.automation_id = automation_id
        super().__init__(f"Automation already exists: {automation_id}")


class AutomationNotFoundError(AutomationError):
    """Raised when an automation id is not registered."""

    def __init__(self, automation_id: str) -> None:
        self.automation_id = automation_id
        super().__init__(f"Automation not found: {automation_id}")


class PersistenceError(AutomationError):
    """Raised when automation definitions cannot be loaded or saved."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Error message
            original_error: Original exception that caused the failure
        """
        self.original_error = original_error
        super().__init__(message)


__all__ = [
    "AutomationError",
    "DuplicateAutomationError",
    "AutomationNotFoundError",
    "PersistenceError",
]
