"""Platform side-effect and diagnostic sinks.

The automation interpreter only talks to the two protocols below. The
implementations here target a desktop terminal: notifications are rendered
with rich, vibration and sound are logged, and applications are launched as
local executables.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from typing import Protocol, runtime_checkable

from rich.console import Console
from rich.panel import Panel

from .logger import console as default_console
from .logger import get_logger

logger = get_logger("effects")

VIBRATION_DURATIONS_MS = {"short": 100, "long": 500}
DEFAULT_VIBRATION_MS = 50

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


@runtime_checkable
class PlatformEffects(Protocol):
    """Fire-and-forget device effects."""

    def notify(self, title: str, content: str, priority: int = 0) -> None: ...

    def vibrate(self, pattern: str = "default", repeat: int = 0) -> None: ...

    def play_sound(self, sound_id: str = "click", volume: float = 1.0) -> None: ...

    def launch_app(self, package_ref: str | None, action: str | None = None) -> bool: ...


@runtime_checkable
class DiagnosticSink(Protocol):
    def log(self, level: str, tag: str, message: str) -> None: ...


class ConsolePlatformEffects:
    """Terminal rendition of the platform effects."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or default_console

    def notify(self, title: str, content: str, priority: int = 0) -> None:
        style = "bold red" if priority > 0 else "cyan"
        self.console.print(Panel(content, title=title, border_style=style))

    def vibrate(self, pattern: str = "default", repeat: int = 0) -> None:
        duration = VIBRATION_DURATIONS_MS.get(pattern, DEFAULT_VIBRATION_MS)
        logger.info("Vibrate: pattern=%s duration=%sms repeat=%s", pattern, duration, repeat)

    def play_sound(self, sound_id: str = "click", volume: float = 1.0) -> None:
        self.console.bell()
        logger.info("Play sound: %s (volume %.2f)", sound_id, volume)

    def launch_app(self, package_ref: str | None, action: str | None = None) -> bool:
        if not package_ref:
            return False
        executable = shutil.which(package_ref)
        if executable is None:
            logger.warning("Application not found: %s", package_ref)
            return False
        command = [executable] + ([action] if action else [])
        subprocess.Popen(command, stdin=subprocess.DEVNULL, start_new_session=True)
        logger.info("Launched application: %s", " ".join(command))
        return True


class LoggingDiagnosticSink:
    """Routes diagnostic messages to ``udp_trigger.automation.<tag>`` loggers."""

    def log(self, level: str, tag: str, message: str) -> None:
        level_value = LOG_LEVELS.get(level.strip().upper(), logging.INFO)
        get_logger(f"automation.{tag.lower()}").log(level_value, message)


__all__ = [
    "PlatformEffects",
    "DiagnosticSink",
    "ConsolePlatformEffects",
    "LoggingDiagnosticSink",
    "VIBRATION_DURATIONS_MS",
]
