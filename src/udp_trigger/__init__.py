"""UDP Trigger automation engine.

Event-driven automations: inbound UDP packets, button presses, gestures,
schedules and network changes fire user-defined action lists (send UDP/TCP,
HTTP requests, variables, notifications, nested automations, ...).

Example:
    ```python
    import asyncio

    from udp_trigger import AutomationEngine, EngineConfig

    async def main() -> None:
        engine = AutomationEngine.from_config(EngineConfig.load("config.yaml"))
        await engine.start()
        results = await engine.on_packet_received("192.168.1.20", 4000, "PING")
        await engine.shutdown()

    asyncio.run(main())
    ```
"""

from importlib.metadata import PackageNotFoundError, version

from .automation import (
    Automation,
    AutomationEngine,
    AutomationRegistry,
    ExecutionResult,
    VariableStore,
)
from .core import EngineConfig, get_logger, setup_logging

__all__ = [
    "__version__",
    "AutomationEngine",
    "Automation",
    "AutomationRegistry",
    "ExecutionResult",
    "VariableStore",
    "EngineConfig",
    "get_logger",
    "setup_logging",
]

try:  # pragma: no cover - best-effort during development
    __version__ = version("udp-trigger")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"
