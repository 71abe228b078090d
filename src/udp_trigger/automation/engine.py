"""Automation engine.

This module provides the AutomationEngine class, the single context object
that owns:
- The automation registry and its persistence
- The shared variable store and the execution log
- Trigger matching for inbound events
- Concurrent execution of matched automations as tracked asyncio tasks
- The scheduler bridge and the optional UDP listener
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from ..core.config import EngineConfig
from ..core.effects import ConsolePlatformEffects, DiagnosticSink, PlatformEffects
from ..core.http import HttpTransport, HttpxTransport
from ..core.logger import get_logger
from ..core.transport import AsyncioPacketTransport, PacketTransport, UdpPacketListener
from .actions import ActionInterpreter, current_run_depth
from .history import ExecutionHistory
from .models import Automation, ExecutionLog, ExecutionResult, now_ms
from .persistence import InMemoryAutomationStore, JsonFileAutomationStore
from .registry import AutomationRegistry
from .scheduling import AutomationScheduler
from .triggers import (
    ButtonEvent,
    GestureEvent,
    IntervalEvent,
    NetworkStateEvent,
    PacketEvent,
    ScheduleEvent,
    TriggerEvent,
    TriggerMatcher,
    VariableChangedEvent,
)
from .variables import VariableStore

logger = get_logger("automation")


class AutomationEngine:
    """Routes events to automations and runs them concurrently."""

    def __init__(
        self,
        registry: AutomationRegistry | None = None,
        variables: VariableStore | None = None,
        history: ExecutionHistory | None = None,
        packet_transport: PacketTransport | None = None,
        http_transport: HttpTransport | None = None,
        effects: PlatformEffects | None = None,
        diagnostics: DiagnosticSink | None = None,
        config: EngineConfig | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.config = config or EngineConfig()
        self.registry = registry if registry is not None else AutomationRegistry(clock=clock)
        self.variables = variables if variables is not None else VariableStore()
        self.history = history if history is not None else ExecutionHistory()
        self.matcher = TriggerMatcher()
        self.interpreter = ActionInterpreter(
            registry=self.registry,
            variables=self.variables,
            history=self.history,
            packet_transport=packet_transport,
            http_transport=http_transport,
            effects=effects,
            diagnostics=diagnostics,
            config=self.config.engine,
            clock=clock,
        )
        self.scheduler = AutomationScheduler(self.registry, self.dispatch, self.config.scheduler)
        self.listener: UdpPacketListener | None = None
        self._tasks: set[asyncio.Task[ExecutionResult]] = set()

        if self.config.engine.emit_variable_events:
            self.variables.add_listener(self._on_variable_written)

    @classmethod
    def from_config(cls, config: EngineConfig) -> AutomationEngine:
        """Build an engine wired to the real transports and storage."""
        storage = config.storage
        if storage.automations_path:
            persistence = JsonFileAutomationStore(storage.automations_path, storage.variables_path)
        else:
            persistence = InMemoryAutomationStore()
        return cls(
            registry=AutomationRegistry(persistence),
            packet_transport=AsyncioPacketTransport(config.transport),
            http_transport=HttpxTransport(config.http),
            effects=ConsolePlatformEffects(),
            config=config,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def load(self) -> list[Automation]:
        """Load automations and restore persisted variables."""
        automations = self.registry.load(create_defaults=self.config.storage.create_defaults)
        self.variables.restore(self.registry.load_variables())
        return automations

    async def start(self, listen: bool | None = None) -> None:
        """Load state, start the scheduler and, if enabled, the UDP listener.

        Args:
            listen: Override ``transport.listen_enabled``.
        """
        self.load()
        self.scheduler.start()
        if listen if listen is not None else self.config.transport.listen_enabled:
            self.listener = UdpPacketListener.from_config(self.on_packet, self.config.transport)
            await self.listener.start()
        logger.info("Automation engine started with %d automations", len(self.registry))

    async def shutdown(self) -> None:
        """Stop event sources and cancel every in-flight automation run."""
        if self.listener is not None:
            await self.listener.stop()
            self.listener = None
        self.scheduler.shutdown()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        http_transport = self.interpreter.http_transport
        aclose = getattr(http_transport, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.info("Automation engine shut down")

    # ------------------------------------------------------------------
    # Event delivery
    # ------------------------------------------------------------------
    def dispatch(self, event: TriggerEvent) -> list[asyncio.Task[ExecutionResult]]:
        """Start every automation matching ``event``.

        The event's variables are published only when something matched.
        Each matched automation runs in its own task, started in priority
        order. Must be called from the event loop thread.
        """
        matched = self.matcher.match(event, self.registry.get_all())
        if not matched:
            return []
        for name, value in event.variables().items():
            self.variables.set(name, value)
        return [self._spawn(automation) for automation in matched]

    async def handle_event(self, event: TriggerEvent) -> list[ExecutionResult]:
        """Dispatch ``event`` and wait for every matched automation to finish."""
        tasks = self.dispatch(event)
        if not tasks:
            return []
        return list(await asyncio.gather(*tasks))

    def on_packet(self, source_address: str, source_port: int, content: str) -> None:
        """Fire-and-forget packet delivery used by the UDP listener."""
        self.dispatch(
            PacketEvent(source_address=source_address, source_port=source_port, content=content)
        )

    async def on_packet_received(
        self, source_address: str, source_port: int, content: str
    ) -> list[ExecutionResult]:
        return await self.handle_event(
            PacketEvent(source_address=source_address, source_port=source_port, content=content)
        )

    async def on_button_pressed(self, button_id: str = "main") -> list[ExecutionResult]:
        return await self.handle_event(ButtonEvent(button_id=button_id))

    async def on_gesture(self, gesture_type: str) -> list[ExecutionResult]:
        return await self.handle_event(GestureEvent(gesture_type=gesture_type))

    async def on_network_state(
        self, connected: bool, ssid: str | None = None
    ) -> list[ExecutionResult]:
        return await self.handle_event(NetworkStateEvent(connected=connected, ssid=ssid))

    async def on_schedule(
        self, cron_expression: str, timezone: str = "UTC"
    ) -> list[ExecutionResult]:
        return await self.handle_event(
            ScheduleEvent(cron_expression=cron_expression, timezone=timezone)
        )

    async def on_interval(self, interval_ms: int) -> list[ExecutionResult]:
        return await self.handle_event(IntervalEvent(interval_ms=interval_ms))

    async def on_variable_changed(
        self, name: str, value: str, previous: str | None = None
    ) -> list[ExecutionResult]:
        return await self.handle_event(
            VariableChangedEvent(variable_name=name, value=value, previous=previous)
        )

    async def execute_automation(self, automation: Automation | str) -> ExecutionResult:
        """Run one automation directly, bypassing trigger matching.

        Args:
            automation: The automation or its id.

        Returns:
            ExecutionResult from the interpreter, or an unsuccessful result
            when the id is unknown.
        """
        if isinstance(automation, str):
            target = self.registry.get_by_id(automation)
            if target is None:
                return ExecutionResult(success=False, message=f"Automation not found: {automation}")
            automation = target
        return await self.interpreter.execute_automation(automation)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    @property
    def active_automations(self) -> frozenset[str]:
        return self.interpreter.active_automations

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def get_execution_logs(self, automation_id: str | None = None) -> list[ExecutionLog]:
        return self.history.entries(automation_id)

    def clear_execution_logs(self) -> None:
        self.history.clear()

    def get_variables(self) -> dict[str, str]:
        return self.variables.get_all()

    def get_variable(self, name: str) -> str | None:
        return self.variables.get(name)

    def clear_variables(self) -> None:
        self.variables.clear()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _spawn(self, automation: Automation) -> asyncio.Task[ExecutionResult]:
        task = asyncio.create_task(
            self.interpreter.execute_automation(automation),
            name=f"automation:{automation.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _on_variable_written(self, name: str, previous: str | None, value: str) -> None:
        # Bookkeeping variables (_last_error, ...) never produce events
        if name.startswith("_"):
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Variable %s changed outside the event loop; no event dispatched", name)
            return
        if current_run_depth() >= self.config.engine.max_run_depth:
            logger.warning("Variable event for %s dropped: run depth limit reached", name)
            return
        self.dispatch(VariableChangedEvent(variable_name=name, value=value, previous=previous))


__all__ = ["AutomationEngine"]
