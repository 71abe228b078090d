"""Action interpreter.

Runs an automation's action list sequentially against the shared variable
store and the injected collaborators. Individual action failures are counted
and recorded in the ``_last_*`` bookkeeping variables; they never abort the
rest of the list.
"""

from __future__ import annotations

import asyncio
import threading
from collections import Counter
from collections.abc import Awaitable, Callable
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

from ..core.config import ExecutionConfig
from ..core.effects import DiagnosticSink, LoggingDiagnosticSink, PlatformEffects
from ..core.http import HttpTransport
from ..core.logger import get_logger
from ..core.transport import PacketTransport
from .conditions import evaluate
from .history import ExecutionHistory
from .models import (
    ACTION_MODELS,
    Automation,
    CommentAction,
    ConditionalAction,
    DelayAction,
    ExecutionLog,
    ExecutionResult,
    ExecutionStatus,
    HttpRequestAction,
    IncrementVariableAction,
    LaunchAppAction,
    LogAction,
    LoopAction,
    PlaySoundAction,
    RunAutomationAction,
    SendTcpAction,
    SendUdpAction,
    SetVariableAction,
    ShowNotificationAction,
    VibrateAction,
    WaitForPacketAction,
    now_ms,
)
from .registry import AutomationRegistry
from .variables import VariableStore

logger = get_logger("automation.actions")

# Hard ceiling for condition-driven loops
MAX_LOOP_ITERATIONS = 1000

DIAGNOSTIC_TAG = "Automation"

# Nesting depth of the automation currently executing in this task
_run_depth: ContextVar[int] = ContextVar("udp_trigger_run_depth", default=0)


def current_run_depth() -> int:
    """How many automation runs enclose the calling task."""
    return _run_depth.get()


def decode_hex(text: str) -> bytes:
    """Decode a hex payload such as ``"0x48 0x69"`` or ``"4869"``.

    Spaces and ``0x`` prefixes are ignored. Odd-length or non-hex input
    yields an empty payload.
    """
    cleaned = text.replace(" ", "").replace("0x", "").replace("0X", "")
    if len(cleaned) % 2:
        return b""
    try:
        return bytes.fromhex(cleaned)
    except ValueError:
        return b""


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


@dataclass
class ActionTally:
    """Success/failure counters for one action list."""

    success_count: int = 0
    fail_count: int = 0

    @property
    def total(self) -> int:
        return self.success_count + self.fail_count

    def succeed(self) -> None:
        self.success_count += 1

    def fail(self) -> None:
        self.fail_count += 1

    def absorb(self, other: ActionTally) -> None:
        self.success_count += other.success_count
        self.fail_count += other.fail_count


ActionHandler = Callable[[Any, ActionTally], Awaitable[None]]


class ActionInterpreter:
    """Executes automations and their action trees."""

    def __init__(
        self,
        registry: AutomationRegistry,
        variables: VariableStore,
        history: ExecutionHistory,
        packet_transport: PacketTransport | None = None,
        http_transport: HttpTransport | None = None,
        effects: PlatformEffects | None = None,
        diagnostics: DiagnosticSink | None = None,
        config: ExecutionConfig | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.registry = registry
        self.variables = variables
        self.history = history
        self.packet_transport = packet_transport
        self.http_transport = http_transport
        self.effects = effects
        self.diagnostics = diagnostics or LoggingDiagnosticSink()
        self.config = config or ExecutionConfig()
        self._clock = clock
        self._active: Counter[str] = Counter()
        self._active_lock = threading.Lock()

        self._handlers: dict[type, ActionHandler] = {
            SendUdpAction: self._send_udp,
            SendTcpAction: self._send_tcp,
            HttpRequestAction: self._http_request,
            SetVariableAction: self._set_variable,
            IncrementVariableAction: self._increment_variable,
            DelayAction: self._delay,
            WaitForPacketAction: self._wait_for_packet,
            ShowNotificationAction: self._show_notification,
            VibrateAction: self._vibrate,
            PlaySoundAction: self._play_sound,
            LaunchAppAction: self._launch_app,
            RunAutomationAction: self._run_automation,
            ConditionalAction: self._conditional,
            LoopAction: self._loop,
            LogAction: self._log,
            CommentAction: self._comment,
        }
        missing = set(ACTION_MODELS.values()) - set(self._handlers)
        if missing:
            names = ", ".join(sorted(model.__name__ for model in missing))
            raise TypeError(f"ActionInterpreter has no handler for: {names}")

    @property
    def active_automations(self) -> frozenset[str]:
        """Ids of automations with at least one run in flight."""
        with self._active_lock:
            return frozenset(self._active)

    # ------------------------------------------------------------------
    # Automation level
    # ------------------------------------------------------------------
    async def execute_automation(self, automation: Automation) -> ExecutionResult:
        """Run ``automation`` if it is enabled and outside its cooldown.

        Args:
            automation: The automation to run. Its ``last_executed`` and
                ``execution_count`` are updated in place on completion.

        Returns:
            ExecutionResult describing the outcome. A run whose actions all
            succeeded reports ``success=True``.
        """
        if not automation.enabled:
            return ExecutionResult(success=False, message="Automation is disabled")

        started = self._clock()
        if automation.cooldown_ms > 0 and started - automation.last_executed < automation.cooldown_ms:
            logger.debug("Automation %s skipped: cooldown active", automation.id)
            return ExecutionResult(success=False, message="Cooldown active")

        logger.info("Executing automation: %s (%s)", automation.name, automation.id)
        depth_token = _run_depth.set(_run_depth.get() + 1)
        self._mark_active(automation.id)
        try:
            try:
                tally = await self._execute_with_timeout(automation)
            except asyncio.CancelledError:
                self._record(automation, ExecutionStatus.CANCELLED, "Cancelled", 0, started)
                logger.info("Automation %s cancelled", automation.id)
                raise
            except TimeoutError:
                message = f"Timed out after {self.config.execution_timeout_seconds}s"
                self._record(automation, ExecutionStatus.TIMEOUT, message, 0, started)
                logger.warning("Automation %s: %s", automation.id, message)
                return ExecutionResult(success=False, message=message)
            except Exception as exc:
                message = f"Exception: {_describe(exc)}"
                self._record(automation, ExecutionStatus.FAILED, message, 0, started)
                logger.error("Automation %s failed: %s", automation.id, exc, exc_info=True)
                return ExecutionResult(success=False, message=message)

            await self._off_loop(self.registry.record_execution, automation, self._clock())
            result = ExecutionResult(
                success=tally.fail_count == 0,
                message=f"Executed: {tally.success_count} success, {tally.fail_count} failed",
                actions_executed=tally.total,
            )
            status = ExecutionStatus.SUCCESS if result.success else ExecutionStatus.FAILED
            self._record(automation, status, result.message, result.actions_executed, started)
            logger.info("Automation %s finished: %s", automation.id, result.message)
            return result
        finally:
            self._release_active(automation.id)
            _run_depth.reset(depth_token)

    async def _execute_with_timeout(self, automation: Automation) -> ActionTally:
        timeout = self.config.execution_timeout_seconds
        if timeout is None:
            return await self.execute_actions(automation.actions)
        async with asyncio.timeout(timeout):
            return await self.execute_actions(automation.actions)

    async def execute_actions(self, actions: list[Any]) -> ActionTally:
        """Run ``actions`` in order and return their combined tally."""
        tally = ActionTally()
        for action in actions:
            handler = self._handlers.get(type(action))
            if handler is None:
                raise TypeError(f"Unsupported action type: {type(action).__name__}")
            await handler(action, tally)
        return tally

    # ------------------------------------------------------------------
    # Network actions
    # ------------------------------------------------------------------
    async def _send_udp(self, action: SendUdpAction, tally: ActionTally) -> None:
        host = self.variables.substitute(action.host)
        content = self.variables.substitute(action.content)
        data = decode_hex(content) if action.hex_mode else content.encode("utf-8")
        if self.packet_transport is None:
            self._fail(tally, "No packet transport configured")
            return
        try:
            await self.packet_transport.send_udp(host, action.port, data)
        except Exception as exc:
            logger.warning("send_udp to %s:%s failed: %s", host, action.port, exc)
            self._fail(tally, _describe(exc))
            return
        self.variables.set("_last_action", "send_udp")
        self.variables.set("_last_udp_host", host)
        self.variables.set("_last_udp_port", str(action.port))
        tally.succeed()

    async def _send_tcp(self, action: SendTcpAction, tally: ActionTally) -> None:
        host = self.variables.substitute(action.host)
        content = self.variables.substitute(action.content)
        if self.packet_transport is None:
            self._fail(tally, "No packet transport configured")
            return
        try:
            await self.packet_transport.send_tcp(host, action.port, content.encode("utf-8"))
        except Exception as exc:
            logger.warning("send_tcp to %s:%s failed: %s", host, action.port, exc)
            self._fail(tally, _describe(exc))
            return
        self.variables.set("_last_action", "send_tcp")
        self.variables.set("_last_tcp_host", host)
        self.variables.set("_last_tcp_port", str(action.port))
        tally.succeed()

    async def _http_request(self, action: HttpRequestAction, tally: ActionTally) -> None:
        if self.http_transport is None:
            self._fail(tally, "No HTTP transport configured")
            return
        url = self.variables.substitute(action.url)
        body = self.variables.substitute(action.body) if action.body is not None else None
        headers = {key: self.variables.substitute(value) for key, value in action.headers.items()}
        try:
            response = await self.http_transport.request(url, action.method, headers, body)
        except Exception as exc:
            logger.warning("HTTP %s %s failed: %s", action.method, url, exc)
            self._fail(tally, _describe(exc))
            return

        self.variables.set("_last_http_code", str(response.status_code))
        self.variables.set("_last_http_response", response.body_snippet)
        if response.status_code >= 400:
            self._fail(tally, f"HTTP {response.status_code}")
            return
        self.variables.set("_last_action", "http_request")
        tally.succeed()

    async def _wait_for_packet(self, action: WaitForPacketAction, tally: ActionTally) -> None:
        # Packets are not routed to waiting actions; the wait always times out
        await asyncio.sleep(action.timeout_ms / 1000)
        self.variables.set("_wait_result", "timeout")
        tally.fail()

    # ------------------------------------------------------------------
    # Variable and timing actions
    # ------------------------------------------------------------------
    async def _set_variable(self, action: SetVariableAction, tally: ActionTally) -> None:
        self.variables.set(action.name, self.variables.substitute(action.value), action.persist)
        if action.persist:
            await self._off_loop(self.registry.save_variables, self.variables.persistent_items())
        tally.succeed()

    async def _increment_variable(
        self, action: IncrementVariableAction, tally: ActionTally
    ) -> None:
        self.variables.increment(action.name, action.by)
        tally.succeed()

    async def _delay(self, action: DelayAction, tally: ActionTally) -> None:
        await asyncio.sleep(action.duration_ms / 1000)
        tally.succeed()

    # ------------------------------------------------------------------
    # Platform effects
    # ------------------------------------------------------------------
    async def _show_notification(
        self, action: ShowNotificationAction, tally: ActionTally
    ) -> None:
        title = self.variables.substitute(action.title)
        content = self.variables.substitute(action.content)
        if self._effect(tally, "notify", title, content, action.priority):
            self.variables.set("_last_notification", title)
            tally.succeed()

    async def _vibrate(self, action: VibrateAction, tally: ActionTally) -> None:
        if self._effect(tally, "vibrate", action.pattern, action.repeat):
            tally.succeed()

    async def _play_sound(self, action: PlaySoundAction, tally: ActionTally) -> None:
        if self._effect(tally, "play_sound", action.sound_id, action.volume):
            tally.succeed()

    async def _launch_app(self, action: LaunchAppAction, tally: ActionTally) -> None:
        if self.effects is None:
            self._fail(tally, "No platform effects configured")
            return
        try:
            launched = self.effects.launch_app(action.package_name, action.action)
        except Exception as exc:
            logger.warning("launch_app failed: %s", exc)
            self._fail(tally, _describe(exc))
            return
        if launched:
            tally.succeed()
        else:
            tally.fail()

    def _effect(self, tally: ActionTally, method: str, *args: Any) -> bool:
        """Invoke a platform effect, counting a failure when it raises."""
        if self.effects is None:
            self._fail(tally, "No platform effects configured")
            return False
        try:
            getattr(self.effects, method)(*args)
        except Exception as exc:
            logger.warning("Platform effect %s failed: %s", method, exc)
            self._fail(tally, _describe(exc))
            return False
        return True

    # ------------------------------------------------------------------
    # Control flow
    # ------------------------------------------------------------------
    async def _run_automation(self, action: RunAutomationAction, tally: ActionTally) -> None:
        if _run_depth.get() >= self.config.max_run_depth:
            logger.warning(
                "run_automation %s refused: depth limit %s reached",
                action.automation_id,
                self.config.max_run_depth,
            )
            self._fail(tally, f"Maximum run depth exceeded: {self.config.max_run_depth}")
            return

        target = self.registry.get_by_id(action.automation_id)
        if target is None:
            self._fail(tally, f"Automation not found: {action.automation_id}")
            return

        result = await self.execute_automation(target)
        if result.success:
            tally.succeed()
        else:
            tally.fail()

    async def _conditional(self, action: ConditionalAction, tally: ActionTally) -> None:
        if evaluate(action.condition, self.variables):
            tally.absorb(await self.execute_actions(action.then_actions))
        elif action.else_actions:
            tally.absorb(await self.execute_actions(action.else_actions))

    async def _loop(self, action: LoopAction, tally: ActionTally) -> None:
        if action.count is not None:
            for _ in range(action.count):
                tally.absorb(await self.execute_actions(action.actions))
                await asyncio.sleep(0)
            return

        iterations = 0
        while iterations < MAX_LOOP_ITERATIONS and evaluate(action.condition, self.variables):
            tally.absorb(await self.execute_actions(action.actions))
            iterations += 1
            await asyncio.sleep(0)
        if iterations >= MAX_LOOP_ITERATIONS:
            logger.warning("Loop stopped after %d iterations", MAX_LOOP_ITERATIONS)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    async def _log(self, action: LogAction, tally: ActionTally) -> None:
        self.diagnostics.log(action.level, DIAGNOSTIC_TAG, self.variables.substitute(action.message))
        tally.succeed()

    async def _comment(self, action: CommentAction, tally: ActionTally) -> None:
        tally.succeed()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    async def _off_loop(func: Callable[..., Any], *args: Any) -> Any:
        # Persistence writes are blocking file I/O
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def _fail(self, tally: ActionTally, error: str) -> None:
        self.variables.set("_last_error", error)
        tally.fail()

    def _record(
        self,
        automation: Automation,
        status: ExecutionStatus,
        message: str,
        actions_executed: int,
        started: int,
    ) -> None:
        finished = self._clock()
        self.history.add(
            ExecutionLog(
                automation_id=automation.id,
                automation_name=automation.name,
                timestamp=finished,
                status=status,
                message=message,
                actions_executed=actions_executed,
                duration_ms=max(0, finished - started),
            )
        )

    def _mark_active(self, automation_id: str) -> None:
        with self._active_lock:
            self._active[automation_id] += 1

    def _release_active(self, automation_id: str) -> None:
        with self._active_lock:
            self._active[automation_id] -= 1
            if self._active[automation_id] <= 0:
                del self._active[automation_id]


__all__ = [
    "ActionInterpreter",
    "ActionTally",
    "MAX_LOOP_ITERATIONS",
    "current_run_depth",
    "decode_hex",
]
