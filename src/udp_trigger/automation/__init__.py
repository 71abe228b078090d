"""Automation engine: trigger matching and action execution.

This module provides:
- AutomationEngine: the context object that routes events to automations
- The automation, trigger and action data model
- VariableStore with ``{{name}}`` substitution and the condition evaluator
- AutomationRegistry with JSON or in-memory persistence
- ExecutionHistory, the bounded execution log
- AutomationScheduler, which fires schedule and interval triggers
"""

from .actions import MAX_LOOP_ITERATIONS, ActionInterpreter, ActionTally, decode_hex
from .conditions import compare, evaluate
from .defaults import create_default_automations
from .engine import AutomationEngine
from .exceptions import (
    AutomationError,
    AutomationNotFoundError,
    DuplicateAutomationError,
    PersistenceError,
)
from .history import MAX_EXECUTION_LOGS, ExecutionHistory
from .models import (
    Automation,
    AutomationAction,
    Condition,
    ExecutionLog,
    ExecutionResult,
    ExecutionStatus,
    TriggerCondition,
    TriggerKind,
)
from .persistence import (
    AutomationPersistence,
    InMemoryAutomationStore,
    JsonFileAutomationStore,
)
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

__all__ = [
    # Engine
    "AutomationEngine",
    "ActionInterpreter",
    "ActionTally",
    "MAX_LOOP_ITERATIONS",
    "decode_hex",
    # Model
    "Automation",
    "AutomationAction",
    "Condition",
    "ExecutionLog",
    "ExecutionResult",
    "ExecutionStatus",
    "TriggerCondition",
    "TriggerKind",
    # Events
    "TriggerEvent",
    "PacketEvent",
    "ButtonEvent",
    "GestureEvent",
    "ScheduleEvent",
    "IntervalEvent",
    "NetworkStateEvent",
    "VariableChangedEvent",
    "TriggerMatcher",
    # State
    "VariableStore",
    "compare",
    "evaluate",
    "ExecutionHistory",
    "MAX_EXECUTION_LOGS",
    "AutomationRegistry",
    "AutomationPersistence",
    "InMemoryAutomationStore",
    "JsonFileAutomationStore",
    "AutomationScheduler",
    "create_default_automations",
    # Errors
    "AutomationError",
    "AutomationNotFoundError",
    "DuplicateAutomationError",
    "PersistenceError",
]
