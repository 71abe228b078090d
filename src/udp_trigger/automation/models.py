"""Data model for automations, triggers, actions and execution records.

Triggers and actions are closed tagged unions. Every variant carries a literal
``type`` discriminator so that nested trees (``any_of``/``all_of`` triggers,
``conditional``/``loop`` actions) serialize and load back losslessly. Records
use camelCase keys when dumped ``by_alias`` and accept both spellings on input.
"""

from __future__ import annotations

import re
import time
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

_HH_MM = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class RecordModel(BaseModel):
    """Base for persisted records: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ----------------------------------------------------------------------
# Triggers
# ----------------------------------------------------------------------


class TriggerKind(str, Enum):
    """Supported trigger condition kinds."""

    PACKET_RECEIVED = "packet_received"
    BUTTON_PRESSED = "button_pressed"
    SCHEDULE = "schedule"
    INTERVAL = "interval"
    GESTURE = "gesture"
    NETWORK_STATE = "network_state"
    TIME_RANGE = "time_range"
    VARIABLE_CHANGED = "variable_changed"
    ANY_OF = "any_of"
    ALL_OF = "all_of"


class PacketReceivedTrigger(RecordModel):
    """Fires when an inbound packet's content matches ``pattern``."""

    type: Literal["packet_received"] = "packet_received"
    pattern: str = Field(..., description="Substring or regular expression to look for")
    use_regex: bool = Field(default=False, description="Treat pattern as a regular expression")
    source_address: str | None = Field(default=None, description="Only match this sender host")
    source_port: int | None = Field(default=None, description="Only match this sender port")

    @field_validator("source_address", mode="before")
    @classmethod
    def blank_address_is_unset(cls, value: Any) -> Any:
        return value or None

    @field_validator("source_port", mode="before")
    @classmethod
    def negative_port_is_unset(cls, value: Any) -> Any:
        if value is None or (isinstance(value, int) and value < 0):
            return None
        return value


class ButtonPressedTrigger(RecordModel):
    type: Literal["button_pressed"] = "button_pressed"
    button_id: str = Field(default="main", description="Identifier of the pressed button")


class ScheduleTrigger(RecordModel):
    """Cron style schedule: ``minute hour day month weekday``."""

    type: Literal["schedule"] = "schedule"
    cron_expression: str = Field(..., description="Five-field crontab expression")
    timezone: str = Field(default="UTC", description="Timezone the expression is evaluated in")


class IntervalTrigger(RecordModel):
    type: Literal["interval"] = "interval"
    interval_ms: int = Field(..., gt=0, description="Period between firings in milliseconds")


class GestureTrigger(RecordModel):
    type: Literal["gesture"] = "gesture"
    gesture_type: str = Field(..., description="tap, double_tap, swipe_up, long_press, ...")


class NetworkStateTrigger(RecordModel):
    type: Literal["network_state"] = "network_state"
    connected: bool | None = Field(default=None, description="Required connectivity (None = any)")
    ssid: str | None = Field(default=None, description="Required network name (None = any)")

    @field_validator("ssid", mode="before")
    @classmethod
    def blank_ssid_is_unset(cls, value: Any) -> Any:
        return value or None


class TimeRangeTrigger(RecordModel):
    """Time-of-day window on selected weekdays (1 = Monday .. 7 = Sunday)."""

    type: Literal["time_range"] = "time_range"
    start_time: str = Field(..., description="Window start, HH:mm")
    end_time: str = Field(..., description="Window end, HH:mm")
    days_of_week: list[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5, 6, 7])

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_clock(cls, value: str) -> str:
        if not _HH_MM.match(value):
            raise ValueError(f"Expected HH:mm, got {value!r}")
        return value

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, value: list[int]) -> list[int]:
        for day in value:
            if not 1 <= day <= 7:
                raise ValueError(f"Day of week out of range 1..7: {day}")
        return value


class VariableChangedTrigger(RecordModel):
    type: Literal["variable_changed"] = "variable_changed"
    variable_name: str = Field(..., description="Variable to watch")
    value: str | None = Field(default=None, description="Compare the new value against this")
    operator: str = Field(default="==", description="Comparison operator for value")

    @field_validator("value", mode="before")
    @classmethod
    def blank_value_is_unset(cls, value: Any) -> Any:
        return value if value != "" else None


class AnyOfTrigger(RecordModel):
    type: Literal["any_of"] = "any_of"
    conditions: list[TriggerCondition] = Field(default_factory=list)


class AllOfTrigger(RecordModel):
    type: Literal["all_of"] = "all_of"
    conditions: list[TriggerCondition] = Field(default_factory=list)


TriggerCondition = Annotated[
    Union[
        PacketReceivedTrigger,
        ButtonPressedTrigger,
        ScheduleTrigger,
        IntervalTrigger,
        GestureTrigger,
        NetworkStateTrigger,
        TimeRangeTrigger,
        VariableChangedTrigger,
        AnyOfTrigger,
        AllOfTrigger,
    ],
    Field(discriminator="type"),
]

TRIGGER_MODELS: dict[TriggerKind, type[RecordModel]] = {
    TriggerKind.PACKET_RECEIVED: PacketReceivedTrigger,
    TriggerKind.BUTTON_PRESSED: ButtonPressedTrigger,
    TriggerKind.SCHEDULE: ScheduleTrigger,
    TriggerKind.INTERVAL: IntervalTrigger,
    TriggerKind.GESTURE: GestureTrigger,
    TriggerKind.NETWORK_STATE: NetworkStateTrigger,
    TriggerKind.TIME_RANGE: TimeRangeTrigger,
    TriggerKind.VARIABLE_CHANGED: VariableChangedTrigger,
    TriggerKind.ANY_OF: AnyOfTrigger,
    TriggerKind.ALL_OF: AllOfTrigger,
}


def iter_triggers(trigger: Any) -> Iterator[Any]:
    """Yield ``trigger`` and every trigger nested below it, depth first."""
    yield trigger
    if isinstance(trigger, (AnyOfTrigger, AllOfTrigger)):
        for child in trigger.conditions:
            yield from iter_triggers(child)


# ----------------------------------------------------------------------
# Conditions
# ----------------------------------------------------------------------


class ConditionOperator(str, Enum):
    """Operators understood by the condition evaluator."""

    EQUALS = "=="
    NOT_EQUALS = "!="
    GREATER = ">"
    LESS = "<"
    GREATER_OR_EQUAL = ">="
    LESS_OR_EQUAL = "<="
    CONTAINS = "contains"
    MATCHES = "matches"
    IS_EMPTY = "is_empty"
    IS_NUMBER = "is_number"


class Condition(RecordModel):
    """Predicate used by conditional and loop actions.

    ``operator`` is kept as free text: an unknown operator evaluates to false
    instead of failing validation.
    """

    left_operand: str = Field(..., description="Variable name or literal")
    operator: str = Field(default="==", description="Comparison operator")
    right_operand: str | None = Field(default=None, description="Literal right-hand side")


# ----------------------------------------------------------------------
# Actions
# ----------------------------------------------------------------------


class ActionKind(str, Enum):
    """Supported automation action kinds."""

    SEND_UDP = "send_udp"
    SEND_TCP = "send_tcp"
    HTTP_REQUEST = "http_request"
    SET_VARIABLE = "set_variable"
    INCREMENT_VARIABLE = "increment_variable"
    DELAY = "delay"
    WAIT_FOR_PACKET = "wait_for_packet"
    SHOW_NOTIFICATION = "notification"
    VIBRATE = "vibrate"
    PLAY_SOUND = "play_sound"
    LAUNCH_APP = "launch_app"
    RUN_AUTOMATION = "run_automation"
    CONDITIONAL = "conditional"
    LOOP = "loop"
    LOG = "log"
    COMMENT = "comment"


class SendUdpAction(RecordModel):
    type: Literal["send_udp"] = "send_udp"
    host: str
    port: int = Field(..., ge=0, le=65535)
    content: str = ""
    hex_mode: bool = Field(default=False, description="Content is a hex string, not text")


class SendTcpAction(RecordModel):
    type: Literal["send_tcp"] = "send_tcp"
    host: str
    port: int = Field(..., ge=0, le=65535)
    content: str = ""


class HttpRequestAction(RecordModel):
    type: Literal["http_request"] = "http_request"
    url: str
    method: str = "GET"
    body: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("method")
    @classmethod
    def normalise_method(cls, value: str) -> str:
        method = (value or "GET").strip().upper()
        if method not in {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"}:
            raise ValueError(f"Unsupported HTTP method: {method}")
        return method

    @field_validator("body", mode="before")
    @classmethod
    def blank_body_is_unset(cls, value: Any) -> Any:
        return value or None


class SetVariableAction(RecordModel):
    type: Literal["set_variable"] = "set_variable"
    name: str
    value: str = ""
    persist: bool = False


class IncrementVariableAction(RecordModel):
    type: Literal["increment_variable"] = "increment_variable"
    name: str
    by: int = 1


class DelayAction(RecordModel):
    type: Literal["delay"] = "delay"
    duration_ms: int = Field(..., ge=0)


class WaitForPacketAction(RecordModel):
    type: Literal["wait_for_packet"] = "wait_for_packet"
    pattern: str
    timeout_ms: int = Field(default=5000, ge=0)
    use_regex: bool = False


class ShowNotificationAction(RecordModel):
    type: Literal["notification"] = "notification"
    title: str
    content: str = ""
    priority: int = 0


class VibrateAction(RecordModel):
    type: Literal["vibrate"] = "vibrate"
    pattern: str = Field(default="default", description="default, short or long")
    repeat: int = 0


class PlaySoundAction(RecordModel):
    type: Literal["play_sound"] = "play_sound"
    sound_id: str = "click"
    volume: float = Field(default=1.0, ge=0.0, le=1.0)


class LaunchAppAction(RecordModel):
    type: Literal["launch_app"] = "launch_app"
    package_name: str | None = None
    action: str | None = None

    @field_validator("package_name", "action", mode="before")
    @classmethod
    def blank_is_unset(cls, value: Any) -> Any:
        return value or None


class RunAutomationAction(RecordModel):
    """Runs another automation, resolved by id when the action executes."""

    type: Literal["run_automation"] = "run_automation"
    automation_id: str


class ConditionalAction(RecordModel):
    type: Literal["conditional"] = "conditional"
    condition: Condition
    then_actions: list[AutomationAction] = Field(default_factory=list)
    else_actions: list[AutomationAction] = Field(default_factory=list)


class LoopAction(RecordModel):
    """Repeats ``actions`` either ``count`` times or while ``condition`` holds.

    When both are given ``count`` drives termination.
    """

    type: Literal["loop"] = "loop"
    count: int | None = Field(default=None, ge=0)
    condition: Condition | None = None
    actions: list[AutomationAction] = Field(default_factory=list)

    @model_validator(mode="after")
    def ensure_termination(self) -> LoopAction:
        if self.count is None and self.condition is None:
            raise ValueError("loop action requires 'count' or 'condition'")
        return self


class LogAction(RecordModel):
    type: Literal["log"] = "log"
    message: str
    level: str = Field(default="INFO", description="DEBUG, INFO, WARN or ERROR")


class CommentAction(RecordModel):
    type: Literal["comment"] = "comment"
    text: str = ""


AutomationAction = Annotated[
    Union[
        SendUdpAction,
        SendTcpAction,
        HttpRequestAction,
        SetVariableAction,
        IncrementVariableAction,
        DelayAction,
        WaitForPacketAction,
        ShowNotificationAction,
        VibrateAction,
        PlaySoundAction,
        LaunchAppAction,
        RunAutomationAction,
        ConditionalAction,
        LoopAction,
        LogAction,
        CommentAction,
    ],
    Field(discriminator="type"),
]

ACTION_MODELS: dict[ActionKind, type[RecordModel]] = {
    ActionKind.SEND_UDP: SendUdpAction,
    ActionKind.SEND_TCP: SendTcpAction,
    ActionKind.HTTP_REQUEST: HttpRequestAction,
    ActionKind.SET_VARIABLE: SetVariableAction,
    ActionKind.INCREMENT_VARIABLE: IncrementVariableAction,
    ActionKind.DELAY: DelayAction,
    ActionKind.WAIT_FOR_PACKET: WaitForPacketAction,
    ActionKind.SHOW_NOTIFICATION: ShowNotificationAction,
    ActionKind.VIBRATE: VibrateAction,
    ActionKind.PLAY_SOUND: PlaySoundAction,
    ActionKind.LAUNCH_APP: LaunchAppAction,
    ActionKind.RUN_AUTOMATION: RunAutomationAction,
    ActionKind.CONDITIONAL: ConditionalAction,
    ActionKind.LOOP: LoopAction,
    ActionKind.LOG: LogAction,
    ActionKind.COMMENT: CommentAction,
}


def iter_actions(actions: list[Any]) -> Iterator[Any]:
    """Yield every action in ``actions`` including nested branches and loop bodies."""
    for action in actions:
        yield action
        if isinstance(action, ConditionalAction):
            yield from iter_actions(action.then_actions)
            yield from iter_actions(action.else_actions)
        elif isinstance(action, LoopAction):
            yield from iter_actions(action.actions)


AnyOfTrigger.model_rebuild()
AllOfTrigger.model_rebuild()
ConditionalAction.model_rebuild()
LoopAction.model_rebuild()


# ----------------------------------------------------------------------
# Automations and execution records
# ----------------------------------------------------------------------


class Automation(RecordModel):
    """A named rule pairing one trigger with an ordered action list."""

    id: str = Field(..., min_length=1, frozen=True, description="Unique, stable identifier")
    name: str = Field(..., description="Display name")
    description: str = Field(default="", description="Human-readable description")
    trigger: TriggerCondition
    actions: list[AutomationAction] = Field(default_factory=list)
    enabled: bool = Field(default=True, description="Whether the automation is active")
    priority: int = Field(default=0, description="Higher runs first when several match")
    cooldown_ms: int = Field(default=0, ge=0, description="Minimum time between runs")
    last_executed: int = Field(default=0, description="Epoch ms of the last run, 0 if never")
    execution_count: int = Field(default=0, ge=0)
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)

    @property
    def trigger_kind(self) -> TriggerKind:
        return TriggerKind(self.trigger.type)


class ExecutionStatus(str, Enum):
    """Outcome recorded for an automation run."""

    STARTED = "started"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


class ExecutionLog(RecordModel):
    """Immutable record of one automation run."""

    model_config = ConfigDict(frozen=True)

    automation_id: str
    automation_name: str
    timestamp: int
    status: ExecutionStatus
    message: str
    actions_executed: int = 0
    duration_ms: int = 0


@dataclass
class ExecutionResult:
    """Result returned by the interpreter for every execution request."""

    success: bool
    message: str
    actions_executed: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "message": self.message,
            "actions_executed": self.actions_executed,
        }


__all__ = [
    "RecordModel",
    "now_ms",
    "TriggerKind",
    "PacketReceivedTrigger",
    "ButtonPressedTrigger",
    "ScheduleTrigger",
    "IntervalTrigger",
    "GestureTrigger",
    "NetworkStateTrigger",
    "TimeRangeTrigger",
    "VariableChangedTrigger",
    "AnyOfTrigger",
    "AllOfTrigger",
    "TriggerCondition",
    "TRIGGER_MODELS",
    "iter_triggers",
    "ConditionOperator",
    "Condition",
    "ActionKind",
    "SendUdpAction",
    "SendTcpAction",
    "HttpRequestAction",
    "SetVariableAction",
    "IncrementVariableAction",
    "DelayAction",
    "WaitForPacketAction",
    "ShowNotificationAction",
    "VibrateAction",
    "PlaySoundAction",
    "LaunchAppAction",
    "RunAutomationAction",
    "ConditionalAction",
    "LoopAction",
    "LogAction",
    "CommentAction",
    "AutomationAction",
    "ACTION_MODELS",
    "iter_actions",
    "Automation",
    "ExecutionStatus",
    "ExecutionLog",
    "ExecutionResult",
]
