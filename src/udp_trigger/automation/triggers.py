"""Inbound events and the trigger matching algorithm.

Event sources (the UDP listener, the scheduler bridge, a UI) build one of the
event types below and hand it to the engine. :class:`TriggerMatcher` decides
which automations fire. ``matches`` works on any trigger variant, so
``any_of``/``all_of`` trees simply recurse into their children with the same
event.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from ..core.logger import get_logger
from .conditions import compare
from .models import (
    TRIGGER_MODELS,
    AllOfTrigger,
    AnyOfTrigger,
    Automation,
    ButtonPressedTrigger,
    GestureTrigger,
    IntervalTrigger,
    NetworkStateTrigger,
    PacketReceivedTrigger,
    ScheduleTrigger,
    TimeRangeTrigger,
    TriggerKind,
    VariableChangedTrigger,
)

logger = get_logger("automation.triggers")


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class TriggerEvent:
    """Base class for inbound events."""

    kind: ClassVar[TriggerKind]

    timestamp: datetime = field(default_factory=datetime.now)

    def variables(self) -> dict[str, str]:
        """Variables published into the store before matched automations run."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "kind": self.kind.value,
            "timestamp": self.timestamp.isoformat(),
            **self.variables(),
        }


@dataclass(frozen=True, kw_only=True)
class PacketEvent(TriggerEvent):
    kind: ClassVar[TriggerKind] = TriggerKind.PACKET_RECEIVED

    source_address: str
    source_port: int
    content: str

    def variables(self) -> dict[str, str]:
        return {
            "source_address": self.source_address,
            "source_port": str(self.source_port),
            "packet_content": self.content,
        }


@dataclass(frozen=True, kw_only=True)
class ButtonEvent(TriggerEvent):
    kind: ClassVar[TriggerKind] = TriggerKind.BUTTON_PRESSED

    button_id: str = "main"

    def variables(self) -> dict[str, str]:
        return {"button_id": self.button_id}


@dataclass(frozen=True, kw_only=True)
class GestureEvent(TriggerEvent):
    kind: ClassVar[TriggerKind] = TriggerKind.GESTURE

    gesture_type: str

    def variables(self) -> dict[str, str]:
        return {"gesture_type": self.gesture_type}


@dataclass(frozen=True, kw_only=True)
class ScheduleEvent(TriggerEvent):
    kind: ClassVar[TriggerKind] = TriggerKind.SCHEDULE

    cron_expression: str
    timezone: str = "UTC"

    def variables(self) -> dict[str, str]:
        return {"schedule_expression": self.cron_expression}


@dataclass(frozen=True, kw_only=True)
class IntervalEvent(TriggerEvent):
    kind: ClassVar[TriggerKind] = TriggerKind.INTERVAL

    interval_ms: int

    def variables(self) -> dict[str, str]:
        return {"interval_ms": str(self.interval_ms)}


@dataclass(frozen=True, kw_only=True)
class NetworkStateEvent(TriggerEvent):
    kind: ClassVar[TriggerKind] = TriggerKind.NETWORK_STATE

    connected: bool
    ssid: str | None = None

    def variables(self) -> dict[str, str]:
        return {
            "network_connected": "true" if self.connected else "false",
            "network_ssid": self.ssid or "",
        }


@dataclass(frozen=True, kw_only=True)
class VariableChangedEvent(TriggerEvent):
    kind: ClassVar[TriggerKind] = TriggerKind.VARIABLE_CHANGED

    variable_name: str
    value: str
    previous: str | None = None


# ----------------------------------------------------------------------
# Matching
# ----------------------------------------------------------------------


def normalise_cron(expression: str) -> str:
    return " ".join(expression.split())


def _minutes(clock: str) -> int:
    hours, minutes = clock.split(":")
    return int(hours) * 60 + int(minutes)


class TriggerMatcher:
    """Evaluates trigger trees against inbound events."""

    def __init__(self) -> None:
        self._handlers: dict[type, Callable[[Any, TriggerEvent], bool]] = {
            PacketReceivedTrigger: self._match_packet,
            ButtonPressedTrigger: self._match_button,
            ScheduleTrigger: self._match_schedule,
            IntervalTrigger: self._match_interval,
            GestureTrigger: self._match_gesture,
            NetworkStateTrigger: self._match_network_state,
            TimeRangeTrigger: self._match_time_range,
            VariableChangedTrigger: self._match_variable_changed,
            AnyOfTrigger: self._match_any_of,
            AllOfTrigger: self._match_all_of,
        }
        missing = set(TRIGGER_MODELS.values()) - set(self._handlers)
        if missing:
            names = ", ".join(sorted(model.__name__ for model in missing))
            raise TypeError(f"TriggerMatcher has no handler for: {names}")

    def matches(self, trigger: Any, event: TriggerEvent) -> bool:
        """Return True when ``trigger`` is satisfied by ``event``."""
        handler = self._handlers.get(type(trigger))
        if handler is None:
            raise TypeError(f"Unsupported trigger type: {type(trigger).__name__}")
        return handler(trigger, event)

    def match(self, event: TriggerEvent, automations: Iterable[Automation]) -> list[Automation]:
        """Enabled automations whose trigger matches, highest priority first."""
        matched = [a for a in automations if a.enabled and self.matches(a.trigger, event)]
        # sorted() is stable, so registry order breaks priority ties
        matched = sorted(matched, key=lambda a: a.priority, reverse=True)
        if matched:
            logger.debug(
                "Event %s matched automations: %s",
                event.kind.value,
                ", ".join(a.id for a in matched),
            )
        return matched

    # ------------------------------------------------------------------
    # Per-kind rules
    # ------------------------------------------------------------------
    @staticmethod
    def _match_packet(trigger: PacketReceivedTrigger, event: TriggerEvent) -> bool:
        if not isinstance(event, PacketEvent):
            return False
        if trigger.use_regex:
            try:
                pattern_matches = re.search(trigger.pattern, event.content) is not None
            except re.error as exc:
                logger.warning("Invalid packet pattern %r: %s", trigger.pattern, exc)
                return False
        else:
            pattern_matches = trigger.pattern in event.content
        address_matches = (
            trigger.source_address is None or trigger.source_address == event.source_address
        )
        port_matches = trigger.source_port is None or trigger.source_port == event.source_port
        return pattern_matches and address_matches and port_matches

    @staticmethod
    def _match_button(trigger: ButtonPressedTrigger, event: TriggerEvent) -> bool:
        return isinstance(event, ButtonEvent) and trigger.button_id == event.button_id

    @staticmethod
    def _match_gesture(trigger: GestureTrigger, event: TriggerEvent) -> bool:
        return isinstance(event, GestureEvent) and trigger.gesture_type == event.gesture_type

    @staticmethod
    def _match_schedule(trigger: ScheduleTrigger, event: TriggerEvent) -> bool:
        return (
            isinstance(event, ScheduleEvent)
            and normalise_cron(trigger.cron_expression) == normalise_cron(event.cron_expression)
            and trigger.timezone == event.timezone
        )

    @staticmethod
    def _match_interval(trigger: IntervalTrigger, event: TriggerEvent) -> bool:
        return isinstance(event, IntervalEvent) and trigger.interval_ms == event.interval_ms

    @staticmethod
    def _match_network_state(trigger: NetworkStateTrigger, event: TriggerEvent) -> bool:
        if not isinstance(event, NetworkStateEvent):
            return False
        if trigger.connected is not None and trigger.connected != event.connected:
            return False
        return trigger.ssid is None or trigger.ssid == event.ssid

    @staticmethod
    def _match_time_range(trigger: TimeRangeTrigger, event: TriggerEvent) -> bool:
        # A time window guards whatever event is being delivered
        stamp = event.timestamp
        if stamp.isoweekday() not in trigger.days_of_week:
            return False
        now = stamp.hour * 60 + stamp.minute
        start = _minutes(trigger.start_time)
        end = _minutes(trigger.end_time)
        if start <= end:
            return start <= now <= end
        return now >= start or now <= end

    @staticmethod
    def _match_variable_changed(trigger: VariableChangedTrigger, event: TriggerEvent) -> bool:
        if not isinstance(event, VariableChangedEvent):
            return False
        if trigger.variable_name != event.variable_name:
            return False
        if trigger.value is None:
            return True
        return compare(event.value, trigger.operator, trigger.value)

    def _match_any_of(self, trigger: AnyOfTrigger, event: TriggerEvent) -> bool:
        return any(self.matches(child, event) for child in trigger.conditions)

    def _match_all_of(self, trigger: AllOfTrigger, event: TriggerEvent) -> bool:
        return bool(trigger.conditions) and all(
            self.matches(child, event) for child in trigger.conditions
        )


__all__ = [
    "TriggerEvent",
    "PacketEvent",
    "ButtonEvent",
    "GestureEvent",
    "ScheduleEvent",
    "IntervalEvent",
    "NetworkStateEvent",
    "VariableChangedEvent",
    "TriggerMatcher",
    "normalise_cron",
]
