"""Tests for the automation data model."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from udp_trigger.automation.models import (
    ACTION_MODELS,
    TRIGGER_MODELS,
    ActionKind,
    AllOfTrigger,
    AnyOfTrigger,
    Automation,
    ButtonPressedTrigger,
    Condition,
    ConditionalAction,
    ExecutionLog,
    ExecutionResult,
    ExecutionStatus,
    HttpRequestAction,
    LogAction,
    LoopAction,
    PacketReceivedTrigger,
    SendUdpAction,
    SetVariableAction,
    TimeRangeTrigger,
    TriggerKind,
    iter_actions,
    iter_triggers,
)


def nested_automation() -> Automation:
    return Automation(
        id="nested",
        name="Nested",
        trigger=AllOfTrigger(
            conditions=[
                AnyOfTrigger(
                    conditions=[
                        PacketReceivedTrigger(pattern="^GO", use_regex=True, source_port=4000),
                        ButtonPressedTrigger(button_id="red"),
                    ]
                ),
                TimeRangeTrigger(start_time="22:00", end_time="06:00", days_of_week=[6, 7]),
            ]
        ),
        actions=[
            ConditionalAction(
                condition=Condition(left_operand="count", operator=">", right_operand="5"),
                then_actions=[LoopAction(count=2, actions=[LogAction(message="tick")])],
                else_actions=[SendUdpAction(host="10.0.0.2", port=9000, content="0x01 0x02", hex_mode=True)],
            ),
            SetVariableAction(name="done", value="yes", persist=True),
        ],
        priority=3,
        cooldown_ms=1500,
    )


class TestSerialization:
    """Tests for the persisted JSON shape."""

    def test_nested_tree_survives_json_round_trip(self) -> None:
        automation = nested_automation()
        text = json.dumps(automation.model_dump(mode="json", by_alias=True))
        restored = Automation.model_validate(json.loads(text))
        assert restored == automation

    def test_dump_uses_camel_case_and_type_tags(self) -> None:
        data = nested_automation().model_dump(mode="json", by_alias=True)
        assert data["cooldownMs"] == 1500
        assert data["trigger"]["type"] == "all_of"
        assert data["trigger"]["conditions"][1]["startTime"] == "22:00"
        assert data["actions"][0]["type"] == "conditional"
        assert data["actions"][0]["thenActions"][0]["type"] == "loop"
        assert data["actions"][0]["elseActions"][0]["hexMode"] is True

    def test_snake_case_input_is_accepted(self) -> None:
        automation = Automation.model_validate(
            {
                "id": "a",
                "name": "A",
                "trigger": {"type": "button_pressed", "button_id": "main"},
                "actions": [{"type": "increment_variable", "name": "n"}],
                "cooldown_ms": 10,
            }
        )
        assert automation.cooldown_ms == 10
        assert automation.trigger_kind is TriggerKind.BUTTON_PRESSED

    def test_unknown_action_type_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Automation.model_validate(
                {
                    "id": "a",
                    "name": "A",
                    "trigger": {"type": "button_pressed"},
                    "actions": [{"type": "teleport"}],
                }
            )


class TestValidation:
    """Tests for field validation and normalisation."""

    def test_blank_packet_filters_mean_any(self) -> None:
        trigger = PacketReceivedTrigger(pattern="x", source_address="", source_port=-1)
        assert trigger.source_address is None
        assert trigger.source_port is None

    @pytest.mark.parametrize("clock", ["25:00", "7:5", "noon"])
    def test_time_range_rejects_bad_clock(self, clock: str) -> None:
        with pytest.raises(ValidationError):
            TimeRangeTrigger(start_time=clock, end_time="10:00")

    def test_time_range_rejects_bad_day(self) -> None:
        with pytest.raises(ValidationError):
            TimeRangeTrigger(start_time="08:00", end_time="10:00", days_of_week=[0])

    def test_loop_requires_count_or_condition(self) -> None:
        with pytest.raises(ValidationError):
            LoopAction(actions=[])

    def test_http_method_is_normalised(self) -> None:
        assert HttpRequestAction(url="http://x", method="post").method == "POST"
        with pytest.raises(ValidationError):
            HttpRequestAction(url="http://x", method="FETCH")

    def test_automation_id_is_immutable(self) -> None:
        automation = Automation(id="a", name="A", trigger=ButtonPressedTrigger())
        with pytest.raises(ValidationError):
            automation.id = "b"

    def test_defaults(self) -> None:
        automation = Automation(id="a", name="A", trigger=ButtonPressedTrigger())
        assert automation.enabled is True
        assert automation.priority == 0
        assert automation.cooldown_ms == 0
        assert automation.last_executed == 0
        assert automation.execution_count == 0


class TestTreeHelpers:
    """Tests for tree walking and the variant registries."""

    def test_every_kind_has_a_model(self) -> None:
        assert set(TRIGGER_MODELS) == set(TriggerKind)
        assert set(ACTION_MODELS) == set(ActionKind)

    def test_iter_triggers_walks_nested_conditions(self) -> None:
        kinds = [t.type for t in iter_triggers(nested_automation().trigger)]
        assert kinds == ["all_of", "any_of", "packet_received", "button_pressed", "time_range"]

    def test_iter_actions_walks_branches_and_loops(self) -> None:
        kinds = [a.type for a in iter_actions(nested_automation().actions)]
        assert kinds == ["conditional", "loop", "log", "send_udp", "set_variable"]


class TestExecutionRecords:
    """Tests for ExecutionLog and ExecutionResult."""

    def test_execution_log_is_frozen(self) -> None:
        entry = ExecutionLog(
            automation_id="a",
            automation_name="A",
            timestamp=1,
            status=ExecutionStatus.SUCCESS,
            message="ok",
        )
        with pytest.raises(ValidationError):
            entry.message = "changed"

    def test_execution_result_to_dict(self) -> None:
        result = ExecutionResult(success=True, message="Executed: 1 success, 0 failed", actions_executed=1)
        assert result.to_dict() == {
            "success": True,
            "message": "Executed: 1 success, 0 failed",
            "actions_executed": 1,
        }
