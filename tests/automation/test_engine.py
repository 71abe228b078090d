"""Tests for the automation engine context."""

from __future__ import annotations

import asyncio

import pytest

from udp_trigger.automation.engine import AutomationEngine
from udp_trigger.automation.history import ExecutionHistory
from udp_trigger.automation.models import (
    ButtonPressedTrigger,
    DelayAction,
    ExecutionStatus,
    GestureTrigger,
    IncrementVariableAction,
    IntervalTrigger,
    NetworkStateTrigger,
    PacketReceivedTrigger,
    ScheduleTrigger,
    SendUdpAction,
    SetVariableAction,
    VariableChangedTrigger,
)
from udp_trigger.automation.persistence import InMemoryAutomationStore, JsonFileAutomationStore
from udp_trigger.automation.registry import AutomationRegistry
from udp_trigger.automation.triggers import ButtonEvent
from udp_trigger.automation.variables import VariableStore
from udp_trigger.core.config import EngineConfig
from udp_trigger.core.http import HttpxTransport
from udp_trigger.core.transport import AsyncioPacketTransport


@pytest.fixture
def engine_config() -> EngineConfig:
    config = EngineConfig()
    config.scheduler.enabled = False
    return config


@pytest.fixture
def engine(registry, variables, history, packet_transport, http_transport, effects, diagnostics,
           engine_config, clock) -> AutomationEngine:
    return AutomationEngine(
        registry=registry,
        variables=variables,
        history=history,
        packet_transport=packet_transport,
        http_transport=http_transport,
        effects=effects,
        diagnostics=diagnostics,
        config=engine_config,
        clock=clock,
    )


class TestConstruction:
    """Tests for wiring."""

    def test_from_config_in_memory(self) -> None:
        engine = AutomationEngine.from_config(EngineConfig())
        assert isinstance(engine.registry.persistence, InMemoryAutomationStore)
        assert isinstance(engine.interpreter.packet_transport, AsyncioPacketTransport)
        assert isinstance(engine.interpreter.http_transport, HttpxTransport)

    def test_from_config_json_storage(self, tmp_path) -> None:
        config = EngineConfig()
        config.storage.automations_path = str(tmp_path / "automations.json")
        engine = AutomationEngine.from_config(config)
        assert isinstance(engine.registry.persistence, JsonFileAutomationStore)

    def test_empty_collaborators_are_kept(self, engine_config, tmp_path) -> None:
        registry = AutomationRegistry(JsonFileAutomationStore(tmp_path / "automations.json"))
        variables = VariableStore()
        history = ExecutionHistory()

        engine = AutomationEngine(
            registry=registry, variables=variables, history=history, config=engine_config
        )

        assert engine.registry is registry
        assert engine.variables is variables
        assert engine.history is history

    def test_from_config_load_writes_store(self, tmp_path) -> None:
        path = tmp_path / "automations.json"
        config = EngineConfig()
        config.storage.automations_path = str(path)

        AutomationEngine.from_config(config).load()

        assert path.exists()
        assert [a.id for a in JsonFileAutomationStore(path).load_all()] == [
            "auto_echo",
            "packet_counter",
        ]

    def test_load_restores_persisted_variables(self, engine_config) -> None:
        store = InMemoryAutomationStore()
        store.save_variables({"mode": "night"})
        engine = AutomationEngine(registry=AutomationRegistry(store), config=engine_config)
        engine.load()
        assert engine.get_variable("mode") == "night"
        assert len(engine.registry) == 2


class TestPacketDelivery:
    """Tests for packet events."""

    @pytest.mark.anyio
    async def test_echo_packet_scenario(self, engine, registry, make_automation,
                                        packet_transport) -> None:
        registry.add(
            make_automation(
                "echo",
                trigger=PacketReceivedTrigger(pattern="ECHO"),
                actions=[
                    SendUdpAction(
                        host="{{source_address}}", port=5001, content="got {{packet_content}}"
                    )
                ],
            )
        )

        results = await engine.on_packet_received("192.168.1.20", 4000, "ECHO test")

        assert len(results) == 1
        assert results[0].success is True
        assert results[0].actions_executed == 1
        packet_transport.send_udp.assert_awaited_once_with(
            "192.168.1.20", 5001, b"got ECHO test"
        )
        assert engine.get_variable("source_port") == "4000"

    @pytest.mark.anyio
    async def test_default_packet_counter(self, engine_config) -> None:
        engine = AutomationEngine(config=engine_config)
        engine.load()

        await engine.on_packet_received("10.0.0.1", 1, "a")
        await engine.on_packet_received("10.0.0.1", 1, "b")

        assert engine.get_variable("packet_count") == "2"
        assert len(engine.get_execution_logs("packet_counter")) == 2

    @pytest.mark.anyio
    async def test_unmatched_packet_runs_nothing(self, engine, registry, make_automation) -> None:
        registry.add(make_automation("x", trigger=PacketReceivedTrigger(pattern="NOPE")))
        assert await engine.on_packet_received("h", 1, "hello") == []
        assert engine.get_variable("packet_content") is None
        assert engine.get_variable("source_address") is None

    @pytest.mark.anyio
    async def test_on_packet_dispatches_without_waiting(
        self, engine, registry, make_automation
    ) -> None:
        registry.add(
            make_automation(
                "count",
                trigger=PacketReceivedTrigger(pattern=""),
                actions=[IncrementVariableAction(name="n")],
            )
        )
        engine.on_packet("h", 1, "x")
        assert engine.pending_tasks == 1
        await asyncio.sleep(0.01)
        assert engine.get_variable("n") == "1"
        assert engine.pending_tasks == 0


class TestOtherEvents:
    """Tests for button, gesture, network, schedule and interval delivery."""

    @pytest.mark.anyio
    async def test_button(self, engine, registry, make_automation) -> None:
        registry.add(
            make_automation(
                "red",
                trigger=ButtonPressedTrigger(button_id="red"),
                actions=[SetVariableAction(name="pressed", value="{{button_id}}")],
            )
        )
        results = await engine.on_button_pressed("red")
        assert [r.success for r in results] == [True]
        assert engine.get_variable("pressed") == "red"

    @pytest.mark.anyio
    async def test_gesture_network_schedule_interval(
        self, engine, registry, make_automation
    ) -> None:
        registry.add(make_automation("g", trigger=GestureTrigger(gesture_type="swipe_up")))
        registry.add(make_automation("n", trigger=NetworkStateTrigger(connected=False)))
        registry.add(make_automation("s", trigger=ScheduleTrigger(cron_expression="0 8 * * *")))
        registry.add(make_automation("i", trigger=IntervalTrigger(interval_ms=60_000)))

        assert len(await engine.on_gesture("swipe_up")) == 1
        assert len(await engine.on_network_state(False)) == 1
        assert len(await engine.on_network_state(True, "home")) == 0
        assert len(await engine.on_schedule("0 8 * * *")) == 1
        assert len(await engine.on_interval(60_000)) == 1
        # The unmatched connected=True event leaves the earlier values in place
        assert engine.get_variable("network_connected") == "false"

    @pytest.mark.anyio
    async def test_priority_decides_start_order(self, engine, registry, make_automation) -> None:
        registry.add(
            make_automation("low", priority=1, actions=[SetVariableAction(name="first", value="low")])
        )
        registry.add(
            make_automation("high", priority=9, actions=[SetVariableAction(name="first", value="high")])
        )
        tasks = engine.dispatch(ButtonEvent())
        assert [t.get_name() for t in tasks] == ["automation:high", "automation:low"]
        await asyncio.gather(*tasks)

    @pytest.mark.anyio
    async def test_manual_execution(self, engine, registry, make_automation) -> None:
        registry.add(make_automation("manual"))
        assert (await engine.execute_automation("manual")).success is True
        missing = await engine.execute_automation("ghost")
        assert missing.success is False
        assert missing.message == "Automation not found: ghost"


class TestVariableEvents:
    """Tests for variable_changed events."""

    @pytest.mark.anyio
    async def test_variable_change_fires_automation(self, registry, make_automation) -> None:
        config = EngineConfig()
        config.scheduler.enabled = False
        config.engine.emit_variable_events = True
        engine = AutomationEngine(registry=registry, config=config)
        registry.add(
            make_automation(
                "setter",
                actions=[SetVariableAction(name="mode", value="night")],
            )
        )
        registry.add(
            make_automation(
                "watcher",
                trigger=VariableChangedTrigger(variable_name="mode", value="night"),
                actions=[SetVariableAction(name="lights", value="off")],
            )
        )

        await engine.on_button_pressed()
        await asyncio.sleep(0.01)

        assert engine.get_variable("lights") == "off"
        assert [e.automation_id for e in engine.get_execution_logs("watcher")] == ["watcher"]

    @pytest.mark.anyio
    async def test_on_variable_changed_entry_point(self, engine, registry, make_automation) -> None:
        registry.add(
            make_automation("w", trigger=VariableChangedTrigger(variable_name="t", value="5", operator=">"))
        )
        assert len(await engine.on_variable_changed("t", "7")) == 1
        assert len(await engine.on_variable_changed("t", "3")) == 0


class TestLifecycle:
    """Tests for start/shutdown and observation helpers."""

    @pytest.mark.anyio
    async def test_shutdown_cancels_running_automations(
        self, engine, registry, make_automation
    ) -> None:
        registry.add(make_automation("slow", actions=[DelayAction(duration_ms=10_000)]))
        engine.dispatch(ButtonEvent())
        await asyncio.sleep(0.01)
        assert engine.active_automations == frozenset({"slow"})

        await engine.shutdown()

        assert engine.active_automations == frozenset()
        assert engine.pending_tasks == 0
        assert engine.get_execution_logs()[0].status is ExecutionStatus.CANCELLED

    @pytest.mark.anyio
    async def test_start_with_listener(self, engine_config) -> None:
        engine_config.transport.listen_host = "127.0.0.1"
        engine_config.transport.listen_port = 0
        engine = AutomationEngine(config=engine_config)
        await engine.start(listen=True)
        try:
            assert engine.listener is not None
            assert engine.listener.is_running
        finally:
            await engine.shutdown()
        assert engine.listener is None

    @pytest.mark.anyio
    async def test_clear_helpers(self, engine, registry, make_automation) -> None:
        registry.add(make_automation("a", actions=[SetVariableAction(name="x", value="1")]))
        await engine.execute_automation("a")
        engine.clear_execution_logs()
        engine.clear_variables()
        assert engine.get_execution_logs() == []
        assert engine.get_variables() == {}
