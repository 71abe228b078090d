"""Test configuration hooks and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from udp_trigger.automation.actions import ActionInterpreter
from udp_trigger.automation.history import ExecutionHistory
from udp_trigger.automation.models import Automation, ButtonPressedTrigger
from udp_trigger.automation.persistence import InMemoryAutomationStore
from udp_trigger.automation.registry import AutomationRegistry
from udp_trigger.automation.variables import VariableStore
from udp_trigger.core.config import ExecutionConfig
from udp_trigger.core.http import HttpResponse


# Configure anyio to only use asyncio backend (skip trio tests)
@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio to use only asyncio backend."""
    return "asyncio"


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryAutomationStore:
    return InMemoryAutomationStore()


@pytest.fixture
def registry(store: InMemoryAutomationStore, clock: FakeClock) -> AutomationRegistry:
    registry = AutomationRegistry(store, clock=clock)
    registry.load(create_defaults=False)
    return registry


@pytest.fixture
def variables() -> VariableStore:
    return VariableStore()


@pytest.fixture
def history() -> ExecutionHistory:
    return ExecutionHistory()


@pytest.fixture
def packet_transport() -> MagicMock:
    transport = MagicMock()
    transport.send_udp = AsyncMock(return_value=None)
    transport.send_tcp = AsyncMock(return_value=None)
    return transport


@pytest.fixture
def http_transport() -> MagicMock:
    transport = MagicMock()
    transport.aclose = AsyncMock(return_value=None)
    transport.request = AsyncMock(return_value=HttpResponse(status_code=200, body_snippet="ok"))
    return transport


@pytest.fixture
def effects() -> MagicMock:
    effects = MagicMock()
    effects.launch_app.return_value = True
    return effects


@pytest.fixture
def diagnostics() -> MagicMock:
    return MagicMock()


@pytest.fixture
def execution_config() -> ExecutionConfig:
    return ExecutionConfig()


@pytest.fixture
def interpreter(
    registry: AutomationRegistry,
    variables: VariableStore,
    history: ExecutionHistory,
    packet_transport: MagicMock,
    http_transport: MagicMock,
    effects: MagicMock,
    diagnostics: MagicMock,
    execution_config: ExecutionConfig,
    clock: FakeClock,
) -> ActionInterpreter:
    return ActionInterpreter(
        registry=registry,
        variables=variables,
        history=history,
        packet_transport=packet_transport,
        http_transport=http_transport,
        effects=effects,
        diagnostics=diagnostics,
        config=execution_config,
        clock=clock,
    )


@pytest.fixture
def make_automation() -> Callable[..., Automation]:
    """Factory for automations with a button trigger unless told otherwise."""

    def factory(automation_id: str = "test", actions: list[Any] | None = None, **kwargs: Any):
        kwargs.setdefault("name", automation_id.replace("_", " ").title())
        kwargs.setdefault("trigger", ButtonPressedTrigger())
        return Automation(id=automation_id, actions=actions or [], **kwargs)

    return factory
