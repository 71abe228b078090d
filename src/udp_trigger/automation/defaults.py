"""Built-in automations seeded when nothing has been stored yet."""

from __future__ import annotations

from .models import (
    Automation,
    IncrementVariableAction,
    LogAction,
    PacketReceivedTrigger,
    SendUdpAction,
)


def create_default_automations() -> list[Automation]:
    """Return fresh copies of the default automations."""
    return [
        Automation(
            id="auto_echo",
            name="Echo Response",
            description="Automatically respond to any received packet",
            trigger=PacketReceivedTrigger(pattern=".*", use_regex=True),
            actions=[SendUdpAction(host="127.0.0.1", port=5000, content="ECHO")],
            enabled=False,
        ),
        Automation(
            id="packet_counter",
            name="Packet Counter",
            description="Count received packets",
            trigger=PacketReceivedTrigger(pattern=""),
            actions=[
                IncrementVariableAction(name="packet_count"),
                LogAction(message="Packet received: {{packet_count}}", level="DEBUG"),
            ],
        ),
    ]


__all__ = ["create_default_automations"]
