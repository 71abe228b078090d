"""Core modules for the UDP Trigger automation engine.

This package contains:
- Configuration management
- Logging utilities
- Packet transport and the UDP listener
- HTTP transport
- Platform effect and diagnostic sinks
"""

from .config import (
    EngineConfig,
    ExecutionConfig,
    HTTPClientConfig,
    LoggingConfig,
    RetryPolicyConfig,
    SchedulerConfig,
    StorageConfig,
    TransportConfig,
)
from .effects import (
    ConsolePlatformEffects,
    DiagnosticSink,
    LoggingDiagnosticSink,
    PlatformEffects,
)
from .http import HttpResponse, HttpTransport, HttpxTransport
from .logger import get_logger, log_exception, setup_logging
from .transport import AsyncioPacketTransport, PacketTransport, UdpPacketListener

__all__ = [
    # Config
    "EngineConfig",
    "ExecutionConfig",
    "HTTPClientConfig",
    "LoggingConfig",
    "RetryPolicyConfig",
    "SchedulerConfig",
    "StorageConfig",
    "TransportConfig",
    # Logging
    "get_logger",
    "log_exception",
    "setup_logging",
    # Transports
    "PacketTransport",
    "AsyncioPacketTransport",
    "UdpPacketListener",
    "HttpResponse",
    "HttpTransport",
    "HttpxTransport",
    # Sinks
    "PlatformEffects",
    "DiagnosticSink",
    "ConsolePlatformEffects",
    "LoggingDiagnosticSink",
]
