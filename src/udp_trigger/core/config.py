"""Configuration management for UDP Trigger.

This module provides configuration models and loading functionality using Pydantic
for validation and type safety.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DOTENV_LOADED = False


def _load_env_once() -> None:
    """Load environment variables from a .env file exactly once."""

    global _DOTENV_LOADED
    if not _DOTENV_LOADED:
        load_dotenv()
        _DOTENV_LOADED = True


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand environment variables in configuration data."""

    if isinstance(data, str):
        return os.path.expandvars(data)
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    return data


class RetryPolicyConfig(BaseModel):
    """Configuration for HTTP retry behaviour."""

    max_attempts: int = Field(
        default=1,
        ge=1,
        description="Maximum number of attempts (including the first request)",
    )
    backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Initial delay in seconds before retrying",
    )
    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        description="Multiplier applied to the backoff delay after each failure",
    )
    max_backoff_seconds: float = Field(
        default=30.0,
        ge=0.0,
        description="Maximum delay cap between retries",
    )


class HTTPClientConfig(BaseModel):
    """Default HTTP client configuration for the http_request action."""

    timeout: float = Field(default=10.0, ge=0.0, description="Default HTTP timeout in seconds")
    retry: RetryPolicyConfig = Field(
        default_factory=RetryPolicyConfig,
        description="Retry policy for transport-level failures",
    )
    response_snippet_length: int = Field(
        default=100,
        ge=0,
        description="Number of response body characters kept in _last_http_response",
    )


class TransportConfig(BaseModel):
    """Packet transport and listener settings."""

    connect_timeout: float = Field(
        default=5.0, gt=0.0, description="TCP connect/write timeout in seconds"
    )
    listen_enabled: bool = Field(default=False, description="Start the UDP listener on serve")
    listen_host: str = Field(default="0.0.0.0", description="UDP listener bind host")
    listen_port: int = Field(default=5000, ge=0, le=65535, description="UDP listener bind port")
    max_packet_size: int = Field(
        default=65507, ge=1, description="Datagrams are truncated to this many bytes"
    )


class StorageConfig(BaseModel):
    """Where automation definitions and persistent variables are stored."""

    automations_path: str | None = Field(
        default=None,
        description="JSON file holding automation definitions (None keeps them in memory)",
    )
    variables_path: str | None = Field(
        default=None,
        description="JSON file holding variables written with persist=true",
    )
    create_defaults: bool = Field(
        default=True,
        description="Seed the built-in automations when nothing has been stored yet",
    )


class ExecutionConfig(BaseModel):
    """Interpreter limits and behaviour switches."""

    max_run_depth: int = Field(
        default=32,
        ge=1,
        description="Maximum nesting of run_automation actions before the call fails",
    )
    execution_timeout_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Wall-clock limit for a single automation run (None disables it)",
    )
    emit_variable_events: bool = Field(
        default=False,
        description="Dispatch variable_changed events when a variable value changes",
    )


class SchedulerConfig(BaseModel):
    """Configuration for the schedule/interval trigger bridge."""

    enabled: bool = Field(default=True, description="Enable schedule and interval triggers")
    timezone: str = Field(default="UTC", description="Scheduler default timezone")


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    log_file: str | None = Field(default=None, description="Log file path")
    max_bytes: int = Field(default=10485760, description="Max log file size (10MB)")
    backup_count: int = Field(default=5, description="Number of backup files")

    @field_validator("level")
    @classmethod
    def normalise_level(cls, value: str) -> str:
        level = (value or "INFO").strip().upper()
        if level == "WARN":
            level = "WARNING"
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {value}")
        return level


class EngineConfig(BaseSettings):
    """Main configuration for the automation engine."""

    model_config = SettingsConfigDict(
        env_prefix="UDP_TRIGGER_",
        env_nested_delimiter="__",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    http: HTTPClientConfig = Field(
        default_factory=HTTPClientConfig, description="HTTP client settings"
    )
    transport: TransportConfig = Field(
        default_factory=TransportConfig, description="Packet transport settings"
    )
    storage: StorageConfig = Field(
        default_factory=StorageConfig, description="Automation storage settings"
    )
    engine: ExecutionConfig = Field(
        default_factory=ExecutionConfig, description="Interpreter settings"
    )
    scheduler: SchedulerConfig = Field(
        default_factory=SchedulerConfig, description="Scheduler configuration"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> EngineConfig:
        """Load configuration from a YAML file."""

        _load_env_once()
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as handle:
            try:
                config_data = yaml.safe_load(handle)
            except yaml.YAMLError as exc:
                raise ValueError(f"Invalid YAML in config file: {exc}") from exc

        if not config_data:
            config_data = {}

        config_data = _expand_env_vars(config_data)
        return cls(**config_data)

    @classmethod
    def from_json(cls, path: str | Path) -> EngineConfig:
        """Load configuration from a JSON file."""

        import json

        _load_env_once()
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as handle:
            try:
                config_data = json.load(handle)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid JSON in config file: {exc}") from exc

        config_data = _expand_env_vars(config_data)
        return cls(**config_data)

    @classmethod
    def load(cls, path: str | Path | None = None) -> EngineConfig:
        """Load configuration picking the parser from the file suffix."""

        if path is None:
            _load_env_once()
            return cls()
        if Path(path).suffix.lower() == ".json":
            return cls.from_json(path)
        return cls.from_yaml(path)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""

        return self.model_dump()
