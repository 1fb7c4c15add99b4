"""
Configuration module for tracelet.

Configuration Priority (highest to lowest):
    1. Programmatic configuration via configure()
    2. Environment variables
    3. Default values

Environment Variables:
    TRACELET_ENABLED: Enable/disable span recording (default: true)
    TRACELET_SERVICE_NAME: Service name attached to spans (default: unknown-service)
    TRACELET_RECORDER_CAPACITY: Spans kept by the in-memory recorder (default: 4096)
    TRACELET_EXPORT_PATH: JSON-lines file receiving span documents (default: unset)
    TRACELET_LOG_LEVEL: Logging verbosity for tracelet loggers (default: WARNING)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

__all__ = [
    "TracingConfig",
    "get_config",
    "configure",
    "reset_config",
]

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _get_bool_env(key: str, default: bool) -> bool:
    """Parse boolean from environment variable."""
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ('true', '1', 'yes', 'on')


def _get_int_env(key: str, default: int) -> int:
    """Parse int from environment variable."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class TracingConfig:
    """
    Configuration for tracelet.

    Attributes:
        enabled: Master switch; when off, tracers hand out no-op spans.
        service_name: Service name attached to every span.
        recorder_capacity: Maximum spans retained by the in-memory recorder.
        export_path: Optional JSON-lines file for span documents.
        log_level: Level of the "tracelet" logger.

    Examples:
        !!! example "Configure via environment"
            ```bash
            export TRACELET_SERVICE_NAME="orderflow"
            export TRACELET_EXPORT_PATH="./spans.jsonl"
            ```
    """

    enabled: bool = True
    service_name: str = "unknown-service"
    recorder_capacity: int = 4096
    export_path: str | None = None
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> TracingConfig:
        """Create configuration from environment variables."""
        return cls(
            enabled=_get_bool_env("TRACELET_ENABLED", True),
            service_name=os.getenv("TRACELET_SERVICE_NAME", "unknown-service"),
            recorder_capacity=_get_int_env("TRACELET_RECORDER_CAPACITY", 4096),
            export_path=os.getenv("TRACELET_EXPORT_PATH") or None,
            log_level=os.getenv("TRACELET_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: If any configuration value is invalid
        """
        if self.recorder_capacity < 1:
            raise ValueError(f"recorder_capacity must be at least 1, got {self.recorder_capacity}")
        if not self.service_name:
            raise ValueError("service_name must not be empty")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got {self.log_level}")


_config: TracingConfig | None = None


def get_config() -> TracingConfig:
    """
    Get the current configuration.

    If not explicitly configured, loads from environment variables.
    """
    global _config
    if _config is None:
        _config = TracingConfig.from_env()
    return _config


def configure(
    *,
    enabled: bool | None = None,
    service_name: str | None = None,
    recorder_capacity: int | None = None,
    export_path: str | None = None,
    log_level: str | None = None,
) -> TracingConfig:
    """
    Configure tracelet programmatically.

    Should be called at application startup, before tracers are built.

    Returns:
        The updated TracingConfig instance
    """
    global _config

    config = get_config()

    if enabled is not None:
        config.enabled = enabled
    if service_name is not None:
        config.service_name = service_name
    if recorder_capacity is not None:
        config.recorder_capacity = recorder_capacity
    if export_path is not None:
        config.export_path = export_path
    if log_level is not None:
        config.log_level = log_level.upper()

    config.validate()

    logging.getLogger("tracelet").setLevel(getattr(logging, config.log_level))

    _config = config
    return config


def reset_config() -> None:
    """
    Reset configuration to defaults.

    Primarily for testing purposes.
    """
    global _config
    _config = None
