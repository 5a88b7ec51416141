"""Shared utilities for the clustermon server and agent."""

from clustermon.shared.config import AgentConfig, ServerConfig, load_config, parse_duration
from clustermon.shared.errors import (
    AuthError,
    ClusterMonError,
    ConfigError,
    ProviderError,
    StartupError,
    ValidationError,
)
from clustermon.shared.logger import configure_logging, get_logger

__all__ = [
    "AgentConfig",
    "ServerConfig",
    "load_config",
    "parse_duration",
    "AuthError",
    "ClusterMonError",
    "ConfigError",
    "ProviderError",
    "StartupError",
    "ValidationError",
    "configure_logging",
    "get_logger",
]
