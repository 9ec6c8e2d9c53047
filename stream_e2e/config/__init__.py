"""Configuration management for the stream harness."""

from stream_e2e.config.manager import ConfigManager, load_config
from stream_e2e.config.models import (
    EndpointConfig,
    HarnessConfig,
    MediaConfig,
    ScenarioConfig,
    ServerConfig,
)

__all__ = [
    # Manager
    "ConfigManager",
    "load_config",
    # Models
    "EndpointConfig",
    "HarnessConfig",
    "MediaConfig",
    "ScenarioConfig",
    "ServerConfig",
]
