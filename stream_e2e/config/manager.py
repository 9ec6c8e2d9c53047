"""
Configuration management for the stream harness.

This module handles loading, validating, and saving configuration from YAML files.
"""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from stream_e2e.config.models import HarnessConfig
from stream_e2e.utils import ConfigurationError, get_logger

logger = get_logger(__name__)


class ConfigManager:
    """Manages harness configuration."""

    DEFAULT_CONFIG_LOCATIONS = [
        Path.home() / ".stream-e2e.yaml",
        Path.home() / ".config" / "stream-e2e" / "config.yaml",
        Path.cwd() / ".stream-e2e.yaml",
    ]

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Optional path to configuration file
        """
        self.config_path = config_path
        self._config: Optional[HarnessConfig] = None

    @property
    def config(self) -> HarnessConfig:
        """
        Get current configuration, loading it if necessary.

        Raises:
            ConfigurationError: If configuration cannot be loaded
        """
        if self._config is None:
            self._config = self.load()
        return self._config

    def load(self, config_path: Optional[Path] = None) -> HarnessConfig:
        """
        Load configuration from file or create default.

        Args:
            config_path: Optional path to configuration file

        Returns:
            Loaded HarnessConfig

        Raises:
            ConfigurationError: If configuration file is invalid
        """
        path = config_path or self.config_path

        if path:
            if not path.exists():
                raise ConfigurationError(f"Configuration file not found: {path}")
            self._config = self._load_from_file(path)
            return self._config

        for default_path in self.DEFAULT_CONFIG_LOCATIONS:
            if default_path.exists():
                logger.info(f"Loading configuration from {default_path}")
                self._config = self._load_from_file(default_path)
                return self._config

        logger.debug("No configuration file found, using defaults")
        self._config = HarnessConfig.create_default()
        return self._config

    def _load_from_file(self, path: Path) -> HarnessConfig:
        """
        Load configuration from YAML file.

        Raises:
            ConfigurationError: If file cannot be loaded or parsed
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration: {e}") from e

        if data is None:
            raise ConfigurationError(f"Configuration file is empty: {path}")
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file must hold a mapping: {path}")

        try:
            config = HarnessConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e

        logger.debug(f"Successfully loaded configuration from {path}")
        return config

    def save(self, path: Optional[Path] = None, config: Optional[HarnessConfig] = None) -> None:
        """
        Save configuration to file.

        Args:
            path: Path to save configuration (uses default if None)
            config: Configuration to save (uses current if None)

        Raises:
            ConfigurationError: If configuration cannot be saved
        """
        cfg = config or self.config
        save_path = path or self.config_path or self.DEFAULT_CONFIG_LOCATIONS[0]

        try:
            save_path.parent.mkdir(parents=True, exist_ok=True)
            data = cfg.model_dump(mode="json")
            with open(save_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, indent=2)
            logger.info(f"Configuration saved to {save_path}")
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration: {e}") from e

    def init_default_config(self, path: Optional[Path] = None, force: bool = False) -> Path:
        """
        Initialize default configuration file.

        Args:
            path: Path to create configuration file (uses default if None)
            force: Overwrite existing file

        Returns:
            Path to created configuration file

        Raises:
            ConfigurationError: If file already exists and force=False
        """
        target_path = path or self.DEFAULT_CONFIG_LOCATIONS[0]

        if target_path.exists() and not force:
            raise ConfigurationError(
                f"Configuration file already exists: {target_path}. Use force=True to overwrite."
            )

        self.save(target_path, HarnessConfig.create_default())
        return target_path


def load_config(config_path: Optional[Path] = None) -> HarnessConfig:
    """
    Load harness configuration.

    Args:
        config_path: Optional path to configuration file

    Returns:
        HarnessConfig instance
    """
    return ConfigManager(config_path).load()
