"""Saved defaults for the Celery setup CLI with schema validation."""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Self

from .models import (
    DEFAULT_LIMIT_NOFILE,
    DEFAULT_LOG_DIR,
    DEFAULT_RESTART_SEC,
    DEFAULT_UNIT_DIR,
    Broker,
    LogLevel,
)

HOME_ENV_VAR = "CELERY_SETUP_HOME"


class ConfigFileError(Exception):
    """Configuration file errors."""
    pass


class ConfigValidationError(ConfigFileError):
    """Raised when configuration validation fails."""
    pass


def config_home() -> Path:
    """Directory holding config.json and the deployment log."""
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override)
    return Path.home() / ".celery-setup"


class Config:
    """Manages saved defaults used to seed the setup wizard."""

    CONFIG_SCHEMA = {
        'log_dir': {'type': str, 'required': False, 'validator': 'validate_path', 'default': DEFAULT_LOG_DIR},
        'unit_dir': {'type': str, 'required': False, 'validator': 'validate_path', 'default': DEFAULT_UNIT_DIR},
        'broker': {'type': str, 'required': False, 'choices': [b.value for b in Broker], 'default': Broker.RABBITMQ.value},
        'log_level': {'type': str, 'required': False, 'choices': [lvl.value for lvl in LogLevel], 'default': LogLevel.INFO.value},
        'use_sudo': {'type': bool, 'required': False, 'default': True},
        'limit_nofile': {'type': int, 'required': False, 'min': 1024, 'max': 1048576, 'default': DEFAULT_LIMIT_NOFILE},
        'restart_sec': {'type': int, 'required': False, 'min': 0, 'max': 3600, 'default': DEFAULT_RESTART_SEC},
    }

    def __init__(self: Self, config_dir: Optional[Path] = None) -> None:
        """Initialize configuration manager.

        Args:
            config_dir: Override for the configuration directory.
        """
        self.config_dir = config_dir or config_home()
        self.config_file = self.config_dir / "config.json"

    def _ensure_directories(self: Self) -> None:
        """Create the config directory with owner-only permissions."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self.config_dir, 0o700)

    def _validate_config_schema(self: Self, config: Dict[str, Any]) -> None:
        """Validate configuration against schema.

        Args:
            config: Configuration dictionary to validate.

        Raises:
            ConfigValidationError: If validation fails.
        """
        errors = []

        unknown = sorted(set(config) - set(self.CONFIG_SCHEMA))
        if unknown:
            errors.append(f"Unknown field(s): {', '.join(unknown)}")

        for key, schema in self.CONFIG_SCHEMA.items():
            value = config.get(key)

            if schema['required'] and value is None:
                errors.append(f"Required field '{key}' is missing")
                continue

            if value is None:
                continue

            # bool is an int subclass
            if not isinstance(value, schema['type']) or (
                schema['type'] is int and isinstance(value, bool)
            ):
                errors.append(f"Field '{key}' must be of type {schema['type'].__name__}")
                continue

            if 'choices' in schema and value not in schema['choices']:
                errors.append(f"Field '{key}' must be one of: {', '.join(schema['choices'])}")

            if 'min' in schema and value < schema['min']:
                errors.append(f"Field '{key}' must be >= {schema['min']}")
            if 'max' in schema and value > schema['max']:
                errors.append(f"Field '{key}' must be <= {schema['max']}")

            if 'validator' in schema:
                validator = getattr(self, schema['validator'], None)
                if validator and not validator(value):
                    errors.append(f"Field '{key}' failed validation")

        if errors:
            raise ConfigValidationError(f"Configuration validation failed: {'; '.join(errors)}")

    def validate_path(self: Self, path: str) -> bool:
        """Paths must be absolute."""
        return isinstance(path, str) and path.startswith('/')

    def defaults(self: Self) -> Dict[str, Any]:
        return {key: schema['default'] for key, schema in self.CONFIG_SCHEMA.items()}

    def load(self: Self, validate: bool = True) -> Dict[str, Any]:
        """Load configuration from file with defaults applied.

        Args:
            validate: Whether to validate the configuration schema.

        Returns:
            Dictionary containing configuration data.

        Raises:
            ConfigFileError: If loading fails.
        """
        config = self.defaults()
        if not self.config_file.exists():
            return config

        try:
            with open(self.config_file, 'r') as f:
                stored = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise ConfigFileError(f"Failed to load configuration: {e}")

        if not isinstance(stored, dict):
            raise ConfigFileError(f"Failed to load configuration: {self.config_file} is not a JSON object")

        config.update(stored)
        if validate:
            self._validate_config_schema(config)

        return config

    def save(self: Self, config: Dict[str, Any]) -> None:
        """Validate and atomically write the configuration.

        Args:
            config: Configuration dictionary to save.

        Raises:
            ConfigFileError: If validation or saving fails.
        """
        self._validate_config_schema(config)
        self._ensure_directories()

        temp_file = self.config_file.with_suffix('.tmp')
        try:
            with open(temp_file, 'w') as f:
                json.dump(config, f, indent=2, sort_keys=True)
            os.chmod(temp_file, 0o600)
            temp_file.replace(self.config_file)
        except OSError as e:
            if temp_file.exists():
                temp_file.unlink()
            raise ConfigFileError(f"Failed to save configuration: {e}")

    def get(self: Self, key: str, default: Any = None) -> Any:
        """Get configuration value.

        Args:
            key: Configuration key to retrieve.
            default: Default value if key not found.

        Returns:
            Configuration value or default.
        """
        return self.load().get(key, default)

    def set(self: Self, key: str, value: Any) -> None:
        """Set configuration value with validation.

        Raises:
            ConfigFileError: If the key is unknown or validation fails.
        """
        if key not in self.CONFIG_SCHEMA:
            raise ConfigValidationError(f"Unknown configuration key: {key}")

        config = self.load(validate=False)
        config[key] = value
        self.save(config)

    def reset(self: Self) -> None:
        """Remove saved values so the built-in defaults apply again."""
        if self.config_file.exists():
            self.config_file.unlink()
