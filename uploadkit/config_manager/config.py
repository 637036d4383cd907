"""Resolve configuration from the YAML file, environment, and CLI overrides."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from uploadkit.config_manager.upload_config import UploadConfig
from uploadkit.const import CONFIG_ENCODING
from uploadkit.helpers import get_config_path

logger = logging.getLogger(__name__)

_ENV_MAP: dict[str, str] = {
    "api_url": "UPK_API_URL",
    "auth_token": "UPK_AUTH_TOKEN",
    "user_id": "UPK_USER_ID",
    "db_path": "UPK_DB_PATH",
    "offline": "UPK_OFFLINE",
    "request_timeout": "UPK_REQUEST_TIMEOUT",
    "gc_on_start": "UPK_GC_ON_START",
}

YES_CONFIRMATION = {"1", "true", "yes", "y"}


class ConfigError(Exception):
    """Raised when the configuration file cannot be parsed."""


class ConfigManager:
    """Build the effective UploadConfig from file, env, and CLI overrides."""

    def __init__(self, config_path: Path | None = None) -> None:
        """Initialise ConfigManager.

        Args:
            config_path: YAML file holding the base configuration. Defaults
                to ``get_config_path()``.
        """
        self.config_path = Path(config_path) if config_path else get_config_path()

    def _read_file_config(self) -> dict[str, Any]:
        """Read the base configuration from the YAML file, if present.

        Raises:
            ConfigError: If the file cannot be read or is not a YAML mapping.
        """
        if not self.config_path.exists():
            return {}
        try:
            with open(self.config_path, encoding=CONFIG_ENCODING) as f:
                data = yaml.safe_load(f)
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
            raise ConfigError(
                f"Unreadable config file {self.config_path}: {exc}"
            ) from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {self.config_path} must be a mapping")
        return data

    def _read_env_overrides(self) -> dict[str, Any]:
        """Read configuration overrides from environment variables.

        Returns:
            A dictionary of configuration field names to override values.
        """
        overrides: dict[str, Any] = {}

        for field_name, env_var_name in _ENV_MAP.items():
            env_value = os.getenv(env_var_name)
            if env_value is None:
                continue

            if field_name == "request_timeout":
                try:
                    overrides[field_name] = float(env_value)
                except ValueError:
                    logger.warning("Ignoring invalid %s=%r", env_var_name, env_value)
                    continue
            elif field_name in {"offline", "gc_on_start"}:
                overrides[field_name] = env_value.lower() in YES_CONFIRMATION
            else:
                overrides[field_name] = env_value

        return overrides

    def resolve_effective_config(
        self, cli_config: dict[str, Any] | None = None
    ) -> UploadConfig:
        """Resolve the effective configuration for this run.

        Later sources win: file, then environment, then CLI.

        Args:
            cli_config: Optional CLI-provided configuration overrides. Keys
                whose value is None are ignored.

        Returns:
            The resolved ``UploadConfig``.

        Raises:
            ConfigError: If the file is unreadable or a value is invalid.
        """
        merged = {**self._read_file_config(), **self._read_env_overrides()}

        if cli_config is not None:
            merged.update({k: v for k, v in cli_config.items() if v is not None})

        try:
            return UploadConfig.model_validate(merged)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc
