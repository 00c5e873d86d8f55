"""Configuration manager for loading and validating .condakit.yml"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from condakit.domain.config import AppConfig, AuditConfig, InstallerConfig, RetryPolicy, resolve_policy
from condakit.domain.config.retry import format_validation_error
from condakit.domain.errors import ConfigurationError
from condakit.domain.models.command import SelectionMode, ToolRequest

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".condakit.yml"

# Environment variable -> retry policy field
RETRY_ENV_VARS = {
    "CONDA_RETRY_DELAY": "initial_delay",
    "CONDA_RETRY_MAX": "max_attempts",
    "CONDA_RETRY_BACKOFF": "backoff_multiplier",
    "CONDA_RETRY_MAX_DELAY": "max_delay",
    "CONDA_RETRY_JITTER": "jitter",
    "CONDA_RETRY_QUIET": "quiet",
}

AUTO_INSTALLER = "auto"
UNKNOWN_ENV_NAME = "(base or unknown)"


class ConfigManager:
    """Manages configuration from .condakit.yml and environment variables

    Configuration priority:
    1. Default values (defined in Pydantic models)
    2. .condakit.yml file (searched from current directory upwards)
    3. Environment variables (CONDA_RETRY_*, CONDA_INSTALLER, PYTHON)
    4. CLI arguments (applied with with_retry_overrides)

    The environment is read once here; nothing downstream looks at it.
    """

    def __init__(self, config_path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None):
        """Initialize config manager

        Args:
            config_path: Path to .condakit.yml (searches from current dir if None)
            env: Environment mapping (os.environ if None)

        Raises:
            ConfigurationError: If configuration validation fails
        """
        if isinstance(config_path, str):
            config_path = Path(config_path)
        self.env = dict(os.environ if env is None else env)
        self.config_path = config_path or self._find_config_file()
        try:
            self.config: AppConfig = self._load_config()
        except ValidationError as e:
            raise ConfigurationError(
                format_validation_error(e, "Configuration validation failed")
            ) from e

    def _find_config_file(self) -> Optional[Path]:
        """Find .condakit.yml starting from current directory

        Returns:
            Path to config file or None if not found
        """
        current = Path.cwd()
        for parent in [current] + list(current.parents):
            config_file = parent / CONFIG_FILE_NAME
            if config_file.exists():
                logger.info(f"Found config file: {config_file}")
                return config_file
        logger.debug(f"No {CONFIG_FILE_NAME} found, using defaults")
        return None

    def _load_config(self) -> AppConfig:
        config_dict: Dict[str, Any] = {"retry": {}, "installer": {}, "audit": {}}

        if self.config_path and self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    file_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Failed to load config from {self.config_path}: {e}") from e
            if not isinstance(file_config, dict):
                raise ConfigurationError(f"{self.config_path}: top level must be a mapping")
            config_dict = self._merge_config(config_dict, file_config)
            for section in ("retry", "installer", "audit"):
                if not isinstance(config_dict[section], dict):
                    raise ConfigurationError(f"{self.config_path}: '{section}' must be a mapping")
            logger.info(f"Loaded configuration from {self.config_path}")

        config_dict = self._apply_env_overrides(config_dict)
        return AppConfig(**config_dict)

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge configuration dictionaries"""
        result = copy.deepcopy(base)
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides (empty values are ignored)"""
        for var, field in RETRY_ENV_VARS.items():
            value = self.env.get(var, "").strip()
            if value:
                config["retry"][field] = value

        installer = self.env.get("CONDA_INSTALLER", "").strip()
        if installer:
            config["installer"]["tool"] = installer

        python = self.env.get("PYTHON", "").strip()
        if python:
            config["audit"]["python"] = python

        return config

    def with_retry_overrides(self, **overrides: Any) -> RetryPolicy:
        """Retry policy from file and environment values with CLI overrides applied

        The policy is validated once, after all sources are merged, so a
        cap from one source and a delay from another are checked together.
        None values are ignored.

        Raises:
            PolicyValidationError: If the combined values are invalid
        """
        merged = dict(self.config.retry)
        merged.update({k: v for k, v in overrides.items() if v is not None})
        return resolve_policy(merged)

    def get_installer_config(self) -> InstallerConfig:
        return self.config.installer

    def get_audit_config(self) -> AuditConfig:
        return self.config.audit

    def installer_request(self, override: Optional[str] = None) -> ToolRequest:
        """Tool request for the package installer

        Args:
            override: Installer from the CLI (takes precedence over config)

        Returns:
            ToolRequest in auto, explicit or fixed-default mode
        """
        installer = self.get_installer_config()
        tool = override or installer.tool
        if tool is None:
            return ToolRequest(candidates=(installer.default,), mode=SelectionMode.FIXED_DEFAULT)
        if tool.lower() == AUTO_INSTALLER:
            return ToolRequest(candidates=tuple(installer.candidates), mode=SelectionMode.AUTO)
        return ToolRequest.explicit(tool)

    def active_env_name(self) -> str:
        """Name of the active conda environment, for progress banners"""
        name = self.env.get("CONDA_DEFAULT_ENV", "")
        if not name and self.env.get("CONDA_PREFIX"):
            name = Path(self.env["CONDA_PREFIX"].rstrip("/")).name
        return name or UNKNOWN_ENV_NAME
