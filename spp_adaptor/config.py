"""
Configuration management for spp-adaptor.

Two layers:
- AdaptorConfig: backend credentials/endpoint taken from pipeline state
  ``configuration``. Selects the authentication strategy.
- SettingsFile: ``$SPP_ADAPTOR_HOME/config.yaml`` holding a default
  ``configuration`` block and ``logging`` settings for the CLI.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml


PASSWORD_STRATEGY = "password"
TOKEN_STRATEGY = "token"

DEFAULT_TIMEOUT = 30.0

# Keys accepted in pipeline state configuration, mapped to AdaptorConfig fields
_KEY_ALIASES = {
    "endpoint": "endpoint",
    "baseUrl": "endpoint",
    "base_url": "endpoint",
    "host": "endpoint",
    "username": "username",
    "password": "password",
    "database": "database",
    "accessToken": "access_token",
    "access_token": "access_token",
    "timeout": "timeout",
}


class ConfigError(Exception):
    """Configuration validation error."""
    pass


@dataclass(frozen=True)
class AdaptorConfig:
    """Backend connection settings for one pipeline invocation."""

    endpoint: str
    username: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None
    access_token: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AdaptorConfig":
        """Build config from a state ``configuration`` mapping.

        Unknown keys are ignored. Secrets may be supplied through the
        ``SPP_PASSWORD`` and ``SPP_ACCESS_TOKEN`` environment variables when
        absent from the mapping.

        Raises:
            ConfigError: If the mapping is missing or invalid.
        """
        if not isinstance(data, Mapping):
            raise ConfigError("State configuration must be a mapping")

        values: dict[str, Any] = {}
        for key, value in data.items():
            target = _KEY_ALIASES.get(key)
            if target is not None and value is not None:
                values[target] = value

        if "password" not in values and os.environ.get("SPP_PASSWORD"):
            values["password"] = os.environ["SPP_PASSWORD"]
        if "access_token" not in values and os.environ.get("SPP_ACCESS_TOKEN"):
            values["access_token"] = os.environ["SPP_ACCESS_TOKEN"]

        if "endpoint" not in values:
            raise ConfigError("Configuration is missing 'endpoint' (or 'baseUrl')")

        values["endpoint"] = str(values["endpoint"]).rstrip("/")
        try:
            values["timeout"] = float(values.get("timeout", DEFAULT_TIMEOUT))
        except (TypeError, ValueError):
            raise ConfigError(f"Invalid timeout: {values.get('timeout')!r}")

        config = cls(**values)
        config.validate()
        return config

    @property
    def auth_strategy(self) -> str:
        """Return the authentication strategy implied by the credentials."""
        if self.access_token:
            return TOKEN_STRATEGY
        return PASSWORD_STRATEGY

    def validate(self) -> None:
        """Validate that the chosen strategy has what it needs."""
        if not self.endpoint.startswith(("http://", "https://")):
            raise ConfigError(f"Endpoint must be an http(s) URL: {self.endpoint}")

        if self.timeout <= 0:
            raise ConfigError(f"Timeout must be positive: {self.timeout}")

        if self.auth_strategy == PASSWORD_STRATEGY:
            missing = [
                name for name in ("username", "password", "database")
                if not getattr(self, name)
            ]
            if missing:
                raise ConfigError(
                    f"Password authentication requires: {', '.join(missing)}"
                )

    def __repr__(self) -> str:
        # Never echo secrets
        return (
            f"AdaptorConfig(endpoint={self.endpoint}, strategy={self.auth_strategy}, "
            f"database={self.database})"
        )


@dataclass
class SettingsFile:
    """Contents of ``config.yaml`` in the adaptor home directory."""

    path: Path
    configuration: dict[str, Any] = field(default_factory=dict)
    logging: dict[str, Any] = field(default_factory=dict)

    def get_log_file_path(self) -> Path:
        """Get log file path with date interpolation."""
        log_output = self.logging.get("output", str(self.path.parent / "logs" / "spp-adaptor-{date}.log"))
        log_output = log_output.replace("{date}", datetime.now().strftime("%Y-%m-%d"))
        return Path(log_output).expanduser()

    def get_log_level(self) -> str:
        """Get logging level."""
        return self.logging.get("level", "INFO").upper()

    def get_log_format(self) -> str:
        """Get log format (structured or pretty)."""
        return self.logging.get("format", "pretty")

    def should_log_to_console(self) -> bool:
        """Check if console logging is enabled."""
        return self.logging.get("console", True)


def get_adaptor_home() -> Path:
    """Return the adaptor home directory (``$SPP_ADAPTOR_HOME`` or default)."""
    home = os.environ.get("SPP_ADAPTOR_HOME")
    if home:
        return Path(home)
    return Path("~/.config/spp-adaptor").expanduser()


def load_config(config_path: Optional[Path] = None) -> SettingsFile:
    """
    Load adaptor settings from YAML.

    Args:
        config_path: Path to config file. Defaults to config.yaml in the
            adaptor home directory.

    Returns:
        SettingsFile instance

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigError: If the YAML is invalid or has the wrong shape
    """
    if config_path is None:
        config_path = get_adaptor_home() / "config.yaml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"spp-adaptor config.yaml not found at {config_path}. Run 'spp-adaptor init'."
        )

    try:
        with open(config_path, "r") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {config_path}")

    configuration = raw.get("configuration") or {}
    logging_cfg = raw.get("logging") or {}
    if not isinstance(configuration, dict) or not isinstance(logging_cfg, dict):
        raise ConfigError("'configuration' and 'logging' must be mappings")

    return SettingsFile(path=config_path, configuration=configuration, logging=logging_cfg)
