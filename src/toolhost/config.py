"""Host configuration loader.

Loads the host configuration from a YAML file. Every setting has a default,
so an empty mapping yields a working in-memory host.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from toolhost.plugin.handshake import DEFAULT_HANDSHAKE, HandshakeConfig

DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_PLUGIN_START_TIMEOUT = 10.0


class ConfigLoadError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def expand_env_vars(value: str) -> str:
    """Expand environment variables in a string.

    Supports ${VAR_NAME} syntax. Unknown variables are left unchanged.

    Args:
        value: String potentially containing environment variable references.

    Returns:
        String with known environment variables expanded.
    """
    pattern = re.compile(r"\$\{([^}]+)\}")

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value
        if var_name == "HOME":
            return os.path.expanduser("~")
        return match.group(0)

    return pattern.sub(replacer, value)


@dataclass
class HostConfig:
    """Tool host configuration."""

    version: str = "1"

    # Store
    database_path: str = ":memory:"

    # Plugins
    plugins_directory: str = ""
    handshake: HandshakeConfig = field(default_factory=lambda: DEFAULT_HANDSHAKE)
    plugin_start_timeout: float = DEFAULT_PLUGIN_START_TIMEOUT
    rpc_timeout: float | None = None
    plugins_watch: bool = False

    # External HTTP clients
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    # Audit and logging
    audit_log_file: str = ""
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> HostConfig:
        """Create a HostConfig from a configuration dictionary.

        Args:
            config: Dictionary parsed from YAML configuration.

        Returns:
            HostConfig instance with all settings populated.

        Raises:
            ConfigLoadError: If a section has the wrong shape.
        """
        database = _section(config, "database")
        plugins = _section(config, "plugins")
        handshake = _section(plugins, "handshake")
        http = _section(config, "http")
        audit = _section(config, "audit")
        logging_cfg = _section(config, "logging")

        rpc_timeout = plugins.get("rpc_timeout")

        return cls(
            version=str(config.get("version", "1")),
            database_path=expand_env_vars(str(database.get("path", ":memory:"))),
            plugins_directory=expand_env_vars(str(plugins.get("directory", ""))),
            handshake=HandshakeConfig(
                protocol_version=int(
                    handshake.get("protocol_version", DEFAULT_HANDSHAKE.protocol_version)
                ),
                magic_cookie_key=str(
                    handshake.get("magic_cookie_key", DEFAULT_HANDSHAKE.magic_cookie_key)
                ),
                magic_cookie_value=str(
                    handshake.get("magic_cookie_value", DEFAULT_HANDSHAKE.magic_cookie_value)
                ),
            ),
            plugin_start_timeout=float(
                plugins.get("start_timeout", DEFAULT_PLUGIN_START_TIMEOUT)
            ),
            rpc_timeout=float(rpc_timeout) if rpc_timeout is not None else None,
            plugins_watch=bool(plugins.get("watch", False)),
            http_timeout=float(http.get("timeout", DEFAULT_HTTP_TIMEOUT)),
            audit_log_file=expand_env_vars(str(audit.get("log_file", ""))),
            log_level=str(logging_cfg.get("level", "INFO")).upper(),
        )


def _section(config: dict[str, Any], name: str) -> dict[str, Any]:
    value = config.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigLoadError(f"'{name}' must be a mapping")
    return value


def load_config(path: Path) -> HostConfig:
    """Load host configuration from a YAML file.

    Args:
        path: Path to the configuration YAML file.

    Returns:
        HostConfig instance.

    Raises:
        ConfigLoadError: If the file cannot be found, parsed, or validated.
    """
    if not path.exists():
        raise ConfigLoadError(f"Config file not found: {path}")

    try:
        with open(path) as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Failed to parse config YAML: {e}") from e

    if not isinstance(config, dict):
        raise ConfigLoadError("Config must be a YAML mapping")

    if "version" not in config:
        raise ConfigLoadError("Config must include 'version' field")

    try:
        host_config = HostConfig.from_dict(config)
    except (TypeError, ValueError) as e:
        raise ConfigLoadError(f"Invalid config value: {e}") from e

    # Relative plugin directories are relative to the config file
    plugins_dir = host_config.plugins_directory
    if plugins_dir and not Path(plugins_dir).is_absolute():
        host_config.plugins_directory = str(path.parent / plugins_dir)
    return host_config
