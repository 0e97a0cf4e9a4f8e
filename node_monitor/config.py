"""
Node Monitor - Configuration.

============================================================
SOURCES (lowest to highest precedence)
============================================================
- Default values
- YAML config file
- Environment variables (NODE_MONITOR_*, .env supported)
- Command-line flags

============================================================
"""

import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse
import logging

from node_monitor.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


ENV_PREFIX = "NODE_MONITOR_"

HTTP_SCHEMES = ("http", "https")
WS_SCHEMES = ("ws", "wss")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "text")


# =============================================================
# MAIN CONFIGURATION
# =============================================================


@dataclass
class MonitorConfig:
    """Runtime configuration for the node monitor."""

    # HTTP API
    listen: str = "127.0.0.1:8080"

    # Node endpoints
    rpc_url: str = "http://localhost:8545"
    ws_url: Optional[str] = None  # enables push + reconcile mode

    # Chain
    block_frequency: int = 12

    # Polling
    poll_grace_seconds: float = 1.0
    rpc_timeout_seconds: float = 10.0

    # Subscription
    ws_max_reconnect_attempts: int = 10

    # Telemetry & logging
    tracing: bool = False
    log_level: str = "INFO"
    log_format: str = "text"

    @property
    def dual_channel(self) -> bool:
        """Whether a push channel is configured."""
        return bool(self.ws_url)

    # ---------------------------------------------------------
    # Loading
    # ---------------------------------------------------------

    @classmethod
    def from_env(cls, base: Optional["MonitorConfig"] = None) -> "MonitorConfig":
        """
        Overlay environment variables on a base configuration.

        Environment variables:
        - NODE_MONITOR_LISTEN
        - NODE_MONITOR_RPC_URL
        - NODE_MONITOR_WS_URL
        - NODE_MONITOR_BLOCK_FREQUENCY
        - NODE_MONITOR_POLL_GRACE_SECONDS
        - NODE_MONITOR_RPC_TIMEOUT_SECONDS
        - NODE_MONITOR_WS_MAX_RECONNECT_ATTEMPTS
        - NODE_MONITOR_TRACING
        - NODE_MONITOR_LOG_LEVEL
        - NODE_MONITOR_LOG_FORMAT
        """
        config = base or cls()
        overrides: Dict[str, Any] = {}

        for f in fields(cls):
            raw = os.getenv(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            overrides[f.name] = _coerce(f.name, raw, f.type)

        return replace(config, **overrides)

    @classmethod
    def from_yaml(cls, path: Path, base: Optional["MonitorConfig"] = None) -> "MonitorConfig":
        """
        Load configuration from a YAML file.

        Raises:
            ConfigurationError: If the file cannot be read or parsed
        """
        import yaml

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load config file {path}: {e}", cause=e)

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys in {path}: {', '.join(unknown)}")

        config = base or cls()
        return replace(config, **{k: v for k, v in data.items() if k in known})

    # ---------------------------------------------------------
    # Validation
    # ---------------------------------------------------------

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors
        """
        errors = []

        if not _has_scheme(self.rpc_url, HTTP_SCHEMES):
            errors.append(f"rpc_url must be an http(s) URL, got {self.rpc_url!r}")

        if self.ws_url and not _has_scheme(self.ws_url, WS_SCHEMES):
            errors.append(f"ws_url must be a ws(s) URL, got {self.ws_url!r}")

        try:
            self.listen_host_port()
        except ValueError as e:
            errors.append(str(e))

        if (
            isinstance(self.block_frequency, bool)
            or not isinstance(self.block_frequency, int)
            or self.block_frequency <= 0
        ):
            errors.append("block_frequency must be a positive integer")

        if not _is_number(self.poll_grace_seconds) or self.poll_grace_seconds < 0:
            errors.append("poll_grace_seconds must not be negative")

        if not _is_number(self.rpc_timeout_seconds) or self.rpc_timeout_seconds <= 0:
            errors.append("rpc_timeout_seconds must be positive")

        if (
            isinstance(self.ws_max_reconnect_attempts, bool)
            or not isinstance(self.ws_max_reconnect_attempts, int)
            or self.ws_max_reconnect_attempts < 0
        ):
            errors.append("ws_max_reconnect_attempts must not be negative")

        if str(self.log_level).upper() not in LOG_LEVELS:
            errors.append(f"log_level must be one of {', '.join(LOG_LEVELS)}")

        if self.log_format not in LOG_FORMATS:
            errors.append(f"log_format must be one of {', '.join(LOG_FORMATS)}")

        return errors

    def validated(self) -> "MonitorConfig":
        """
        Return self if valid.

        Raises:
            ConfigurationError: Listing every validation error
        """
        errors = self.validate()
        if errors:
            raise ConfigurationError(
                f"Invalid configuration: {'; '.join(errors)}",
                errors=errors,
            )
        return self

    def listen_host_port(self) -> Tuple[str, int]:
        """
        Parse the listen address.

        Accepts ``host:port`` and ``[ipv6]:port``.

        Raises:
            ValueError: If the address cannot be parsed
        """
        address = self.listen.strip() if isinstance(self.listen, str) else ""
        host, sep, port_text = address.rpartition(":")
        if not sep or not host or not port_text.isdigit():
            raise ValueError(f"listen must be host:port, got {self.listen!r}")

        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        elif ":" in host:
            raise ValueError(f"IPv6 listen address must be bracketed, got {self.listen!r}")

        port = int(port_text)
        if not 0 <= port < 65536:
            raise ValueError(f"listen port out of range: {port}")
        return host, port

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


# =============================================================
# HELPERS
# =============================================================


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _has_scheme(url: Optional[str], schemes: Tuple[str, ...]) -> bool:
    if not isinstance(url, str) or not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme.lower() in schemes and bool(parsed.netloc)


def _coerce(name: str, raw: str, annotation: Any) -> Any:
    """Convert an environment string to the field's declared type."""
    if annotation in (bool, "bool"):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    try:
        if annotation in (int, "int"):
            return int(raw)
        if annotation in (float, "float"):
            return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}", cause=e)
    return raw


def load_config(
    config_file: Optional[Path] = None,
    env_file: Optional[Path] = None,
    **overrides: Any,
) -> MonitorConfig:
    """
    Build configuration from all sources.

    Args:
        config_file: Optional YAML file
        env_file: Optional .env file (nearest .env is searched for otherwise)
        **overrides: Values from the command line; None means "not given"

    Returns:
        MonitorConfig (not yet validated)
    """
    from dotenv import load_dotenv

    load_dotenv(dotenv_path=env_file)

    config = MonitorConfig()
    if config_file:
        config = MonitorConfig.from_yaml(config_file, base=config)
    config = MonitorConfig.from_env(base=config)

    given = {k: v for k, v in overrides.items() if v is not None}
    if given:
        config = replace(config, **given)
    return config
