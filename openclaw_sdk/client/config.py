"""Gateway client configuration with layered precedence.

Configuration precedence (highest wins):
1. Environment variables (OPENCLAW_*)
2. Project config (<workspace>/.openclaw/client.json)
3. User config (~/.openclaw/client.json)
4. Built-in defaults

Usage:
    from openclaw_sdk.client.config import load_client_config

    config = load_client_config(workspace_path=Path.cwd())
    print(config.gateway.url, config.recovery.backoff_ms)

Environment Variables:
    OPENCLAW_GATEWAY_URL: Gateway WebSocket URL (default: ws://localhost:18789)
    OPENCLAW_GATEWAY_TOKEN: Bearer token sent in the handshake
    OPENCLAW_AUTO_RECONNECT: Enable automatic reconnection (default: true)
    OPENCLAW_BACKOFF_MS: Comma-separated reconnect delays in milliseconds
    OPENCLAW_HANDSHAKE_TIMEOUT: Seconds to wait for hello-ok (default: 10.0)
    OPENCLAW_SETTLE_DELAY: Seconds between hello-ok and the first refresh (default: 0.5)
    OPENCLAW_POLLING: Enable periodic health/session polling (default: true)
    OPENCLAW_HEALTH_INTERVAL: Health poll interval seconds (default: 30.0)
    OPENCLAW_SESSIONS_INTERVAL: Sessions/usage poll interval seconds (default: 60.0)
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, get_type_hints

from ..events import PROTOCOL_VERSION

logger = logging.getLogger(__name__)


CONFIG_DIR = ".openclaw"
CONFIG_FILE = "client.json"

DEFAULT_GATEWAY_URL = "ws://localhost:18789"
DEFAULT_BACKOFF_MS = (1000, 2000, 4000, 8000, 15000, 30000, 60000)
DEFAULT_SCOPES = ("operator.admin", "operator.approvals", "operator.pairing")


def _parse_bool(value: str) -> bool:
    """Parse boolean from string."""
    return value.lower() in ("true", "1", "yes", "on")


def _parse_int_list(value: str) -> List[int]:
    return [int(part) for part in value.split(",") if part.strip()]


def _parse_env_value(value: str, target_type: Type) -> Any:
    """Parse environment variable value to target type."""
    # Extract inner type from Optional
    args = getattr(target_type, '__args__', ())
    if args and type(None) in args:
        inner_types = [a for a in args if a is not type(None)]
        if inner_types:
            target_type = inner_types[0]

    origin = getattr(target_type, '__origin__', None)
    if origin is list:
        return _parse_int_list(value)
    if target_type == bool:
        return _parse_bool(value)
    elif target_type == int:
        return int(value)
    elif target_type == float:
        return float(value)
    return value


@dataclass
class GatewayConfig:
    """Where to connect and how the client identifies itself.

    Attributes:
        url: Gateway WebSocket URL (``ws://`` or ``wss://``).
        token: Bearer token forwarded in the ``connect`` request.
        client_id: Client identifier announced in the handshake.
        client_version: Client version announced in the handshake.
        platform: Platform announced in the handshake.
        mode: Client mode announced in the handshake.
        display_name: Human readable client name.
        role: Requested role.
        scopes: Requested operator scopes.
        min_protocol: Lowest protocol version the client speaks.
        max_protocol: Highest protocol version the client speaks.
        locale: Client locale.
        user_agent: Client user agent string.
    """
    url: str = DEFAULT_GATEWAY_URL
    token: str = ""
    client_id: str = "cli"
    client_version: str = "1.0.0"
    platform: str = "windows"
    mode: str = "cli"
    display_name: str = "OpenClaw Windows Tray"
    role: str = "operator"
    scopes: List[str] = field(default_factory=lambda: list(DEFAULT_SCOPES))
    min_protocol: int = PROTOCOL_VERSION
    max_protocol: int = PROTOCOL_VERSION
    locale: str = "en-US"
    user_agent: str = "moltbot-windows-tray/1.0.0"

    def __post_init__(self):
        """Validate configuration values."""
        if not self.url.startswith(("ws://", "wss://")):
            raise ValueError("url must start with ws:// or wss://")
        if self.min_protocol > self.max_protocol:
            raise ValueError("min_protocol must be <= max_protocol")


@dataclass
class RecoveryConfig:
    """Connection recovery settings.

    Reconnect delays follow a fixed table indexed by the number of
    consecutive failures; the last entry is the cap.

    Attributes:
        enabled: Whether automatic reconnection is enabled.
        backoff_ms: Reconnect delays in milliseconds, nondecreasing.
        handshake_timeout: Seconds to wait for ``hello-ok`` after the
            transport opened before dropping the connection.
        settle_delay: Seconds between ``hello-ok`` and the initial
            health/sessions/usage requests.
    """
    enabled: bool = True
    backoff_ms: List[int] = field(default_factory=lambda: list(DEFAULT_BACKOFF_MS))
    handshake_timeout: float = 10.0
    settle_delay: float = 0.5

    def __post_init__(self):
        """Validate configuration values."""
        if not self.backoff_ms:
            raise ValueError("backoff_ms must not be empty")
        if any(d < 0 for d in self.backoff_ms):
            raise ValueError("backoff_ms entries must be >= 0")
        if any(b < a for a, b in zip(self.backoff_ms, self.backoff_ms[1:])):
            raise ValueError("backoff_ms must be nondecreasing")
        if self.handshake_timeout <= 0:
            raise ValueError("handshake_timeout must be positive")
        if self.settle_delay < 0:
            raise ValueError("settle_delay must be >= 0")


@dataclass
class PollingConfig:
    """Periodic refresh settings.

    Attributes:
        enabled: Whether the client polls the gateway on its own.
        health_interval: Seconds between health checks.
        sessions_interval: Seconds between sessions/usage refreshes.
    """
    enabled: bool = True
    health_interval: float = 30.0
    sessions_interval: float = 60.0

    def __post_init__(self):
        """Validate configuration values."""
        if self.health_interval <= 0:
            raise ValueError("health_interval must be positive")
        if self.sessions_interval <= 0:
            raise ValueError("sessions_interval must be positive")


@dataclass
class ClientConfig:
    """Root client configuration.

    Attributes:
        gateway: Endpoint and handshake identity.
        recovery: Connection recovery settings.
        polling: Periodic refresh settings.
    """
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)


_SECTIONS: Dict[str, Type] = {
    "gateway": GatewayConfig,
    "recovery": RecoveryConfig,
    "polling": PollingConfig,
}

# Maps "section.field" paths to environment variable names
ENV_VAR_MAPPING: Dict[str, str] = {
    "gateway.url": "OPENCLAW_GATEWAY_URL",
    "gateway.token": "OPENCLAW_GATEWAY_TOKEN",
    "recovery.enabled": "OPENCLAW_AUTO_RECONNECT",
    "recovery.backoff_ms": "OPENCLAW_BACKOFF_MS",
    "recovery.handshake_timeout": "OPENCLAW_HANDSHAKE_TIMEOUT",
    "recovery.settle_delay": "OPENCLAW_SETTLE_DELAY",
    "polling.enabled": "OPENCLAW_POLLING",
    "polling.health_interval": "OPENCLAW_HEALTH_INTERVAL",
    "polling.sessions_interval": "OPENCLAW_SESSIONS_INTERVAL",
}


def get_config_paths(workspace_path: Optional[Path] = None) -> Dict[str, Path]:
    """Get the paths where config files are searched.

    Returns:
        Dict with 'user' and optionally 'project' paths.
    """
    paths = {
        "user": Path.home() / CONFIG_DIR / CONFIG_FILE,
    }
    if workspace_path:
        paths["project"] = Path(workspace_path) / CONFIG_DIR / CONFIG_FILE
    return paths


def _find_config_files(workspace_path: Optional[Path] = None) -> List[Path]:
    """Existing config files ordered from lowest to highest precedence."""
    return [p for p in get_config_paths(workspace_path).values() if p.exists()]


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base, returning new dict.

    Lists and scalars are replaced, not merged.
    """
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _get_field_type(dataclass_type: Type, field_name: str) -> Type:
    try:
        hints = get_type_hints(dataclass_type)
        return hints.get(field_name, str)
    except Exception:
        return str


def _apply_env_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to config dict."""
    result = {k: dict(v) if isinstance(v, dict) else v for k, v in config_dict.items()}

    for path, env_var in ENV_VAR_MAPPING.items():
        env_value = os.environ.get(env_var)
        if env_value is None:
            continue

        section, field_name = path.split(".")
        if not isinstance(result.get(section), dict):
            result[section] = {}

        target_type = _get_field_type(_SECTIONS[section], field_name)
        try:
            result[section][field_name] = _parse_env_value(env_value, target_type)
            logger.debug(f"Applied env override: {env_var}={env_value}")
        except (ValueError, TypeError) as e:
            logger.warning(f"Invalid value for {env_var}: {env_value} ({e})")

    return result


def _dict_to_section(name: str, data: Any) -> Any:
    """Convert one section dict to its dataclass, falling back to defaults."""
    section_type = _SECTIONS[name]
    if not isinstance(data, dict):
        logger.warning(f"Invalid '{name}' config (expected dict), using defaults")
        return section_type()

    valid_fields = {f.name for f in fields(section_type)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}

    unknown = {k for k in data if k not in valid_fields and not k.startswith("_")}
    if unknown:
        logger.warning(f"Unknown {name} config keys (ignored): {unknown}")

    try:
        return section_type(**filtered)
    except (TypeError, ValueError) as e:
        logger.warning(f"Invalid {name} config values, using defaults: {e}")
        return section_type()


def _dict_to_config(data: Dict[str, Any]) -> ClientConfig:
    return ClientConfig(**{
        name: _dict_to_section(name, data.get(name, {}))
        for name in _SECTIONS
    })


def load_client_config(workspace_path: Optional[Path] = None) -> ClientConfig:
    """Load client configuration with layered precedence.

    Args:
        workspace_path: Path to project workspace for project-level config.
            If None, only user config and environment variables are used.

    Returns:
        Merged ClientConfig instance.
    """
    merged: Dict[str, Any] = {}

    for config_file in _find_config_files(workspace_path):
        try:
            with open(config_file) as f:
                file_config = json.load(f)

            if not isinstance(file_config, dict):
                logger.warning(f"Invalid config format in {config_file} (expected object)")
                continue

            merged = _deep_merge(merged, file_config)
            logger.debug(f"Loaded config from {config_file}")

        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in {config_file}: {e}")
        except PermissionError:
            logger.warning(f"Permission denied reading {config_file}")
        except OSError as e:
            logger.warning(f"Failed to load {config_file}: {e}")

    merged = _apply_env_overrides(merged)
    return _dict_to_config(merged)


def generate_example_config() -> str:
    """Generate an example client.json configuration file."""
    defaults = ClientConfig()
    gateway = asdict(defaults.gateway)
    gateway["token"] = "<gateway token>"
    example = {
        "_comment": "OpenClaw gateway client configuration",
        "gateway": gateway,
        "recovery": {
            "_comment": "Reconnect delays are indexed by consecutive failures",
            **asdict(defaults.recovery),
        },
        "polling": asdict(defaults.polling),
    }
    return json.dumps(example, indent=2)


__all__ = [
    "ClientConfig",
    "DEFAULT_BACKOFF_MS",
    "ENV_VAR_MAPPING",
    "GatewayConfig",
    "PollingConfig",
    "RecoveryConfig",
    "generate_example_config",
    "get_config_paths",
    "load_client_config",
]
