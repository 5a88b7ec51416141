"""Configuration loading for the clustermon server and agent."""

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

from clustermon.shared.errors import ConfigError
from clustermon.shared.logger import parse_level

ENV_PREFIX = "CLUSTERMON_"
LEGACY_ENV_PREFIX = "INSTATUS_MONITOR_"
ENV_FILE = ".env"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def load_config(
    config_path: str | None = None,
    defaults: dict[str, Any] | None = None,
    env_prefixes: tuple[str, ...] = (LEGACY_ENV_PREFIX, ENV_PREFIX),
    env_file: str | None = ENV_FILE,
) -> dict[str, Any]:
    """Load configuration from a JSON file, a ``.env`` file and the environment.

    Values are layered: ``defaults`` first, then the JSON file, then any
    ``<prefix><KEY>`` variable (key lower-cased) from ``env_file`` or the
    process environment. Process variables win over ``env_file`` entries, and
    later prefixes in ``env_prefixes`` win over earlier ones.

    Args:
        config_path: Optional path to a JSON configuration file.
        defaults: Optional dictionary of default values.
        env_prefixes: Prefixes of variables that override file values.
        env_file: Optional dotenv file; a missing file is ignored.

    Returns:
        Merged configuration dictionary.

    Raises:
        FileNotFoundError: If ``config_path`` is given but does not exist.
        ConfigError: If the file is not a JSON object.
    """
    config: dict[str, Any] = dict(defaults or {})

    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(path) as f:
            try:
                file_config = json.load(f)
            except json.JSONDecodeError as exc:
                raise ConfigError(f"Invalid JSON in config file: {exc}") from exc

        if not isinstance(file_config, dict):
            raise ConfigError("Config file must contain a JSON object")
        config.update(file_config)

    environment: dict[str, Any] = {}
    if env_file and Path(env_file).is_file():
        environment.update(
            (name, value) for name, value in dotenv_values(env_file).items() if value is not None
        )
    environment.update(os.environ)

    for prefix in env_prefixes:
        for name, value in environment.items():
            if name.startswith(prefix) and len(name) > len(prefix):
                config[name[len(prefix):].lower()] = value

    return config


def parse_duration(value: Any) -> float:
    """Parse a duration into seconds.

    Accepts plain numbers (seconds) or strings such as ``"90s"``, ``"5m"`` or
    ``"1h30m"``.
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration: {value!r}")

    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            parts = _DURATION_PART.findall(text)
            if not parts or "".join(n + u for n, u in parts) != text:
                raise ConfigError(f"Invalid duration: {value!r}") from None
            seconds = sum(float(n) * _UNIT_SECONDS[u] for n, u in parts)
    else:
        raise ConfigError(f"Invalid duration: {value!r}")

    if seconds <= 0:
        raise ConfigError(f"Duration must be positive: {value!r}")
    return seconds


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("1", "true", "yes", "on"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"Invalid boolean: {value!r}")


def split_listen_address(address: str) -> tuple[str, int]:
    """Split ``"host:port"`` (host optional) into a bind host and port."""
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ConfigError(f"Listen address must be host:port, got {address!r}")
    try:
        port_number = int(port)
    except ValueError:
        raise ConfigError(f"Invalid port in listen address {address!r}") from None
    if not 0 < port_number < 65536:
        raise ConfigError(f"Invalid port in listen address {address!r}")
    return host.strip("[]") or "0.0.0.0", port_number


def _required(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    if value is None or str(value).strip() == "":
        raise ConfigError(f"{key} is required")
    return str(value)


@dataclass(frozen=True)
class ServerConfig:
    """Settings for the collector server."""

    shared_secret: str
    instatus_key: str
    target_subdomain: str
    listen_address: str = ":8080"
    unhealthy_time: float = 300.0
    update_frequency: float = 60.0
    instatus_api_url: str = "https://api.instatus.com"
    request_timeout: float = 10.0
    create_components: bool = True
    log_level: str = "info"

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ServerConfig":
        config = cls(
            shared_secret=_required(raw, "shared_secret"),
            instatus_key=_required(raw, "instatus_key"),
            target_subdomain=_required(raw, "target_subdomain"),
            listen_address=str(raw.get("listen_address", cls.listen_address)),
            unhealthy_time=parse_duration(raw.get("unhealthy_time", cls.unhealthy_time)),
            update_frequency=parse_duration(raw.get("update_frequency", cls.update_frequency)),
            instatus_api_url=str(raw.get("instatus_api_url", cls.instatus_api_url)),
            request_timeout=parse_duration(raw.get("request_timeout", cls.request_timeout)),
            create_components=parse_bool(raw.get("create_components", cls.create_components)),
            log_level=str(raw.get("log_level", cls.log_level)),
        )
        split_listen_address(config.listen_address)
        parse_level(config.log_level)
        return config


@dataclass(frozen=True)
class AgentConfig:
    """Settings for the heartbeat agent."""

    shared_secret: str
    server_address: str
    host_identifier: str | None = None
    ping_frequency: float = 60.0
    request_timeout: float = 10.0
    log_level: str = "info"

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "AgentConfig":
        identifier = raw.get("host_identifier")
        if identifier is not None:
            identifier = str(identifier).strip() or None
        parse_level(str(raw.get("log_level", cls.log_level)))
        return cls(
            shared_secret=_required(raw, "shared_secret"),
            server_address=_required(raw, "server_address"),
            host_identifier=identifier,
            ping_frequency=parse_duration(raw.get("ping_frequency", cls.ping_frequency)),
            request_timeout=parse_duration(raw.get("request_timeout", cls.request_timeout)),
            log_level=str(raw.get("log_level", cls.log_level)),
        )
