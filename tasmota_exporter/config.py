from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .outlets import Outlet, outlets_from_config
from .probe import DEFAULT_TIMEOUT_SECONDS

DEFAULT_LISTEN_ADDRESS = ":8092"
DEFAULT_TELEMETRY_PATH = "/metrics"
DEFAULT_LOG_LEVEL = "info"

ENV_OUTLETS = "TASMOTA_OUTLETS"
ENV_LISTEN_ADDRESS = "TASMOTA_LISTEN_ADDR"
ENV_CONFIG_FILE = "TASMOTA_EXPORTER_CONFIG"
ENV_LOG_LEVEL = "LOG_LEVEL"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Settings:
    outlets: Tuple[Outlet, ...]
    listen_address: str = DEFAULT_LISTEN_ADDRESS
    telemetry_path: str = DEFAULT_TELEMETRY_PATH
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def host_port(self) -> Tuple[str, int]:
        return parse_listen_address(self.listen_address)


def parse_listen_address(s: str) -> Tuple[str, int]:
    s = s.strip()
    try:
        if s.startswith(":"):
            host, port = "", int(s[1:])
        elif ":" in s:
            host, port_s = s.rsplit(":", 1)
            port = int(port_s)
        else:
            host, port = "", int(s)
    except ValueError as e:
        raise ConfigError(f"invalid listen address {s!r}: expected [host]:port") from e

    if not (0 <= port <= 65535):
        raise ConfigError(f"invalid listen address {s!r}: port out of range")
    return host, port


def load_config_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e

    try:
        if path.lower().endswith(".json"):
            data = json.loads(raw)
        else:
            data = yaml.safe_load(raw)
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot parse config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Config root must be a mapping/object")
    return data


def _section(cfg: Dict[str, Any], key: str) -> Dict[str, Any]:
    v = cfg.get(key, {})
    return v if isinstance(v, dict) else {}


def _first(*values: Any) -> Any:
    for v in values:
        if v is not None and v != "":
            return v
    return None


def resolve_settings(
    outlets: Optional[str] = None,
    listen_address: Optional[str] = None,
    telemetry_path: Optional[str] = None,
    timeout_seconds: Optional[float] = None,
    log_level: Optional[str] = None,
    config_file: Optional[str] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Settings:
    """Merge flags, environment and config file, in that order of precedence."""
    env = os.environ if environ is None else environ

    cfg_path = _first(config_file, env.get(ENV_CONFIG_FILE, "").strip())
    cfg = load_config_file(cfg_path) if cfg_path else {}
    web_cfg = _section(cfg, "web")
    scrape_cfg = _section(cfg, "scrape")

    raw_outlets = _first(outlets, env.get(ENV_OUTLETS, "").strip(), cfg.get("outlets"))
    if raw_outlets is None:
        raise ConfigError(f"--outlets flag is required (or set {ENV_OUTLETS})")
    try:
        outlet_list: List[Outlet] = outlets_from_config(raw_outlets)
    except ValueError as e:
        raise ConfigError(str(e)) from e
    if not outlet_list:
        raise ConfigError("no valid outlet configurations found")

    listen = str(_first(listen_address, env.get(ENV_LISTEN_ADDRESS, "").strip(), web_cfg.get("listen_address"), DEFAULT_LISTEN_ADDRESS))
    parse_listen_address(listen)

    path = str(_first(telemetry_path, web_cfg.get("telemetry_path"), DEFAULT_TELEMETRY_PATH))
    if not path.startswith("/"):
        raise ConfigError(f"telemetry path must start with '/', got {path!r}")

    try:
        timeout = float(_first(timeout_seconds, scrape_cfg.get("timeout_seconds"), DEFAULT_TIMEOUT_SECONDS))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid scrape timeout: {e}") from e
    if timeout <= 0:
        raise ConfigError(f"scrape timeout must be > 0, got {timeout}")

    level = str(_first(log_level, env.get(ENV_LOG_LEVEL, "").strip(), cfg.get("log_level"), DEFAULT_LOG_LEVEL)).lower()

    return Settings(
        outlets=tuple(outlet_list),
        listen_address=listen,
        telemetry_path=path,
        timeout_seconds=timeout,
        log_level=level,
    )
