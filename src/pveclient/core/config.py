from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError


@dataclass
class AppSection:
    run_id: Optional[str] = None


@dataclass
class ConnectionSection:
    hosts: List[str] = field(default_factory=list)
    username: str = ""
    password: str = ""       # secret – never log in clear text
    api_token: str = ""      # secret – never log in clear text
    otp: str = ""
    skip_certificate_check: bool = False
    timeout_sec: int = 30


@dataclass
class TasksSection:
    poll_interval_ms: int = 500
    timeout_ms: int = 10000


@dataclass
class LoggingSection:
    base_dir: str = "logs"
    console_level: str = "INFO"   # INFO..CRITICAL
    file_level: str = "DEBUG"     # DEBUG..CRITICAL


@dataclass
class AppConfig:
    app: AppSection
    connection: ConnectionSection
    tasks: TasksSection
    logging: LoggingSection

    @property
    def run_id(self) -> str:
        """12 hex chars naming this CLI run in log file names."""
        if not self.app.run_id:
            self.app.run_id = uuid.uuid4().hex[:12]
        return self.app.run_id


DEFAULT_FILES: Tuple[str, ...] = (
    "./pveclient.yml",
    os.path.expanduser("~/.config/pveclient/config.yml"),
    "/etc/pveclient/config.yml",
)


_DEFAULTS: Dict[str, Any] = {
    "app": {"run_id": None},
    "connection": {
        "hosts": [],
        "username": "",
        "password": "",
        "api_token": "",
        "otp": "",
        "skip_certificate_check": False,
        "timeout_sec": 30,
    },
    "tasks": {"poll_interval_ms": 500, "timeout_ms": 10000},
    "logging": {"base_dir": "logs", "console_level": "INFO", "file_level": "DEBUG"},
}


def _deep_merge(base: Dict[str, Any], ext: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """New dict with `ext` laid over `base`; only nested mappings are merged."""
    if not ext:
        return dict(base)
    out: Dict[str, Any] = dict(base)
    for k, v in ext.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _read_yaml_file(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping: {path}")
    return data


def _load_first_existing(files: Tuple[str, ...]) -> Dict[str, Any]:
    for p in files:
        if os.path.exists(p):
            return _read_yaml_file(p)
    return {}


def _load_env_file() -> None:
    """Load a .env file (searched from the working directory) without overriding the process env."""
    env_path = find_dotenv(usecwd=True)
    if env_path:
        load_dotenv(env_path, override=False)


def _env_to_dict(prefix: str = "PVECLIENT_") -> Dict[str, Any]:
    """
    Convert PVECLIENT_FOO__BAR=val to {"foo": {"bar": "val"}} (lowercased keys).
    """
    out: Dict[str, Any] = {}
    plen = len(prefix)
    for key, val in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[plen:].lower().split("__")
        cursor = out
        for part in path[:-1]:
            cursor = cursor.setdefault(part, {})
        cursor[path[-1]] = val
    return out


def _interpolate_env(cfg: Dict[str, Any]) -> Dict[str, Any]:
    # whole-value "${PVE_PASSWORD}" only; unset variables become ""
    def repl(v: Any) -> Any:
        if isinstance(v, str) and v.startswith("${") and v.endswith("}"):
            return os.environ.get(v[2:-1], "")
        return v

    def walk(obj: Any) -> Any:
        if isinstance(obj, dict):
            return {k: walk(repl(v)) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(repl(x)) for x in obj]
        return repl(obj)

    return walk(cfg)


def _coerce_types(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Leaf values are strings when they come from the environment: convert the
    known integer and boolean keys, and split `hosts` on commas.
    """
    def to_bool(x: Any) -> bool:
        return str(x).strip().lower() in {"1", "true", "yes", "y", "on"}

    def to_hosts(x: Any) -> List[str]:
        items = x if isinstance(x, list) else str(x or "").split(",")
        return [str(h).strip() for h in items if str(h).strip()]

    def walk(obj: Any, key_path: Tuple[str, ...] = ()) -> Any:
        if key_path[-1:] == ("hosts",):
            return to_hosts(obj)
        if isinstance(obj, dict):
            return {k: walk(v, key_path + (k,)) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(v, key_path) for v in obj]
        if key_path[-1:] == ("skip_certificate_check",):
            return to_bool(obj)
        if key_path[-1:] in [("timeout_sec",), ("poll_interval_ms",), ("timeout_ms",)]:
            try:
                return int(obj)
            except (TypeError, ValueError):
                raise ConfigError(f"Expected an integer for {'.'.join(key_path)}: {obj!r}")
        return obj

    return walk(cfg)


def _validate(cfg: Dict[str, Any]) -> None:
    conn = cfg.get("connection", {})
    missing = []
    if not conn.get("hosts"):
        missing.append("connection.hosts")
    if not conn.get("api_token") and not conn.get("username"):
        missing.append("connection.username (or connection.api_token)")
    if missing:
        raise ConfigError("Missing required configuration: " + ", ".join(missing))


def load_config(
    cli_overrides: Optional[Dict[str, Any]] = None,
    files: Tuple[str, ...] = DEFAULT_FILES,
    env_prefix: str = "PVECLIENT_",
    *,
    require_connection: bool = True,
) -> AppConfig:
    """
    Resolve the pveclient settings.

    Later sources win: defaults, the first YAML file found in `files`,
    PVECLIENT_SECTION__KEY variables (a .env file counts as environment),
    then `cli_overrides`. Hosts may be a list or "a,b:8007". Without
    `require_connection=False`, a host and a username or API token are
    mandatory.
    """
    _load_env_file()

    file_cfg = _load_first_existing(files)
    env_cfg = _env_to_dict(env_prefix)

    merged: Dict[str, Any] = _DEFAULTS
    for layer in (file_cfg, env_cfg, cli_overrides):
        merged = _deep_merge(merged, layer)

    merged = _interpolate_env(merged)
    merged = _coerce_types(merged)

    if require_connection:
        _validate(merged)

    try:
        return AppConfig(
            app=AppSection(**merged.get("app", {})),
            connection=ConnectionSection(**merged.get("connection", {})),
            tasks=TasksSection(**merged.get("tasks", {})),
            logging=LoggingSection(**merged.get("logging", {})),
        )
    except TypeError as e:
        raise ConfigError(f"Unknown configuration key: {e}") from e
