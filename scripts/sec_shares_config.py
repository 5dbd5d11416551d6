import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from sec_shares_errors import ConfigurationError
from sec_shares_utils import as_str_dict, normalize_text

DEFAULT_CIK = "0000002969"
DEFAULT_CUTOFF_YEAR = 2020
DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_BACKOFF_SECONDS = 0.5
MAX_RETRIES_CEILING = 2
DEFAULT_USER_AGENT = "sec-shares-extrema/0.1 (contact: set SEC_USER_AGENT)"
DEFAULT_CORS_RELAY_URL = "https://corsproxy.io/?url={url}"
DEFAULT_FALLBACK_PATH = Path("data.json")

TRANSPORT_DIRECT = "direct"
TRANSPORT_FALLBACK = "fallback"
TRANSPORT_CORS_RELAY = "cors-relay"
TRANSPORT_RELAY = "relay"
TRANSPORTS = (TRANSPORT_DIRECT, TRANSPORT_FALLBACK, TRANSPORT_CORS_RELAY, TRANSPORT_RELAY)

ENV_OVERRIDES = {
    "SEC_USER_AGENT": "user_agent",
    "SEC_SHARES_RELAY_URL": "relay_url",
    "SEC_SHARES_TRANSPORT": "transport",
    "SEC_SHARES_TIMEOUT": "timeout_seconds",
}


@dataclass(frozen=True)
class SharesConfig:
    cutoff_year: int = DEFAULT_CUTOFF_YEAR
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    transport: str = TRANSPORT_DIRECT
    relay_url: Optional[str] = None
    cors_relay_url: str = DEFAULT_CORS_RELAY_URL
    fallback_path: Path = DEFAULT_FALLBACK_PATH
    max_retries: Optional[int] = None
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS
    user_agent: str = DEFAULT_USER_AGENT

    def effective_retries(self) -> int:
        if self.max_retries is not None:
            return self.max_retries
        # Only the first-party relay retries unless asked otherwise.
        return MAX_RETRIES_CEILING if self.transport == TRANSPORT_RELAY else 0


def _coerce_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc


def _coerce_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc


def _coerce_field(name: str, value: Any) -> Any:
    if name == "cutoff_year":
        return _coerce_int(name, value)
    if name == "max_retries":
        return None if value is None else _coerce_int(name, value)
    if name in ("timeout_seconds", "backoff_seconds"):
        return _coerce_float(name, value)
    if name == "fallback_path":
        return Path(str(value))
    if name == "relay_url":
        return normalize_text(value)
    text = normalize_text(value)
    if text is None:
        raise ConfigurationError(f"{name} must be a non-empty string")
    return text


def validate_config(config: SharesConfig) -> SharesConfig:
    if config.transport not in TRANSPORTS:
        raise ConfigurationError(
            f"Unknown transport {config.transport!r} (expected one of: {', '.join(TRANSPORTS)})"
        )
    if config.timeout_seconds <= 0:
        raise ConfigurationError("timeout_seconds must be positive")
    if config.backoff_seconds < 0:
        raise ConfigurationError("backoff_seconds must not be negative")
    if config.max_retries is not None and not 0 <= config.max_retries <= MAX_RETRIES_CEILING:
        raise ConfigurationError(f"max_retries must be between 0 and {MAX_RETRIES_CEILING}")
    return config


def apply_overrides(config: SharesConfig, overrides: Mapping[str, Any]) -> SharesConfig:
    known = {item.name for item in fields(SharesConfig)}
    changes: dict[str, Any] = {}
    for key, value in overrides.items():
        name = key.replace("-", "_")
        if name not in known:
            raise ConfigurationError(f"Unknown config key: {key}")
        changes[name] = _coerce_field(name, value)
    return validate_config(replace(config, **changes))


def load_yaml_config(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8", errors="replace"))
    except OSError as exc:
        raise ConfigurationError(f"Config file could not be read: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Config file is not valid YAML: {path}") from exc
    if payload is None:
        return {}
    payload_dict = as_str_dict(payload)
    if payload_dict is None:
        raise ConfigurationError(f"YAML root must be a mapping: {path}")
    return payload_dict


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> dict[str, Any]:
    source = os.environ if environ is None else environ
    out: dict[str, Any] = {}
    for env_name, field_name in ENV_OVERRIDES.items():
        value = normalize_text(source.get(env_name))
        if value is not None:
            out[field_name] = value
    return out


def load_config(
    path: Optional[Path] = None,
    cli_overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SharesConfig:
    """Build the effective configuration.

    Later layers win: defaults, then the YAML file, then environment
    variables, then explicit CLI values (``None`` entries are ignored).
    """
    config = SharesConfig()
    if path is not None:
        config = apply_overrides(config, load_yaml_config(path))
    config = apply_overrides(config, env_overrides(environ))
    if cli_overrides:
        present = {key: value for key, value in cli_overrides.items() if value is not None}
        config = apply_overrides(config, present)
    return config
