"""Configuration models and loading with file/env/override priority.

Priority (highest first):
- explicit overrides passed by the caller
- environment variables (``YUUGEN_*``)
- TOML config file (``./yuugen.toml`` or ``~/.yuugen/config.toml``)
- model defaults
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from yuugen.errors import ConfigError

logger = logging.getLogger(__name__)

LogLevelName = Literal["debug", "info", "warn", "error", "critical"]
DropPolicyName = Literal["oldest", "newest"]

CONFIG_FILE_NAME = "yuugen.toml"
HOME_CONFIG_PATH = Path("~/.yuugen/config.toml")


class RetryPolicy(BaseModel):
    """Bounded exponential backoff policy."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=30.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    jitter: bool = True


class TelemetryConfig(BaseModel):
    """Batching and remote submission settings for error reports."""

    model_config = ConfigDict(extra="forbid")

    enable_remote: bool = False
    remote_endpoint: Optional[str] = None
    batch_size: int = Field(default=10, ge=1)
    flush_interval: float = Field(default=30.0, gt=0)
    include_sensitive_data: bool = False
    include_stack_trace: bool = True
    max_queue_size: int = Field(default=1000, ge=1)
    drop_policy: DropPolicyName = "oldest"
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout: float = Field(default=10.0, gt=0)


class LoggerConfig(BaseModel):
    """Local and remote log channel settings."""

    model_config = ConfigDict(extra="forbid")

    level: LogLevelName = "info"
    enable_console: bool = True
    enable_remote: bool = False
    remote_endpoint: Optional[str] = None
    batch_size: int = Field(default=50, ge=1)
    flush_interval: float = Field(default=30.0, gt=0)
    include_stack_trace: bool = False
    include_sensitive_data: bool = False
    max_queue_size: int = Field(default=1000, ge=1)
    drop_policy: DropPolicyName = "oldest"
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout: float = Field(default=10.0, gt=0)


class TracingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enable_otlp: bool = False
    otlp_endpoint: Optional[str] = None
    service_name: str = "yuugen-sdk"


class SDKConfig(BaseModel):
    """
    Settings passed to ``YuugenSDK.initialize``.

    Only types are enforced here; semantic checks (API key length, URL
    scheme, timeout bounds) are made at initialization so that they surface
    as ``SDKIntegrationError`` with troubleshooting guidance.
    """

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    api_key: str = ""
    environment: str = "production"
    base_url: Optional[str] = None
    timeout: float = 5.0
    debug_mode: bool = False
    enable_analytics: bool = True


class YuugenSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sdk: SDKConfig = Field(default_factory=SDKConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    reporting: TelemetryConfig = Field(default_factory=TelemetryConfig)
    logging: LoggerConfig = Field(default_factory=LoggerConfig)
    tracing: TracingConfig = Field(default_factory=TracingConfig)


# section name -> (model, prefix used for flat keys)
_SECTIONS: Dict[str, Tuple[Type[BaseModel], str]] = {
    "sdk": (SDKConfig, ""),
    "retry": (RetryPolicy, ""),
    "reporting": (TelemetryConfig, "reporting_"),
    "logging": (LoggerConfig, "log_"),
    "tracing": (TracingConfig, "tracing_"),
}

_ENV_VARS: Dict[str, Tuple[str, str]] = {
    "YUUGEN_API_KEY": ("api_key", "str"),
    "YUUGEN_ENVIRONMENT": ("environment", "str"),
    "YUUGEN_BASE_URL": ("base_url", "str"),
    "YUUGEN_TIMEOUT": ("timeout", "float"),
    "YUUGEN_DEBUG": ("debug_mode", "bool"),
    "YUUGEN_ENABLE_ANALYTICS": ("enable_analytics", "bool"),
    "YUUGEN_MAX_ATTEMPTS": ("max_attempts", "int"),
    "YUUGEN_ENABLE_REPORTING": ("reporting_enable_remote", "bool"),
    "YUUGEN_REPORTING_ENDPOINT": ("reporting_remote_endpoint", "str"),
    "YUUGEN_LOG_LEVEL": ("log_level", "str"),
    "YUUGEN_LOG_ENDPOINT": ("log_remote_endpoint", "str"),
    "YUUGEN_OTLP_ENDPOINT": ("tracing_otlp_endpoint", "str"),
}


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _convert(value: str, kind: str) -> Any:
    try:
        if kind == "bool":
            return _parse_bool(value)
        if kind == "int":
            return int(value)
        if kind == "float":
            return float(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid value {value!r} in environment", {"expected": kind}) from exc
    return value


def find_config_file() -> Optional[str]:
    """Return the first config file found in the cwd or the home directory."""
    local = Path.cwd() / CONFIG_FILE_NAME
    if local.is_file():
        return str(local)
    home = HOME_CONFIG_PATH.expanduser()
    if home.is_file():
        return str(home)
    return None


def load_toml_config(path: str) -> Dict[str, Any]:
    """Load a TOML file into a nested dict. Missing files yield ``{}``."""
    file_path = Path(path).expanduser()
    if not file_path.is_file():
        return {}
    try:
        with file_path.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {file_path}", {"error": str(exc)}) from exc


def flatten_config(nested: Dict[str, Any]) -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for section, values in nested.items():
        if section not in _SECTIONS or not isinstance(values, dict):
            raise ConfigError(f"Unknown configuration section '{section}'")
        _, prefix = _SECTIONS[section]
        for key, value in values.items():
            flat[f"{prefix}{key}"] = value
    return flat


def unflatten_config(flat: Dict[str, Any]) -> Dict[str, Any]:
    remaining = dict(flat)
    nested: Dict[str, Any] = {}
    for section, (model, prefix) in _SECTIONS.items():
        for field_name in model.model_fields:
            flat_key = f"{prefix}{field_name}"
            if flat_key in remaining:
                nested.setdefault(section, {})[field_name] = remaining.pop(flat_key)
    if remaining:
        raise ConfigError("Unknown configuration keys", {"keys": sorted(remaining)})
    return nested


def load_config_from_env(flat: bool = True) -> Dict[str, Any]:
    """Read ``YUUGEN_*`` variables; unset variables are omitted."""
    values: Dict[str, Any] = {}
    for env_name, (key, kind) in _ENV_VARS.items():
        raw = os.getenv(env_name)
        if raw is None or raw == "":
            continue
        values[key] = _convert(raw, kind)
    return values if flat else unflatten_config(values)


def load_config_with_priority(
    config_file: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Merge file, environment and explicit overrides into a flat dict."""
    path = config_file or find_config_file()
    merged: Dict[str, Any] = {}
    if path:
        merged.update(flatten_config(load_toml_config(path)))
        logger.debug("Loaded configuration file %s", path)
    merged.update(load_config_from_env(flat=True))
    if overrides:
        merged.update({k: v for k, v in overrides.items() if v is not None})
    return merged


def validate_config(values: Dict[str, Any]) -> YuugenSettings:
    """Build settings from a nested dict, raising ConfigError on bad values."""
    try:
        return YuugenSettings.model_validate(values)
    except ValidationError as exc:
        problems = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        raise ConfigError("Invalid configuration", {"errors": "; ".join(problems)}) from exc


def load_settings(
    config_file: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> YuugenSettings:
    flat = load_config_with_priority(config_file=config_file, overrides=overrides)
    return validate_config(unflatten_config(flat))


def coerce_retry_policy(policy: Any) -> RetryPolicy:
    """Accept a RetryPolicy, a mapping of its fields, or None."""
    if policy is None:
        return RetryPolicy()
    if isinstance(policy, RetryPolicy):
        return policy
    try:
        return RetryPolicy.model_validate(policy)
    except ValidationError as exc:
        raise ConfigError("Invalid retry policy", {"errors": str(exc)}) from exc
