import os
import yaml
from dataclasses import fields, replace
from typing import List, Optional
from dotenv import load_dotenv
from . .models import log, BuildConfig, ConfigError

DEFAULT_CONFIG_PATHS = ["epubsmith.yaml", os.path.expanduser("~/.config/epubsmith/config.yaml")]

ENV_OVERRIDES = {
    "EPUBSMITH_IMAGE_BASE_URL": "image_base_url",
    "EPUBSMITH_PUBLISHER": "publisher",
    "EPUBSMITH_DELAY_MIN": "delay_min",
    "EPUBSMITH_DELAY_MAX": "delay_max",
    "EPUBSMITH_FETCH_TIMEOUT": "fetch_timeout",
    "EPUBSMITH_MAX_RETRIES": "max_retries",
}

_FIELD_TYPES = {f.name: f.type for f in fields(BuildConfig)}

def _coerce(name: str, value):
    kind = _FIELD_TYPES[name]
    try:
        if kind in (float, "float"):
            return float(value)
        if kind in (int, "int"):
            return int(value)
        if kind in (bool, "bool"):
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        return str(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid value for {name}: {value!r}")

def _read_yaml(path: str) -> dict:
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping, got {type(data).__name__}")
    return data

def load_config(path: Optional[str] = None, search_paths: Optional[List[str]] = None) -> BuildConfig:
    """Defaults, then the first config file found, then EPUBSMITH_* environment variables."""
    load_dotenv()
    config = BuildConfig()

    if path:
        if not os.path.exists(path):
            raise ConfigError(f"Config file not found: {path}")
        candidates = [path]
    else:
        candidates = [p for p in (search_paths if search_paths is not None else DEFAULT_CONFIG_PATHS) if os.path.exists(p)]

    if candidates:
        data = _read_yaml(candidates[0])
        updates = {}
        for key, value in data.items():
            if key not in _FIELD_TYPES:
                log.warning(f"Ignoring unknown config key '{key}' in {candidates[0]}")
                continue
            updates[key] = _coerce(key, value)
        config = replace(config, **updates)
        log.info(f"Loaded config from {candidates[0]}")

    env_updates = {}
    for env_name, attr in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            env_updates[attr] = _coerce(attr, value)
    if env_updates:
        config = replace(config, **env_updates)

    validate_config(config)
    return config

def validate_config(config: BuildConfig) -> None:
    if config.delay_min < 0 or config.delay_max < 0:
        raise ConfigError("Politeness delays must not be negative")
    if config.delay_min > config.delay_max:
        raise ConfigError(f"delay_min ({config.delay_min}) is greater than delay_max ({config.delay_max})")
    if config.fetch_timeout <= 0:
        raise ConfigError("fetch_timeout must be positive")
    if config.max_retries < 1:
        raise ConfigError("max_retries must be at least 1")
