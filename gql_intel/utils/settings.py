"""
Settings loader
YAML config file merged over built-in defaults, with .env / environment overrides
"""

import copy
import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

from gql_intel.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "capture.yaml"

DEFAULT_SETTINGS = {
    "capture": {
        "timeout": 300,            # seconds for the whole run
        "progress_interval": 10,
        "liveness_interval": 2,
        "shutdown_grace": 5,
        "channel_size": 100,
    },
    "crawler": {
        "user_agent": (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36"
        ),
        "timeout": 30,
        "max_retries": 1,
        "max_concurrent_downloads": 4,
        "max_asset_bytes": 0,      # 0 = no cap
    },
    "browser": {
        "headless": False,
        "navigation_timeout": 45000,  # ms
    },
    "output": {
        "dir": "output",
        "log_truncate_bytes": 5000,
    },
    "logging": {
        "level": "INFO",
        "file": None,
    },
}

# env var -> (section, key, converter)
ENV_OVERRIDES = {
    "GQL_INTEL_TIMEOUT": ("capture", "timeout", float),
    "GQL_INTEL_OUTPUT_DIR": ("output", "dir", str),
    "GQL_INTEL_LOG_LEVEL": ("logging", "level", str),
    "GQL_INTEL_HEADLESS": ("browser", "headless", lambda v: v.strip().lower() in ("1", "true", "yes", "on")),
}


def _deep_merge(base, override):
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def merge_settings(settings=None):
    """Fill any section or key missing from `settings` with the defaults."""
    return _deep_merge(DEFAULT_SETTINGS, settings)


def _read_yaml(path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring config {path}: top level is not a mapping")
        return {}
    return data


def _apply_env_overrides(settings):
    for env_name, (section, key, convert) in ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None or raw == "":
            continue
        try:
            settings.setdefault(section, {})[key] = convert(raw)
        except ValueError:
            logger.warning(f"Ignoring {env_name}={raw!r}: invalid value")
    return settings


def load_settings(path=None, env_file=None):
    """
    Build the effective settings dict.

    Args:
        path: YAML config file (defaults to config/capture.yaml when present)
        env_file: Optional .env file; the default python-dotenv lookup is used otherwise

    Returns:
        Settings dict with every section of DEFAULT_SETTINGS present
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    file_settings = {}
    if config_path.exists():
        file_settings = _read_yaml(config_path)
    elif path:
        logger.warning(f"Config file not found: {config_path}, using defaults")

    settings = _deep_merge(DEFAULT_SETTINGS, file_settings)
    return _apply_env_overrides(settings)
