"""YAML configuration loading with defaults."""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from recap.digest.summarizer import PROVIDERS
from recap.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"
WEBHOOK_ENV_VAR = "DISCORD_WEBHOOK"

WATERMARK_MODES = ("inclusive", "exclusive")

DEFAULTS: Dict[str, Any] = {
    "scheduler": {
        "interval_seconds": 86400,
    },
    "watermark": {
        "mode": "inclusive",
    },
    "llm": {
        "provider": "mock",
        "model": "gpt-4o-mini",
        "max_tokens": 400,
        "temperature": 0.3,
        "local_url": "http://localhost:11434/v1",
        "local_model": "llama3.2",
    },
    "notify": {
        "webhook_url": None,
        "prefix": "Daily Digest: ",
    },
    "timeouts": {
        "storage_seconds": 30,
        "summarize_seconds": 120,
        "notify_seconds": 15,
    },
}


def load_config(path: Optional[str] = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """Load the YAML config at ``path`` merged over :data:`DEFAULTS`.

    A missing file is not an error; defaults are used. The ``DISCORD_WEBHOOK``
    environment variable, when set, overrides ``notify.webhook_url``.
    """
    raw: Dict[str, Any] = {}
    if path and Path(path).exists():
        with open(path, "r", encoding="utf-8") as f:
            try:
                raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"{path} must contain a mapping at top level")
    elif path:
        logger.info("Config file %s not found; using defaults", path)

    config = merge_config(DEFAULTS, raw)

    env_url = os.environ.get(WEBHOOK_ENV_VAR)
    if env_url:
        config["notify"]["webhook_url"] = env_url

    validate_config(config)
    return config


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursive dict merge; ``override`` wins. Neither input is mutated."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def validate_config(config: Dict[str, Any]) -> None:
    """Raise ConfigError for values the scheduler cannot run with."""
    interval = config.get("scheduler", {}).get("interval_seconds")
    if not isinstance(interval, (int, float)) or isinstance(interval, bool) or interval <= 0:
        raise ConfigError(f"scheduler.interval_seconds must be a positive number, got {interval!r}")

    mode = config.get("watermark", {}).get("mode")
    if mode not in WATERMARK_MODES:
        raise ConfigError(f"watermark.mode must be one of {WATERMARK_MODES}, got {mode!r}")

    provider = config.get("llm", {}).get("provider")
    if provider not in PROVIDERS:
        raise ConfigError(f"llm.provider must be one of {PROVIDERS}, got {provider!r}")

    for key, value in config.get("timeouts", {}).items():
        if value is not None and (not isinstance(value, (int, float)) or value <= 0):
            raise ConfigError(f"timeouts.{key} must be a positive number or null, got {value!r}")
