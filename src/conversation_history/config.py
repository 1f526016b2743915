"""Configuration loading utilities for the conversation history service.

This module handles layered configuration:
1. Explicit path argument (highest precedence)
2. Environment variable CONVERSATION_HISTORY_CONFIG
3. Fallback to "config/default.yaml"

It also supports optional overrides from environment variables with prefix
``CONVERSATION_HISTORY__`` (e.g., CONVERSATION_HISTORY__STORAGE__DATA_DIR=/tmp/h).
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "CONVERSATION_HISTORY__"
ENV_CONFIG_PATH = "CONVERSATION_HISTORY_CONFIG"

DEFAULTS: Dict[str, Any] = {
    "storage": {"backend": "disk", "data_dir": "data", "max_value_bytes": None},
    "history": {"max_entries": 50, "snapshot_limit": None},
    "index": {
        "max_conversations": 50,
        "title_chars": 50,
        "preview_chars": 100,
        "placeholder_title": "New Chat",
    },
    "server": {"cors_origins": ["*"]},
    "logging": {"level": "INFO"},
}


def _parse_scalar(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides with prefix CONVERSATION_HISTORY__."""
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        # e.g., CONVERSATION_HISTORY__INDEX__TITLE_CHARS -> cfg["index"]["title_chars"]
        parts = key[len(ENV_PREFIX):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        sub[parts[-1]] = _parse_scalar(value)
    return cfg


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load YAML configuration.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``CONVERSATION_HISTORY_CONFIG`` is consulted. As
        a last resort ``config/default.yaml`` is used.

    Returns
    -------
    Dict[str, Any]
        Defaults overlaid with the file contents, then environment overrides.
    """
    if path is None:
        path = os.environ.get(ENV_CONFIG_PATH, "config/default.yaml")

    cfg = copy.deepcopy(DEFAULTS)
    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("config file not found at %s; using defaults", path_obj)
        return _apply_env_overrides(cfg)

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path_obj}: {e}")

    if not isinstance(loaded, dict):
        raise RuntimeError(f"Invalid config format in {path_obj}, expected dict.")

    return _apply_env_overrides(_merge(cfg, loaded))
