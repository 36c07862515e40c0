"""Bridge configuration: built-in defaults, a YAML file, then the environment.

The file is the ``path`` argument, else ``$CHAT_BRIDGE_CONFIG``, else
``config/default.yaml``. Any key can be overridden from the environment by
spelling its path in upper case after ``CHAT_BRIDGE__``, for example
``CHAT_BRIDGE__HISTORY__MAX_TURNS=10`` or ``CHAT_BRIDGE__GROUPS__PATTERN=null``.
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

DEFAULTS: Dict[str, Any] = {
    "server": {
        "host": "127.0.0.1",
        "port": 3000,
        "cors_origins": ["*"],
        "static_dir": "public",
    },
    "services": {
        "base_url": "http://127.0.0.1:5000",
        "timeout": 120.0,
    },
    "gateway": {
        "base_url": "http://127.0.0.1:3001",
        "api_key": None,
        "timeout": 30.0,
    },
    "history": {"max_turns": 20},
    "groups": {"pattern": r"@g\.us$"},
    "voice": {"message_types": ["ptt"], "filename": "voice.ogg"},
    "settings": {"path": "data/settings.json"},
    "notices": {
        "transcription_failed": "❌ I couldn't transcribe your audio.",
        "chat_failed": "❌ Sorry, something went wrong while processing your message.",
    },
    "logging": {"level": "INFO"},
}


def _merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``extra`` into a copy of ``base``."""
    out = copy.deepcopy(base)
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


ENV_PREFIX = "CHAT_BRIDGE__"


def _env_value(raw: str) -> Any:
    """Read an env value as a YAML scalar (ints, floats, bools, null); else keep the text."""
    try:
        value = yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw
    return raw if isinstance(value, (dict, list)) else value


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    for key, raw in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        *sections, leaf = key[len(ENV_PREFIX):].lower().split("__")
        target = cfg
        for name in sections:
            if not isinstance(target.get(name), dict):
                target[name] = {}
            target = target[name]
        target[leaf] = _env_value(raw)
    return cfg


def _read_file(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path}: {e}")
    if not isinstance(data, dict):
        raise RuntimeError(f"Invalid config format in {path}, expected a mapping.")
    return data


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Return the merged configuration; a missing file means defaults only."""
    path_obj = Path(path or os.environ.get("CHAT_BRIDGE_CONFIG", "config/default.yaml"))
    if path_obj.exists():
        cfg = _merge(DEFAULTS, _read_file(path_obj))
    else:
        logger.warning("Config file not found at %s. Using defaults.", path_obj)
        cfg = copy.deepcopy(DEFAULTS)
    return _apply_env_overrides(cfg)
