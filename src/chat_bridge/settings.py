"""Operator settings (prompt, agent name, reply delay) persisted to a JSON file."""
from __future__ import annotations

import json
import logging
import math
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


# -----------------------------
# Helpers
# -----------------------------
def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", encoding="utf-8", delete=False, dir=str(path.parent)) as tmp:
        tmp.write(text)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_name = tmp.name
    try:
        os.replace(tmp_name, path)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def coerce_delay(value: Any) -> int:
    """Return ``value`` as non-negative milliseconds; anything unusable is 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0
    return int(number)


@dataclass(frozen=True)
class Settings:
    """Prompt/agent/delay triple; replaced wholesale on each update."""
    prompt: Optional[str] = None
    agent_name: Optional[str] = None
    delay: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        return cls(
            prompt=data.get("prompt"),
            agent_name=data.get("agentName"),
            delay=coerce_delay(data.get("delay")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"prompt": self.prompt, "agentName": self.agent_name, "delay": self.delay}


# -----------------------------
# SettingsStore
# -----------------------------
class SettingsStore:
    """Flat JSON file holding the last saved :class:`Settings`.

    Neither method raises: a missing or unreadable file loads as ``None`` and
    a failed save only logs, since the in-memory settings stay authoritative.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> Optional[Settings]:
        if not self.path.exists():
            logger.info("No saved settings found at %s", self.path)
            return None
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read settings from %s: %s", self.path, e)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring settings file %s: expected an object", self.path)
            return None
        settings = Settings.from_dict(data)
        logger.info("Settings loaded from %s: %s", self.path, settings.to_dict())
        return settings

    def save(self, settings: Settings) -> None:
        try:
            _atomic_write_text(self.path, json.dumps(settings.to_dict(), ensure_ascii=False, indent=2))
        except Exception as e:
            logger.warning("Failed to save settings to %s: %s", self.path, e)
            return
        logger.info("Settings saved to %s", self.path)
