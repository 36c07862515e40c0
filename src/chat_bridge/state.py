"""Process-wide bridge state, held in one object instead of module globals."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from .gating import GatingState
from .history import ConversationHistory
from .settings import Settings


@dataclass
class BridgeState:
    settings: Settings = field(default_factory=Settings)
    gating: GatingState = field(default_factory=GatingState)
    history: ConversationHistory = field(default_factory=ConversationHistory)
    # Flipped by the messaging gateway once the account session is connected.
    ready: bool = False

    def update_settings(self, settings: Settings) -> None:
        self.settings = settings

    def snapshot(self) -> Dict[str, Any]:
        return {
            "ready": self.ready,
            "enabled": self.gating.is_enabled(),
            "paused": self.gating.paused_ids(),
            "settings": self.settings.to_dict(),
            "conversations": {
                c: self.history.snapshot(c) for c in self.history.conversations()
            },
        }
