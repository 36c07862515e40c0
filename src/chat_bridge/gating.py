"""Global on/off switch and per-conversation pause list."""
from __future__ import annotations

import re
from typing import List, Pattern, Union


class GatingState:
    """Decides whether the bot may answer at all, and in which conversations."""

    def __init__(self, enabled: bool = True) -> None:
        self._enabled = bool(enabled)
        self._paused: set[str] = set()

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)

    def is_enabled(self) -> bool:
        return self._enabled

    def pause(self, conversation_id: str) -> None:
        self._paused.add(conversation_id)

    def resume(self, conversation_id: str) -> None:
        self._paused.discard(conversation_id)

    def is_paused(self, conversation_id: str) -> bool:
        return conversation_id in self._paused

    def paused_ids(self) -> List[str]:
        return sorted(self._paused)


class GroupMatcher:
    """Recognises group conversations by id pattern or an explicit flag."""

    DEFAULT_PATTERN = r"@g\.us$"

    def __init__(self, pattern: Union[str, Pattern[str], None] = DEFAULT_PATTERN) -> None:
        # An empty pattern would match every id and silence the bot.
        if isinstance(pattern, re.Pattern) and pattern.pattern:
            self.pattern = pattern
        elif isinstance(pattern, str) and pattern:
            self.pattern = re.compile(pattern)
        else:
            self.pattern = re.compile(self.DEFAULT_PATTERN)

    def is_group(self, conversation_id: str, flag: bool = False) -> bool:
        return bool(flag) or bool(self.pattern.search(conversation_id or ""))
