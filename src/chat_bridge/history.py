"""In-memory conversation history keyed by conversation id."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

USER = "user"
ASSISTANT = "assistant"
ROLES = (USER, ASSISTANT)


@dataclass(frozen=True)
class Turn:
    role: str
    content: str

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"role must be one of {ROLES}, got {self.role!r}")

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


class ConversationHistory:
    """Ordered turns per conversation, oldest first.

    Histories are independent lists; :meth:`trim` drops from the front so the
    most recent turns survive.
    """

    def __init__(self) -> None:
        self._turns: Dict[str, List[Turn]] = {}

    def get(self, conversation_id: str) -> Tuple[Turn, ...]:
        """Return the turns for ``conversation_id`` (empty when unknown)."""
        return tuple(self._turns.get(conversation_id, ()))

    def append(self, conversation_id: str, turn: Turn) -> None:
        self._turns.setdefault(conversation_id, []).append(turn)

    def trim(self, conversation_id: str, max_turns: int) -> None:
        """Discard the oldest turns until at most ``max_turns`` remain."""
        turns = self._turns.get(conversation_id)
        if not turns or len(turns) <= max_turns:
            return
        del turns[: len(turns) - max(0, max_turns)]

    def snapshot(self, conversation_id: str) -> List[Dict[str, str]]:
        """Return ``[{role, content}, ...]`` for the chat service payload."""
        return [t.to_dict() for t in self._turns.get(conversation_id, ())]

    def conversations(self) -> List[str]:
        return sorted(self._turns)

    def clear(self, conversation_id: str) -> None:
        self._turns.pop(conversation_id, None)
