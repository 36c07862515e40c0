"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest
import yaml

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from chat_bridge.messaging import Messenger, MessagingError  # noqa: E402
from chat_bridge.services import (  # noqa: E402
    ChatService,
    ChatServiceError,
    Transcriber,
    TranscriptionError,
)


# -----------------------------
# Fake collaborators
# -----------------------------
class FakeMessenger(Messenger):
    """Records every outbound call in order."""

    def __init__(self, chats: Optional[List[Dict[str, Any]]] = None) -> None:
        self.calls: List[Tuple[str, ...]] = []
        self.chats = chats or []
        self.fail_chats = False

    async def send_text(self, chat_id: str, text: str) -> None:
        self.calls.append(("text", chat_id, text))

    async def send_typing(self, chat_id: str) -> None:
        self.calls.append(("typing", chat_id))

    async def clear_state(self, chat_id: str) -> None:
        self.calls.append(("clear", chat_id))

    async def list_chats(self) -> List[Dict[str, Any]]:
        if self.fail_chats:
            raise MessagingError("gateway down")
        return list(self.chats)

    def texts(self) -> List[Tuple[str, str]]:
        return [(c[1], c[2]) for c in self.calls if c[0] == "text"]


class FakeChat(ChatService):
    """Answers ``re:<message>`` and records each request."""

    def __init__(self) -> None:
        self.requests: List[Dict[str, Any]] = []
        self.fail = False
        self.notifications: List[Tuple[str, str]] = []
        self.fail_notifications = False

    async def reply(self, prompt, agent_name, message, conversation) -> str:
        self.requests.append(
            {
                "prompt": prompt,
                "agentName": agent_name,
                "message": message,
                "conversation": conversation,
            }
        )
        if self.fail:
            raise ChatServiceError("backend exploded")
        return f"re:{message}"

    async def notify_pause(self, conversation_id: str) -> None:
        self.notifications.append(("pause", conversation_id))
        if self.fail_notifications:
            raise RuntimeError("service unreachable")

    async def notify_resume(self, conversation_id: str) -> None:
        self.notifications.append(("resume", conversation_id))
        if self.fail_notifications:
            raise RuntimeError("service unreachable")


class FakeTranscriber(Transcriber):
    def __init__(self, text: str = "transcribed text") -> None:
        self.text = text
        self.fail = False
        self.calls: List[Tuple[bytes, str]] = []

    async def transcribe(self, audio: bytes, mimetype: str) -> str:
        self.calls.append((audio, mimetype))
        if self.fail:
            raise TranscriptionError("whisper crashed")
        return self.text


# -----------------------------
# Fixtures
# -----------------------------
@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the root directory of the project."""
    return Path(__file__).resolve().parent.parent


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def chat() -> FakeChat:
    return FakeChat()


@pytest.fixture
def transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Minimal config writing settings under tmp_path and serving no static dir."""
    path = tmp_path / "config.yaml"
    cfg = {
        "server": {"static_dir": None},
        "settings": {"path": str(tmp_path / "settings.json")},
        "history": {"max_turns": 20},
    }
    path.write_text(yaml.safe_dump(cfg), encoding="utf-8")
    return path


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run with a clean environment (no leftover vars)."""
    import os

    for var in list(os.environ):
        if var == "CHAT_BRIDGE_CONFIG" or var.startswith("CHAT_BRIDGE__"):
            monkeypatch.delenv(var, raising=False)
    yield
