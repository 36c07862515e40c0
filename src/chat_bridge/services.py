"""Clients for the local transcription and chat-completion service.

Both endpoints live on the same HTTP service::

    POST /transcribe   multipart, field ``audio``      -> {"text": ...}
    POST /chat         {prompt, agentName, message,    -> {"response": ...}
                        conversation: [{role, content}]}
    POST /pause        {chatId}                        (response ignored)
    POST /resume       {chatId}                        (response ignored)

No call is retried; failures surface as :class:`TranscriptionError` or
:class:`ChatServiceError` and the caller decides what the user sees.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(120.0, connect=5.0)


class TranscriptionError(RuntimeError):
    """Audio could not be turned into text."""


class ChatServiceError(RuntimeError):
    """The chat service failed to produce a reply."""


# -----------------------------
# Interfaces
# -----------------------------
class Transcriber(ABC):
    @abstractmethod
    async def transcribe(self, audio: bytes, mimetype: str) -> str:
        """Return the transcript of ``audio`` or raise TranscriptionError."""


class ChatService(ABC):
    @abstractmethod
    async def reply(
        self,
        prompt: Optional[str],
        agent_name: Optional[str],
        message: str,
        conversation: List[Dict[str, str]],
    ) -> str:
        """Return the assistant reply or raise ChatServiceError."""

    async def notify_pause(self, conversation_id: str) -> None:
        """Tell the service a conversation was paused (optional)."""

    async def notify_resume(self, conversation_id: str) -> None:
        """Tell the service a conversation was resumed (optional)."""


# -----------------------------
# HTTP implementation
# -----------------------------
class HttpServiceClient(Transcriber, ChatService):
    """Talks to the local service over a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:5000",
        *,
        timeout: float | httpx.Timeout | None = None,
        filename: str = "voice.ogg",
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.filename = filename
        if timeout is None:
            timeout = DEFAULT_TIMEOUT
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post_json(self, path: str, error_cls: type[RuntimeError], **kwargs: Any) -> Dict[str, Any]:
        try:
            resp = await self._client.post(path, **kwargs)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            raise error_cls(f"POST {path} failed: {e}") from e
        except ValueError as e:
            raise error_cls(f"POST {path} returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise error_cls(f"POST {path} returned {type(data).__name__}, expected object")
        return data

    async def transcribe(self, audio: bytes, mimetype: str) -> str:
        files = {"audio": (self.filename, audio, mimetype)}
        data = await self._post_json("/transcribe", TranscriptionError, files=files)
        text = data.get("text")
        if not isinstance(text, str):
            raise TranscriptionError("transcription response has no 'text' field")
        logger.info("Transcript: %s", text)
        return text

    async def reply(
        self,
        prompt: Optional[str],
        agent_name: Optional[str],
        message: str,
        conversation: List[Dict[str, str]],
    ) -> str:
        payload = {
            "prompt": prompt,
            "agentName": agent_name,
            "message": message,
            "conversation": conversation,
        }
        data = await self._post_json("/chat", ChatServiceError, json=payload)
        answer = data.get("response")
        if not isinstance(answer, str):
            raise ChatServiceError("chat response has no 'response' field")
        return answer

    async def notify_pause(self, conversation_id: str) -> None:
        await self._client.post("/pause", json={"chatId": conversation_id})

    async def notify_resume(self, conversation_id: str) -> None:
        await self._client.post("/resume", json={"chatId": conversation_id})
