"""Inbound message pipeline: transcribe, gate, remember, ask, reply."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Set, Tuple

from .gating import GroupMatcher
from .history import ASSISTANT, USER, Turn
from .messaging import InboundMessage, MessagingError, Messenger
from .services import ChatService, ChatServiceError, Transcriber, TranscriptionError
from .state import BridgeState

logger = logging.getLogger(__name__)

DEFAULT_TRANSCRIPTION_NOTICE = "❌ I couldn't transcribe your audio."
DEFAULT_CHAT_NOTICE = "❌ Sorry, something went wrong while processing your message."


class MessagePipeline:
    """Turns each inbound message into at most one reply.

    Messages for the same conversation are handled one at a time (a lock per
    conversation id); different conversations interleave at every await.
    """

    def __init__(
        self,
        state: BridgeState,
        messenger: Messenger,
        chat: ChatService,
        transcriber: Transcriber,
        *,
        max_turns: int = 20,
        groups: Optional[GroupMatcher] = None,
        voice_types: tuple[str, ...] = ("ptt",),
        transcription_notice: str = DEFAULT_TRANSCRIPTION_NOTICE,
        chat_notice: str = DEFAULT_CHAT_NOTICE,
    ) -> None:
        self.state = state
        self.messenger = messenger
        self.chat = chat
        self.transcriber = transcriber
        self.max_turns = max(1, int(max_turns))
        self.groups = groups or GroupMatcher()
        self.voice_types = tuple(voice_types)
        self.transcription_notice = transcription_notice
        self.chat_notice = chat_notice
        # conversation id -> (lock, holders + waiters); dropped when unused
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}
        self._tasks: Set[asyncio.Task[Any]] = set()

    @classmethod
    def from_config(
        cls,
        cfg: Dict[str, Any],
        state: BridgeState,
        messenger: Messenger,
        chat: ChatService,
        transcriber: Transcriber,
    ) -> "MessagePipeline":
        notices = cfg.get("notices", {})
        return cls(
            state,
            messenger,
            chat,
            transcriber,
            max_turns=int(cfg.get("history", {}).get("max_turns", 20)),
            groups=GroupMatcher(cfg.get("groups", {}).get("pattern")),
            voice_types=tuple(cfg.get("voice", {}).get("message_types", ["ptt"])),
            transcription_notice=notices.get("transcription_failed", DEFAULT_TRANSCRIPTION_NOTICE),
            chat_notice=notices.get("chat_failed", DEFAULT_CHAT_NOTICE),
        )

    @property
    def window(self) -> int:
        """Most turns a conversation keeps (user + assistant)."""
        return self.max_turns * 2

    # --------- entry points ----------
    async def handle(self, message: InboundMessage) -> None:
        chat_id = message.chat_id
        lock, users = self._locks.get(chat_id) or (asyncio.Lock(), 0)
        self._locks[chat_id] = (lock, users + 1)
        try:
            async with lock:
                await self._process(message)
        finally:
            lock, users = self._locks[chat_id]
            if users <= 1:
                del self._locks[chat_id]
            else:
                self._locks[chat_id] = (lock, users - 1)

    def pause(self, conversation_id: str) -> None:
        self.state.gating.pause(conversation_id)
        logger.info("Conversation %s paused", conversation_id)
        self._spawn(self._notify(self.chat.notify_pause, conversation_id))

    def resume(self, conversation_id: str) -> None:
        self.state.gating.resume(conversation_id)
        logger.info("Conversation %s resumed", conversation_id)
        self._spawn(self._notify(self.chat.notify_resume, conversation_id))

    async def drain(self) -> None:
        """Wait for every pending pause/resume notification."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # --------- internals ----------
    async def _process(self, message: InboundMessage) -> None:
        chat_id = message.chat_id
        text = message.body

        if message.has_media and message.type in self.voice_types:
            transcript = await self._transcribe(message)
            if transcript is None:
                await self._send(chat_id, self.transcription_notice)
                return
            text = transcript

        gating = self.state.gating
        if not gating.is_enabled():
            return
        if self.groups.is_group(chat_id, message.is_group):
            return
        if gating.is_paused(chat_id):
            return

        history = self.state.history
        history.append(chat_id, Turn(USER, text))
        settings = self.state.settings

        try:
            answer = await self.chat.reply(
                settings.prompt,
                settings.agent_name,
                text,
                history.snapshot(chat_id),
            )
        except ChatServiceError as e:
            logger.error("Chat service failed for %s: %s", chat_id, e)
            await self._send(chat_id, self.chat_notice)
            return

        # Leave room for the assistant turn so the window is never exceeded.
        history.trim(chat_id, self.window - 1)
        history.append(chat_id, Turn(ASSISTANT, answer))

        delay = self.state.settings.delay
        if delay > 0:
            await asyncio.sleep(delay / 1000)

        try:
            await self.messenger.send_typing(chat_id)
            await self.messenger.clear_state(chat_id)
            await self.messenger.send_text(chat_id, answer)
        except MessagingError as e:
            logger.error("Failed to deliver reply to %s: %s", chat_id, e)

    async def _transcribe(self, message: InboundMessage) -> Optional[str]:
        try:
            media = await message.download_media()
            mimetype = media.mimetype or ""
            if not mimetype.startswith("audio/"):
                raise TranscriptionError(f"unsupported media type {mimetype!r}")
            return await self.transcriber.transcribe(media.data, mimetype)
        except (MessagingError, TranscriptionError) as e:
            logger.error("Transcription failed for %s: %s", message.chat_id, e)
            return None

    async def _send(self, chat_id: str, text: str) -> None:
        try:
            await self.messenger.send_text(chat_id, text)
        except MessagingError as e:
            logger.error("Failed to send notice to %s: %s", chat_id, e)

    async def _notify(self, call: Any, conversation_id: str) -> None:
        try:
            await call(conversation_id)
        except Exception as e:
            logger.debug("Pause/resume notification for %s ignored: %s", conversation_id, e)

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
