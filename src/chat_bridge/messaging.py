"""Messaging side of the bridge: inbound message model and the account gateway.

The WhatsApp session itself lives in an external WhatsApp-Web HTTP gateway.
It POSTs webhook events to us and accepts commands over REST:

Webhook events (JSON)::

    {"event": "qr", "payload": {"qr": "<pairing code>"}}
    {"event": "ready"}
    {"event": "disconnected", "payload": {"reason": "..."}}
    {"event": "message", "payload": {
        "id": "...", "from": "5511999999999@c.us", "body": "hi",
        "type": "chat" | "ptt" | ..., "hasMedia": false, "isGroupMsg": false,
        "media": {"data": "<base64>", "mimetype": "audio/ogg"}   # optional
    }}

Commands::

    POST /sendText    {chatId, text}
    POST /startTyping {chatId}
    POST /stopTyping  {chatId}
    GET  /chats       -> [{id: {_serialized} | str, name, formattedTitle}]
    GET  /media/{id}  -> {data: <base64>, mimetype}
"""
from __future__ import annotations

import base64
import binascii
import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import qrcode

logger = logging.getLogger(__name__)


class MessagingError(RuntimeError):
    """The messaging gateway rejected or failed a request."""


# -----------------------------
# Types
# -----------------------------
@dataclass
class Media:
    data: bytes
    mimetype: Optional[str] = None


MediaFetcher = Callable[[], Awaitable[Media]]


@dataclass
class InboundMessage:
    """One message received on the account."""
    chat_id: str
    body: str = ""
    type: str = "chat"
    has_media: bool = False
    is_group: bool = False
    message_id: Optional[str] = None
    fetch_media: Optional[MediaFetcher] = field(default=None, repr=False)

    async def download_media(self) -> Media:
        if self.fetch_media is None:
            raise MessagingError(f"message {self.message_id!r} carries no downloadable media")
        return await self.fetch_media()


@dataclass
class GatewayEvent:
    kind: str
    message: Optional[InboundMessage] = None
    data: Dict[str, Any] = field(default_factory=dict)


def decode_media(raw: Dict[str, Any]) -> Media:
    """Decode a ``{data: <base64>, mimetype}`` record."""
    try:
        data = base64.b64decode(raw.get("data") or "", validate=True)
    except (binascii.Error, TypeError, ValueError) as e:
        raise MessagingError(f"invalid media payload: {e}") from e
    mimetype = raw.get("mimetype")
    return Media(data=data, mimetype=mimetype if isinstance(mimetype, str) else None)


def _chat_entry(raw: Dict[str, Any]) -> Dict[str, Any]:
    chat_id = raw.get("id")
    if isinstance(chat_id, dict):
        chat_id = chat_id.get("_serialized")
    return {"id": chat_id, "name": raw.get("name") or raw.get("formattedTitle")}


# -----------------------------
# Interface
# -----------------------------
class Messenger(ABC):
    """Outbound half of the messaging account."""

    @abstractmethod
    async def send_text(self, chat_id: str, text: str) -> None:
        ...

    @abstractmethod
    async def send_typing(self, chat_id: str) -> None:
        ...

    @abstractmethod
    async def clear_state(self, chat_id: str) -> None:
        ...

    @abstractmethod
    async def list_chats(self) -> List[Dict[str, Any]]:
        """Return ``[{id, name}, ...]`` for every chat on the account."""


# -----------------------------
# HTTP gateway
# -----------------------------
class GatewayMessenger(Messenger):
    """:class:`Messenger` backed by the WhatsApp-Web HTTP gateway."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:3001",
        *,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {"X-Api-Key": api_key} if api_key else None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise MessagingError(f"{method} {path} failed: {e}") from e
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise MessagingError(f"{method} {path} returned invalid JSON: {e}") from e

    async def send_text(self, chat_id: str, text: str) -> None:
        await self._request("POST", "/sendText", json={"chatId": chat_id, "text": text})

    async def send_typing(self, chat_id: str) -> None:
        await self._request("POST", "/startTyping", json={"chatId": chat_id})

    async def clear_state(self, chat_id: str) -> None:
        await self._request("POST", "/stopTyping", json={"chatId": chat_id})

    async def list_chats(self) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/chats")
        if not isinstance(data, list):
            raise MessagingError("GET /chats did not return a list")
        return [_chat_entry(c) for c in data if isinstance(c, dict)]

    async def download_media(self, message_id: str) -> Media:
        data = await self._request("GET", f"/media/{message_id}")
        if not isinstance(data, dict):
            raise MessagingError(f"no media available for message {message_id!r}")
        return decode_media(data)


# -----------------------------
# Webhook
# -----------------------------
MediaDownloader = Callable[[str], Awaitable[Media]]


def parse_event(payload: Dict[str, Any], downloader: Optional[MediaDownloader] = None) -> GatewayEvent:
    """Turn a gateway webhook body into a :class:`GatewayEvent`.

    Media sent inline is decoded on demand; otherwise ``downloader`` fetches
    it by message id. Unknown event kinds are returned as-is so the caller
    can log them.
    """
    kind = str(payload.get("event") or "").lower()
    data = payload.get("payload") or {}
    if not isinstance(data, dict):
        data = {}
    if kind != "message":
        return GatewayEvent(kind=kind, data=data)

    chat_id = str(data.get("from") or "")
    if not chat_id:
        raise MessagingError("message event without a 'from' field")
    message_id = str(data["id"]) if data.get("id") else None
    has_media = bool(data.get("hasMedia"))
    inline = data.get("media")

    fetch: Optional[MediaFetcher] = None
    if isinstance(inline, dict):
        async def fetch_inline() -> Media:
            return decode_media(inline)
        fetch = fetch_inline
    elif has_media and message_id and downloader is not None:
        async def fetch_remote() -> Media:
            return await downloader(message_id)
        fetch = fetch_remote

    message = InboundMessage(
        chat_id=chat_id,
        body=str(data.get("body") or ""),
        type=str(data.get("type") or "chat"),
        has_media=has_media,
        is_group=bool(data.get("isGroupMsg")),
        message_id=message_id,
        fetch_media=fetch,
    )
    return GatewayEvent(kind=kind, message=message, data=data)


def render_qr(code: str) -> str:
    """Draw a pairing code as a terminal QR block, dark modules on a light field."""
    qr = qrcode.QRCode(border=2)
    qr.add_data(code)
    qr.make(fit=True)
    out = io.StringIO()
    qr.print_ascii(out=out, invert=True)
    return out.getvalue()
