"""FastAPI application: gateway webhook plus the operator control API."""
from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from .config import load_config
from .messaging import GatewayMessenger, MessagingError, Messenger, parse_event, render_qr
from .pipeline import MessagePipeline
from .services import ChatService, HttpServiceClient, Transcriber
from .settings import Settings, SettingsStore, coerce_delay
from .state import BridgeState

logger = logging.getLogger(__name__)


# -----------------------------
# Pydantic request models
# -----------------------------
# Loosely typed: non-string values are stringified rather than rejected.
class ConfigUpdate(BaseModel):
    prompt: Any = None
    agentName: Any = None
    delay: Any = None


class ChatTarget(BaseModel):
    chatId: Any = None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    *,
    messenger: Optional[Messenger] = None,
    chat: Optional[ChatService] = None,
    transcriber: Optional[Transcriber] = None,
    settings_store: Optional[SettingsStore] = None,
    state: Optional[BridgeState] = None,
) -> FastAPI:
    cfg = load_config(config_path)
    server_cfg = cfg.get("server", {})

    # Services; anything not injected is built from config and closed on shutdown
    owned: List[Any] = []
    gw_cfg = cfg.get("gateway", {})
    if messenger is None:
        messenger = GatewayMessenger(
            gw_cfg.get("base_url", "http://127.0.0.1:3001"),
            api_key=gw_cfg.get("api_key"),
            timeout=float(gw_cfg.get("timeout", 30.0)),
        )
        owned.append(messenger)
    if chat is None or transcriber is None:
        svc_cfg = cfg.get("services", {})
        http_service = HttpServiceClient(
            svc_cfg.get("base_url", "http://127.0.0.1:5000"),
            timeout=float(svc_cfg.get("timeout", 120.0)),
            filename=cfg.get("voice", {}).get("filename", "voice.ogg"),
        )
        owned.append(http_service)
        chat = chat or http_service
        transcriber = transcriber or http_service

    store = settings_store or SettingsStore(cfg.get("settings", {}).get("path", "data/settings.json"))
    state = state or BridgeState()
    loaded = store.load()
    if loaded is not None:
        state.update_settings(loaded)

    pipeline = MessagePipeline.from_config(cfg, state, messenger, chat, transcriber)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await pipeline.drain()
        for service in owned:
            await service.aclose()

    app = FastAPI(title="Chat Bridge", version="0.1.0", lifespan=lifespan)
    app.state.bridge = state
    app.state.pipeline = pipeline
    app.state.settings_store = store

    cors_origins = server_cfg.get("cors_origins", ["*"])
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        logger.warning("Invalid request to %s: %s", request.url.path, exc.errors())
        return _error(400, "Invalid request body.")

    webhook_key = gw_cfg.get("api_key")

    # --------- gateway webhook ----------
    @app.post("/webhook")
    async def webhook(
        payload: Dict[str, Any],
        background_tasks: BackgroundTasks,
        x_api_key: Optional[str] = Header(None),
    ):
        if webhook_key and not secrets.compare_digest(
            (x_api_key or "").encode(), str(webhook_key).encode()
        ):
            logger.warning("Rejected webhook call with a missing or wrong API key")
            return _error(401, "Invalid API key.")
        downloader = getattr(messenger, "download_media", None)
        try:
            event = parse_event(payload, downloader)
        except MessagingError as e:
            logger.warning("Rejected webhook payload: %s", e)
            return _error(400, str(e))

        if event.kind == "message" and event.message is not None:
            background_tasks.add_task(pipeline.handle, event.message)
        elif event.kind == "ready":
            state.ready = True
            logger.info("Messaging account connected")
        elif event.kind == "disconnected":
            state.ready = False
            logger.warning("Messaging account disconnected: %s", event.data.get("reason"))
        elif event.kind == "qr":
            code = event.data.get("qr")
            if code:
                print(render_qr(str(code)), flush=True)
                logger.info("Pairing QR received; scan the code above with the phone")
            else:
                logger.warning("QR event without a pairing code")
        else:
            logger.debug("Ignoring gateway event %r", event.kind)
        return {"status": "ok"}

    # --------- control API ----------
    @app.get("/chats")
    async def list_chats():
        if not state.ready:
            return _error(503, "Messaging client is still starting up.")
        try:
            return await messenger.list_chats()
        except MessagingError as e:
            logger.error("Listing chats failed: %s", e)
            return _error(500, "Failed to retrieve chats.")

    @app.get("/status")
    def status() -> Dict[str, Any]:
        return {"connected": state.ready}

    @app.get("/enabled")
    def enabled() -> Dict[str, Any]:
        return {"enabled": state.gating.is_enabled()}

    @app.post("/enable")
    def enable() -> Dict[str, Any]:
        state.gating.set_enabled(True)
        logger.info("Bot enabled")
        return {"enabled": state.gating.is_enabled()}

    @app.post("/disable")
    def disable() -> Dict[str, Any]:
        state.gating.set_enabled(False)
        logger.info("Bot disabled")
        return {"enabled": state.gating.is_enabled()}

    @app.get("/config")
    def get_config() -> Dict[str, Any]:
        return state.settings.to_dict()

    @app.post("/config")
    def set_config(req: ConfigUpdate):
        prompt, agent_name = _text(req.prompt), _text(req.agentName)
        if not prompt or not agent_name:
            return _error(400, "Prompt and agent name are required.")
        settings = Settings(prompt=prompt, agent_name=agent_name, delay=coerce_delay(req.delay))
        state.update_settings(settings)
        logger.info("Config updated: %s", settings.to_dict())
        store.save(settings)
        return {"status": "ok"}

    @app.post("/pause")
    async def pause(req: ChatTarget):
        chat_id = _text(req.chatId)
        if not chat_id:
            return _error(400, "chatId is required.")
        pipeline.pause(chat_id)
        return {"status": "paused"}

    @app.post("/resume")
    async def resume(req: ChatTarget):
        chat_id = _text(req.chatId)
        if not chat_id:
            return _error(400, "chatId is required.")
        pipeline.resume(chat_id)
        return {"status": "resumed"}

    # Front-end last: a mount at "/" would shadow the routes above.
    static_dir = server_cfg.get("static_dir")
    if static_dir and Path(static_dir).is_dir():
        app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="static")
    elif static_dir:
        logger.debug("Static dir not found: %s", static_dir)

    return app
