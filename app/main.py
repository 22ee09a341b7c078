from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Dict, List, Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
import logging
from pydantic import BaseModel, ConfigDict, Field

from config.settings import Settings, get_settings
from scribe.core.chat_persistence import ChatPersistence
from scribe.core.location_cache import LocationCache
from scribe.core.payment_status import normalize_payment_status, payment_status_color
from scribe.core.storage import MemoryStorage, build_storage
from scribe.models import ChatMessage, ConversationSnapshot, PaymentRecord


def log_level(name: Optional[str]) -> int:
    level = getattr(logging, str(name or "").upper(), None)
    return level if isinstance(level, int) else logging.INFO


logging.basicConfig(
    level=log_level(get_settings().log_level),
    format="[%(asctime)s] %(levelname)s - %(message)s",
)
logger = logging.getLogger("thinqscribe")


class ModelSettingsBody(BaseModel):
    selected_model: Optional[str] = Field(None, alias="selectedModel")
    model_settings: Optional[Dict[str, Any]] = Field(None, alias="modelSettings")

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[MemoryStorage] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = storage if storage is not None else build_storage(
            settings.storage_path, settings.storage_quota_bytes
        )
        app.state.location_cache = LocationCache.from_settings(settings, store, transport=transport)
        app.state.chat = ChatPersistence(store)
        logger.info(
            "Services ready: env=%s storage=%s providers=%s",
            settings.app_env,
            type(store).__name__,
            [p.name for p in app.state.location_cache.locator.providers],
        )
        yield

    app = FastAPI(title="ThinqScribe State Services", version="1.0.0", lifespan=lifespan)

    # CORS: allow local frontend during development
    if settings.app_env.lower() in {"dev", "development", "local"}:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    _register_routes(app)
    return app


def get_location_cache(request: Request) -> LocationCache:
    return request.app.state.location_cache


def get_chat(request: Request) -> ChatPersistence:
    return request.app.state.chat


def _ok_or_500(saved: bool, what: str) -> Dict[str, bool]:
    if not saved:
        raise HTTPException(status_code=500, detail=f"Failed to save {what}")
    return {"saved": True}


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/location")
    async def location(refresh: bool = False, cache: LocationCache = Depends(get_location_cache)):
        outcome = await cache.resolve(force_refresh=refresh)
        logger.info("Location served from %s", outcome.kind.value)
        return outcome.record.to_wire()

    @app.delete("/location/cache")
    def clear_location(cache: LocationCache = Depends(get_location_cache)):
        cache.clear_cache()
        return {"cleared": True}

    @app.post("/payments/status")
    def payment_status(payment: PaymentRecord):
        status = normalize_payment_status(payment)
        return {"status": status.value, "color": payment_status_color(status)}

    @app.get("/chat/conversations")
    def list_conversations(chat: ChatPersistence = Depends(get_chat)):
        return chat.load_conversations()

    @app.put("/chat/conversations")
    def replace_conversations(
        conversations: List[ConversationSnapshot], chat: ChatPersistence = Depends(get_chat)
    ):
        return _ok_or_500(chat.save_conversations(conversations), "conversations")

    @app.get("/chat/conversations/search")
    def search_conversations(q: str = "", chat: ChatPersistence = Depends(get_chat)):
        return chat.search_conversations(q)

    @app.delete("/chat/conversations/{conversation_id}")
    def delete_conversation(conversation_id: str, chat: ChatPersistence = Depends(get_chat)):
        return _ok_or_500(chat.delete_conversation(conversation_id), "conversations")

    @app.post("/chat/conversations/{conversation_id}/messages")
    def append_message(
        conversation_id: str, message: ChatMessage, chat: ChatPersistence = Depends(get_chat)
    ):
        if not chat.append_message(conversation_id, message):
            raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")
        return {"saved": True}

    @app.get("/chat/current")
    def current_conversation(chat: ChatPersistence = Depends(get_chat)):
        return chat.load_current_conversation()

    @app.get("/chat/current/history")
    def current_history(limit: int = Query(5, ge=0), chat: ChatPersistence = Depends(get_chat)):
        messages = chat.load_history_messages(limit=limit)
        return [{"role": message.type, "content": message.content} for message in messages]

    @app.put("/chat/current")
    def replace_current(conversation: ConversationSnapshot, chat: ChatPersistence = Depends(get_chat)):
        return _ok_or_500(chat.save_current_conversation(conversation), "current conversation")

    @app.get("/chat/model-settings")
    def model_settings(chat: ChatPersistence = Depends(get_chat)):
        selection = chat.load_model_settings()
        return {"selectedModel": selection.selected_model, "modelSettings": selection.model_settings}

    @app.put("/chat/model-settings")
    def save_model_settings(body: ModelSettingsBody, chat: ChatPersistence = Depends(get_chat)):
        return _ok_or_500(
            chat.save_model_settings(body.selected_model, body.model_settings), "model settings"
        )

    @app.get("/chat/force-restore")
    def force_restore(chat: ChatPersistence = Depends(get_chat)):
        return {"forceRestore": chat.should_force_restore()}

    @app.post("/chat/force-restore")
    def set_force_restore(chat: ChatPersistence = Depends(get_chat)):
        return _ok_or_500(chat.set_force_restore(), "force restore flag")

    @app.delete("/chat/force-restore")
    def clear_force_restore(chat: ChatPersistence = Depends(get_chat)):
        return {"cleared": chat.clear_force_restore()}

    @app.get("/chat/stats")
    def stats(chat: ChatPersistence = Depends(get_chat)):
        result = chat.get_persistence_stats()
        if result is None:
            raise HTTPException(status_code=500, detail="Chat storage is unavailable")
        payload = asdict(result)
        payload["last_save_time"] = result.last_save_time.isoformat() if result.last_save_time else None
        return payload

    @app.delete("/chat")
    def clear_chat(chat: ChatPersistence = Depends(get_chat)):
        return {"cleared": chat.clear_chat_data()}


app = create_app()
