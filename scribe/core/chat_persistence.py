from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from langchain_core.messages import BaseMessage
from pydantic import BaseModel

from scribe.assistant import to_lc_messages
from scribe.core.storage import MemoryStorage, StorageError


logger = logging.getLogger(__name__)

CONVERSATIONS_KEY = "thinqscribe-conversations"
CURRENT_CONVERSATION_KEY = "thinqscribe-current-conversation"
MODEL_SETTINGS_KEY = "thinqscribe-model-settings"
SELECTED_MODEL_KEY = "thinqscribe-selected-model"
LAST_SAVE_KEY = "thinqscribe-last-save"
FORCE_RESTORE_KEY = "thinqscribe-force-restore"

STORAGE_KEYS = (
    CONVERSATIONS_KEY,
    CURRENT_CONVERSATION_KEY,
    MODEL_SETTINGS_KEY,
    SELECTED_MODEL_KEY,
    LAST_SAVE_KEY,
    FORCE_RESTORE_KEY,
)

# Anything that can go wrong between json and the store.
PERSISTENCE_ERRORS = (StorageError, TypeError, ValueError)


@dataclass
class ModelSelection:
    selected_model: Optional[str] = None
    model_settings: Optional[Dict[str, Any]] = None


@dataclass
class PersistenceStats:
    has_local_conversations: bool
    local_conversations_count: int
    has_current_conversation: bool
    last_save_time: Optional[datetime]
    storage_size: int


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def conversation_id(conversation: Any) -> Optional[str]:
    if not isinstance(conversation, dict):
        return None
    value = conversation.get("id") or conversation.get("_id")
    return str(value) if value is not None else None


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChatPersistence:
    """Mirror of the chat UI state in a key-value store.

    Every public method swallows storage and JSON failures, logs them and
    reports the failure as ``False`` or ``None``. The stored copy is
    last-writer-wins; nothing here reconciles it with the server.
    """

    def __init__(self, storage: MemoryStorage, clock: Callable[[], float] = time.time):
        self.storage = storage
        self._clock = clock

    # -- saving -------------------------------------------------------------

    def save_conversations(self, conversations: Any) -> bool:
        if not isinstance(conversations, list):
            return False
        try:
            self.storage.set_item(CONVERSATIONS_KEY, json.dumps(_plain(conversations)))
            self.storage.set_item(LAST_SAVE_KEY, str(int(self._clock() * 1000)))
        except PERSISTENCE_ERRORS as exc:
            logger.error("Failed to save conversations: %s", exc)
            return False
        logger.info("Saved %s conversations", len(conversations))
        return True

    def save_current_conversation(self, conversation: Any) -> bool:
        if not conversation:
            return False
        payload = _plain(conversation)
        try:
            self.storage.set_item(CURRENT_CONVERSATION_KEY, json.dumps(payload))
        except PERSISTENCE_ERRORS as exc:
            logger.error("Failed to save current conversation: %s", exc)
            return False
        logger.info("Saved current conversation: %s", conversation_id(payload))
        return True

    def save_model_settings(
        self, selected_model: Optional[str], model_settings: Optional[Dict[str, Any]] = None
    ) -> bool:
        try:
            if selected_model:
                self.storage.set_item(SELECTED_MODEL_KEY, selected_model)
            if model_settings:
                self.storage.set_item(MODEL_SETTINGS_KEY, json.dumps(model_settings))
        except PERSISTENCE_ERRORS as exc:
            logger.error("Failed to save model settings: %s", exc)
            return False
        return True

    # -- loading ------------------------------------------------------------

    def _load_json(self, key: str) -> Any:
        try:
            raw = self.storage.get_item(key)
            if not raw:
                return None
            return json.loads(raw)
        except PERSISTENCE_ERRORS as exc:
            logger.error("Failed to load %s: %s", key, exc)
            return None

    def load_conversations(self) -> Optional[List[Dict[str, Any]]]:
        conversations = self._load_json(CONVERSATIONS_KEY)
        if conversations is None:
            return None
        if not isinstance(conversations, list):
            logger.error("Discarding %s: expected a list", CONVERSATIONS_KEY)
            return None
        logger.info("Loaded %s conversations", len(conversations))
        return conversations

    def load_current_conversation(self) -> Optional[Dict[str, Any]]:
        conversation = self._load_json(CURRENT_CONVERSATION_KEY)
        if conversation is not None and not isinstance(conversation, dict):
            logger.error("Discarding %s: expected an object", CURRENT_CONVERSATION_KEY)
            return None
        return conversation

    def load_model_settings(self) -> ModelSelection:
        try:
            selected_model = self.storage.get_item(SELECTED_MODEL_KEY)
        except StorageError as exc:
            logger.error("Failed to load model settings: %s", exc)
            return ModelSelection()
        settings = self._load_json(MODEL_SETTINGS_KEY)
        return ModelSelection(
            selected_model=selected_model or None,
            model_settings=settings if isinstance(settings, dict) else None,
        )

    def load_history_messages(self, limit: int = 5) -> List[BaseMessage]:
        conversation = self.load_current_conversation() or {}
        messages = conversation.get("messages")
        try:
            return to_lc_messages(messages if isinstance(messages, list) else [], limit=limit)
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping unusable chat history: %s", exc)
            return []

    # -- editing ------------------------------------------------------------

    def append_message(self, conv_id: str, message: Any) -> bool:
        message = _plain(message)
        updated_at = _iso_now()
        found = False

        conversations = self.load_conversations() or []
        for conversation in conversations:
            if conversation_id(conversation) == conv_id:
                conversation["messages"] = list(conversation.get("messages") or []) + [message]
                conversation["updatedAt"] = updated_at
                found = True

        current = self.load_current_conversation()
        current_matches = current is not None and conversation_id(current) == conv_id
        if current_matches:
            current["messages"] = list(current.get("messages") or []) + [message]
            current["updatedAt"] = updated_at

        if not found and not current_matches:
            logger.warning("No conversation %s to append to", conv_id)
            return False
        if found and not self.save_conversations(conversations):
            return False
        if current_matches and not self.save_current_conversation(current):
            return False
        return True

    def delete_conversation(self, conv_id: str) -> bool:
        conversations = self.load_conversations() or []
        remaining = [c for c in conversations if conversation_id(c) != conv_id]
        if not self.save_conversations(remaining):
            return False

        current = self.load_current_conversation()
        if current is not None and conversation_id(current) == conv_id:
            try:
                self.storage.remove_item(CURRENT_CONVERSATION_KEY)
            except StorageError as exc:
                logger.error("Failed to drop current conversation: %s", exc)
                return False
        return True

    def search_conversations(self, query: str) -> List[Dict[str, Any]]:
        conversations = self.load_conversations() or []
        needle = (query or "").strip().lower()
        if not needle:
            return conversations

        def matches(conversation: Dict[str, Any]) -> bool:
            if needle in str(conversation.get("title") or "").lower():
                return True
            return any(
                needle in str(message.get("content") or "").lower()
                for message in conversation.get("messages") or []
                if isinstance(message, dict)
            )

        return [c for c in conversations if isinstance(c, dict) and matches(c)]

    # -- housekeeping -------------------------------------------------------

    def clear_chat_data(self) -> bool:
        try:
            for key in STORAGE_KEYS:
                self.storage.remove_item(key)
        except StorageError as exc:
            logger.error("Failed to clear chat data: %s", exc)
            return False
        logger.info("Cleared all chat data")
        return True

    def set_force_restore(self) -> bool:
        try:
            self.storage.set_item(FORCE_RESTORE_KEY, "true")
        except StorageError as exc:
            logger.error("Failed to set force restore flag: %s", exc)
            return False
        return True

    def should_force_restore(self) -> bool:
        try:
            return self.storage.get_item(FORCE_RESTORE_KEY) == "true"
        except StorageError as exc:
            logger.error("Failed to check force restore flag: %s", exc)
            return False

    def clear_force_restore(self) -> bool:
        try:
            self.storage.remove_item(FORCE_RESTORE_KEY)
        except StorageError as exc:
            logger.error("Failed to clear force restore flag: %s", exc)
            return False
        return True

    def get_persistence_stats(self) -> Optional[PersistenceStats]:
        try:
            saved = self.storage.get_item(CONVERSATIONS_KEY)
            current = self.storage.get_item(CURRENT_CONVERSATION_KEY)
            last_save = self.storage.get_item(LAST_SAVE_KEY)
            conversations = json.loads(saved) if saved else []
            last_save_time = (
                datetime.fromtimestamp(int(last_save) / 1000, tz=timezone.utc) if last_save else None
            )
        except PERSISTENCE_ERRORS as exc:
            logger.error("Failed to compute persistence stats: %s", exc)
            return None
        return PersistenceStats(
            has_local_conversations=bool(saved),
            local_conversations_count=len(conversations) if isinstance(conversations, list) else 0,
            has_current_conversation=bool(current),
            last_save_time=last_save_time,
            storage_size=len(saved) if saved else 0,
        )
