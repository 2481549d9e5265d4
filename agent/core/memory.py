"""In-memory store for conversation transcripts and the settings singleton.

Nothing here survives a restart. The app builds one ``MemoryStore`` at startup
and hands it to request handlers; tests build a fresh one per case.

Sync FastAPI handlers run in a threadpool, so every public operation holds
the store's lock for its whole read-merge-write.
"""

from __future__ import annotations

import copy
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar, Union

from pydantic import BaseModel

from agent.core.errors import NotFoundError
from agent.core.models import (
    ConversationRecord,
    ConversationUpdate,
    Message,
    SettingsRecord,
    SettingsUpdate,
)


Clock = Callable[[], datetime]
ModelT = TypeVar("ModelT", bound=BaseModel)

_TICK = timedelta(microseconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def merge_fields(existing: ModelT, updates: BaseModel) -> ModelT:
    """Return a copy of ``existing`` with the fields the caller supplied in ``updates``.

    Precedence, field by field:
      - supplied with a value: the supplied value wins
      - not supplied: the existing value is kept
      - supplied as ``None``: treated as not supplied, never clears a field
    """
    merged = existing.model_copy(deep=True)
    for name in updates.model_fields_set:
        value = getattr(updates, name)
        if value is None:
            continue
        setattr(merged, name, copy.deepcopy(value))
    return merged


class MemoryStore:
    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        # dicts keep insertion order, which is the listing order
        self._conversations: Dict[str, ConversationRecord] = {}
        self._settings: Optional[SettingsRecord] = None

    # --- Conversations ---

    def list_conversations(self) -> List[ConversationRecord]:
        with self._lock:
            return [c.model_copy(deep=True) for c in self._conversations.values()]

    def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]:
        with self._lock:
            record = self._conversations.get(conversation_id)
            return record.model_copy(deep=True) if record is not None else None

    def create_conversation(
        self,
        title: str,
        sales_prompt: str,
        messages: Optional[List[Message]] = None,
        is_active: Optional[bool] = None,
    ) -> ConversationRecord:
        with self._lock:
            now = self._clock()
            record = ConversationRecord(
                id=str(uuid.uuid4()),
                title=title,
                sales_prompt=sales_prompt,
                messages=copy.deepcopy(list(messages or [])),
                is_active=bool(is_active),
                created_at=now,
                updated_at=now,
            )
            self._conversations[record.id] = record
            return record.model_copy(deep=True)

    def update_conversation(
        self,
        conversation_id: str,
        updates: Union[ConversationUpdate, Mapping[str, Any]],
    ) -> ConversationRecord:
        if not isinstance(updates, ConversationUpdate):
            updates = ConversationUpdate.model_validate(updates)

        with self._lock:
            existing = self._conversations.get(conversation_id)
            if existing is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")

            updated = merge_fields(existing, updates)
            updated.updated_at = self._next_stamp(existing.updated_at)
            self._conversations[conversation_id] = updated
            return updated.model_copy(deep=True)

    def delete_conversation(self, conversation_id: str) -> None:
        with self._lock:
            self._conversations.pop(conversation_id, None)

    def export_conversation(self, conversation_id: str) -> Dict[str, Any]:
        """Snapshot a stored transcript in the shape the client downloads as JSON."""
        with self._lock:
            record = self._conversations.get(conversation_id)
            if record is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            return {
                "title": record.title,
                "salesPrompt": record.sales_prompt,
                "messages": [m.model_dump(by_alias=True, exclude_none=True) for m in record.messages],
                "exportDate": self._clock().isoformat(),
            }

    # --- Settings ---

    def get_settings(self) -> SettingsRecord:
        with self._lock:
            return self._ensure_settings().model_copy(deep=True)

    def save_settings(self, updates: Union[SettingsUpdate, Mapping[str, Any]]) -> SettingsRecord:
        if not isinstance(updates, SettingsUpdate):
            updates = SettingsUpdate.model_validate(updates)

        with self._lock:
            existing = self._ensure_settings()
            updated = merge_fields(existing, updates)
            # An empty key is how the settings panel clears a stored key
            if updated.gemini_api_key == "":
                updated.gemini_api_key = None
            updated.updated_at = self._next_stamp(existing.updated_at)
            self._settings = updated
            return updated.model_copy(deep=True)

    # --- Internal helpers; callers hold the lock ---

    def _ensure_settings(self) -> SettingsRecord:
        if self._settings is None:
            now = self._clock()
            self._settings = SettingsRecord(id=str(uuid.uuid4()), created_at=now, updated_at=now)
        return self._settings

    def _next_stamp(self, previous: datetime) -> datetime:
        now = self._clock()
        if now <= previous:
            return previous + _TICK
        return now
