"""
Data models for conversations, settings and the HTTP request bodies.

Attributes are snake_case in Python and camelCase on the wire: the browser
client sends and expects ``salesPrompt``, ``isActive``, ``voiceType`` and so
on. Records carry identity and timestamps; the ``*Create`` / ``*Update``
bodies never do, so a client cannot overwrite either.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(CamelModel):
    """One turn of a transcript. Ordering comes from list position, not ``timestamp``."""

    role: Literal["user", "ai"]
    content: str
    timestamp: str
    audio_url: Optional[str] = None


class ConversationRecord(CamelModel):
    id: str
    title: str
    sales_prompt: str
    messages: List[Message] = Field(default_factory=list)
    is_active: bool = False
    created_at: datetime
    updated_at: datetime


class SettingsRecord(CamelModel):
    id: str
    gemini_api_key: Optional[str] = None
    voice_type: str = "Professional Female"
    speech_speed: str = "1"
    audio_quality: str = "High (48kHz)"
    language_model: str = "Gemini Pro"
    auto_save_conversations: bool = True
    voice_activity_detection: bool = True
    created_at: datetime
    updated_at: datetime


class ConversationCreate(CamelModel):
    title: str = Field(..., min_length=1)
    sales_prompt: str
    messages: Optional[List[Message]] = None
    is_active: Optional[bool] = None


class ConversationUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1)
    sales_prompt: Optional[str] = None
    messages: Optional[List[Message]] = None
    is_active: Optional[bool] = None


class SettingsUpdate(CamelModel):
    gemini_api_key: Optional[str] = None
    voice_type: Optional[str] = None
    speech_speed: Optional[str] = None
    audio_quality: Optional[str] = None
    language_model: Optional[str] = None
    auto_save_conversations: Optional[bool] = None
    voice_activity_detection: Optional[bool] = None

    @field_validator("speech_speed", mode="before")
    @classmethod
    def _speed_is_positive_number(cls, value):
        if value is None:
            return value
        # The settings panel posts a slider value, which may arrive as a number
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        try:
            speed = float(value)
        except (TypeError, ValueError):
            raise ValueError("speechSpeed must be a number")
        if not math.isfinite(speed):
            raise ValueError("speechSpeed must be a finite number")
        if speed <= 0:
            raise ValueError("speechSpeed must be greater than zero")
        return value


class ChatRequest(CamelModel):
    message: str = Field(..., description="Transcribed or typed user message")
    sales_prompt: str = Field(..., description="Persona instructions for the sales agent")
    api_key: Optional[str] = Field(default=None, description="Overrides the configured Gemini key")

    @field_validator("message", "sales_prompt")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message and sales prompt are required")
        return value


class ChatResponse(BaseModel):
    response: str


class SynthesizeRequest(CamelModel):
    text: str
    voice: Optional[str] = None
    speed: Optional[Union[float, str]] = None

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Text is required for synthesis")
        return value
