from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


# ---------- Request models ----------

class ChatMessage(BaseModel):
    """One prior conversation turn, sent as a JSON-encoded form field."""
    role: Literal["user", "assistant"]
    content: str


class AudioInput(BaseModel):
    """Audio uploaded in the `input` form field."""
    data: bytes
    filename: str = "audio.webm"
    content_type: str | None = None


class AssistantRequest(BaseModel):
    """Validated form payload: text or audio input plus conversation history."""
    input: str | AudioInput
    message: list[ChatMessage] = Field(default_factory=list)


# ---------- Dispatch models ----------

class CommandKind(str, Enum):
    YOUTUBE_SEARCH = "youtube_search"
    YOUTUBE_VIDEO = "youtube_video"
    WEB_SEARCH = "web_search"
    KNOWLEDGE_LOOKUP = "knowledge_lookup"


class Command(BaseModel):
    """A transcript classified into a scripted command."""
    kind: CommandKind
    argument: str | None = None


class SkillResult(BaseModel):
    """Plain-text answer produced by a skill handler."""
    text: str
    status_code: int = 200
    location: str | None = None


# ---------- Upstream records ----------

class SearchItem(BaseModel):
    title: str = ""
    snippet: str = ""
    link: str = ""


class CatalogProduct(BaseModel):
    name: str
    description: str = ""
    link: str = ""
