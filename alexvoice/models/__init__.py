from .conversation import (
    AssistantRequest,
    AudioInput,
    CatalogProduct,
    ChatMessage,
    Command,
    CommandKind,
    SearchItem,
    SkillResult,
)

__all__ = [
    "AssistantRequest",
    "AudioInput",
    "CatalogProduct",
    "ChatMessage",
    "Command",
    "CommandKind",
    "SearchItem",
    "SkillResult",
]
