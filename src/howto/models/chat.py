"""Pydantic models for chat transcript data."""

import uuid
from enum import Enum

from pydantic import BaseModel, Field


class ChatRole(str, Enum):
    """Author of a transcript message."""
    USER = "user"
    ASSISTANT = "assistant"


class ChatProvider(str, Enum):
    """Chat backends the orchestrator can route messages to."""
    CLOUD = "cloud"
    LOCAL = "local"

    @property
    def display_name(self) -> str:
        return "OpenRouter" if self is ChatProvider.CLOUD else "Ollama"


class ChatMessage(BaseModel):
    """A single transcript message.

    Immutable once created. The id is generated per message and never reused,
    so two messages with identical text are still distinct entries.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique message identifier")
    role: ChatRole = Field(..., description="Message author")
    text: str = Field("", description="Message text (may be empty)")
    image_data: bytes | None = Field(None, description="Optional PNG image payload")

    model_config = {"frozen": True}

    @property
    def has_image(self) -> bool:
        return bool(self.image_data)

    @classmethod
    def user(cls, text: str, image_data: bytes | None = None) -> "ChatMessage":
        return cls(role=ChatRole.USER, text=text, image_data=image_data)

    @classmethod
    def assistant(cls, text: str) -> "ChatMessage":
        return cls(role=ChatRole.ASSISTANT, text=text)
