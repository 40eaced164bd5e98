"""Ollama chat client for a locally running model."""

import base64
from typing import Any, Sequence

from pydantic import BaseModel

from ..config import LocalChatConfig
from ..event_log import EventLog
from ..models.chat import ChatMessage, ChatProvider, ChatRole
from .base import ChatClient, join_url


class _ReplyMessage(BaseModel):
    role: str = "assistant"
    content: str


class _ChatResponse(BaseModel):
    message: _ReplyMessage


def build_message(role: ChatRole, text: str, image_data: bytes | None = None) -> dict[str, Any]:
    """Build one Ollama turn; images go in a separate base64 list."""
    turn: dict[str, Any] = {"role": role.value, "content": text}
    if image_data:
        turn["images"] = [base64.b64encode(image_data).decode("ascii")]
    return turn


class LocalChatClient(ChatClient):
    """Chat client for Ollama's /api/chat endpoint. No authentication."""

    service_name = "Ollama"

    def __init__(self, config: LocalChatConfig, event_log: EventLog):
        super().__init__(event_log, timeout=config.request_timeout_seconds)
        self.config = config

    @property
    def provider(self) -> ChatProvider:
        return ChatProvider.LOCAL

    @property
    def endpoint(self) -> str:
        return join_url(self.config.base_url, "api/chat")

    def build_payload(self, message: str, transcript: Sequence[ChatMessage]) -> dict[str, Any]:
        messages = [
            build_message(previous.role, previous.text, previous.image_data)
            for previous in transcript
        ]
        messages.append(build_message(ChatRole.USER, message))
        return {"model": self.config.model, "messages": messages, "stream": False}

    async def send(self, message: str, transcript: Sequence[ChatMessage]) -> str:
        endpoint = self.endpoint
        headers = {"Content-Type": "application/json"}
        data = await self._apost_json(endpoint, headers, self.build_payload(message, transcript))
        response = self._decode(_ChatResponse, data, url=endpoint)
        return response.message.content
