"""OpenRouter (OpenAI-compatible) chat client."""

import base64
from typing import Any, Sequence

from pydantic import BaseModel

from ..config import CloudChatConfig
from ..errors import DecodingError, MissingCredentials
from ..event_log import EventLog
from ..models.chat import ChatMessage, ChatProvider, ChatRole
from .base import ChatClient, join_url


class _ContentPart(BaseModel):
    type: str
    text: str | None = None


class _ReplyMessage(BaseModel):
    role: str = "assistant"
    content: str | list[_ContentPart] | None = None


class _Choice(BaseModel):
    index: int = 0
    message: _ReplyMessage
    finish_reason: str | None = None


class _CompletionResponse(BaseModel):
    choices: list[_Choice]


def build_content(message: ChatMessage) -> list[dict[str, Any]]:
    """Build multi-part content: a text part, then an inline PNG part."""
    parts: list[dict[str, Any]] = []
    if message.text:
        parts.append({"type": "text", "text": message.text})
    if message.image_data:
        encoded = base64.b64encode(message.image_data).decode("ascii")
        parts.append({
            "type": "image_url",
            "image_url": {"url": f"data:image/png;base64,{encoded}"},
        })
    return parts


class CloudChatClient(ChatClient):
    """Chat client for the OpenRouter chat/completions endpoint.

    Requires OPENROUTER_API_KEY (or OPENAI_API_KEY).
    """

    service_name = "OpenRouter"

    def __init__(self, config: CloudChatConfig, event_log: EventLog):
        super().__init__(event_log, timeout=config.request_timeout_seconds)
        self.config = config

    @property
    def provider(self) -> ChatProvider:
        return ChatProvider.CLOUD

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    @property
    def endpoint(self) -> str:
        return join_url(self.config.base_url, "chat/completions")

    def build_payload(self, message: str, transcript: Sequence[ChatMessage]) -> dict[str, Any]:
        messages = [
            {"role": previous.role.value, "content": build_content(previous)}
            for previous in transcript
        ]
        messages.append({
            "role": ChatRole.USER.value,
            "content": build_content(ChatMessage.user(message)),
        })
        return {"model": self.config.model, "messages": messages}

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }
        if self.config.http_referer:
            headers["HTTP-Referer"] = self.config.http_referer
        if self.config.app_title:
            headers["X-Title"] = self.config.app_title
        return headers

    async def send(self, message: str, transcript: Sequence[ChatMessage]) -> str:
        if not self.is_configured:
            raise MissingCredentials(
                self.service_name,
                "Set OPENROUTER_API_KEY or define it in .env.",
            )

        endpoint = self.endpoint
        data = await self._apost_json(endpoint, self._headers(), self.build_payload(message, transcript))
        response = self._decode(_CompletionResponse, data, url=endpoint)
        return self._extract_text(response, endpoint)

    def _extract_text(self, response: _CompletionResponse, url: str) -> str:
        if not response.choices:
            self.event_log.error(self.service_name, "No choices in response", url=url)
            raise DecodingError(self.service_name, "No choices in response")

        content = response.choices[0].message.content
        if content is None:
            return ""
        if isinstance(content, str):
            return content
        texts = [part.text for part in content if part.type == "text" and part.text is not None]
        return "\n".join(texts)
