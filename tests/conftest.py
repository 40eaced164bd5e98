"""Pytest fixtures for HowTo tests."""

import asyncio
from typing import Sequence
from unittest.mock import Mock

import pytest

from howto.clients.base import ChatClient
from howto.config import CloudChatConfig, LocalChatConfig, VideoServiceConfig
from howto.errors import CaptureFailed
from howto.event_log import EventLog
from howto.models.chat import ChatMessage, ChatProvider
from howto.models.workflow import GenerationResult
from howto.orchestrator import SessionOrchestrator


def make_response(status_code: int = 200, json_data=None, text: str = "") -> Mock:
    """Build a mock requests.Response."""
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.json.return_value = json_data
    return response


class FakeVideoClient:
    """Stand-in for VideoGenerationClient recording start/refine calls."""

    service_name = "Odyssey"

    def __init__(self, result: GenerationResult | None = None, error: Exception | None = None):
        self.result = result or GenerationResult(video_reference="https://cdn.test/v1.mp4", session_id="sess-1")
        self.error = error
        self.calls: list[tuple] = []
        self.gate: asyncio.Event | None = None

    async def _respond(self) -> GenerationResult:
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result

    async def start(self, prompt: str) -> GenerationResult:
        self.calls.append(("start", prompt))
        return await self._respond()

    async def refine(self, session_id: str, prompt: str) -> GenerationResult:
        self.calls.append(("refine", session_id, prompt))
        return await self._respond()


class FakeChatClient(ChatClient):
    """Chat client returning canned replies (or raising) without HTTP."""

    def __init__(
        self,
        event_log: EventLog,
        provider: ChatProvider,
        replies: list | None = None,
        configured: bool = True,
    ):
        super().__init__(event_log)
        self._provider = provider
        self.service_name = provider.display_name
        self.replies = list(replies or [])
        self.configured = configured
        self.calls: list[tuple[str, list[ChatMessage]]] = []

    @property
    def provider(self) -> ChatProvider:
        return self._provider

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def send(self, message: str, transcript: Sequence[ChatMessage]) -> str:
        self.calls.append((message, list(transcript)))
        reply = self.replies.pop(0) if self.replies else f"echo: {message}"
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeCapture:
    def __init__(self, data: bytes | None = b"\x89PNG fake", error: str | None = None):
        self.data = data
        self.error = error
        self.calls = 0

    def __call__(self) -> bytes:
        self.calls += 1
        if self.error:
            raise CaptureFailed(self.error)
        return self.data


@pytest.fixture
def event_log():
    return EventLog(capacity=50)


@pytest.fixture
def video_config():
    """Video config with a key and no delay between polls."""
    return VideoServiceConfig(
        api_key="odyssey-key",
        developer_email="dev@example.com",
        base_url="https://api.odyssey.test",
        poll_interval_seconds=0,
        max_poll_attempts=5,
    )


@pytest.fixture
def cloud_config():
    return CloudChatConfig(
        api_key="or-key",
        base_url="https://openrouter.test/api/v1",
        model="test/model",
        http_referer="https://howto.test",
        app_title="HowTo",
    )


@pytest.fixture
def local_config():
    return LocalChatConfig(base_url="http://127.0.0.1:11434", model="llama-test")


@pytest.fixture
def fake_video():
    return FakeVideoClient()


@pytest.fixture
def fake_cloud(event_log):
    return FakeChatClient(event_log, ChatProvider.CLOUD)


@pytest.fixture
def fake_local(event_log):
    return FakeChatClient(event_log, ChatProvider.LOCAL)


@pytest.fixture
def fake_capture():
    return FakeCapture()


@pytest.fixture
def orchestrator(fake_video, fake_cloud, fake_local, fake_capture, event_log):
    """Orchestrator wired to fakes; cloud is configured so it starts active."""
    return SessionOrchestrator(
        video_client=fake_video,
        cloud_client=fake_cloud,
        local_client=fake_local,
        capture=fake_capture,
        event_log=event_log,
    )
