"""Session orchestration for HowTo.

The orchestrator owns the single mutable Session and exposes the intents the
presentation layer raises: submit a prompt, tap a workflow step, send a chat
message, attach a screenshot, switch chat provider.

All Session mutation happens on the event loop. Each operation applies its
field updates in one block with no suspension point in between, so the
presentation layer never observes a half-applied result. Provider errors are
caught here and turned into status text, transcript entries and event log
records; they never propagate to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .capture import CaptureSource, ScreenCapture
from .clients.base import ChatClient
from .clients.cloud_chat import CloudChatClient
from .clients.local_chat import LocalChatClient
from .clients.video import VideoGenerationClient
from .config import AppConfig
from .errors import CaptureFailed, HowToError, HttpError
from .event_log import EventLog
from .models.chat import ChatMessage, ChatProvider
from .models.workflow import GenerationResult, WorkflowStep

logger = logging.getLogger(__name__)

CONTACTING_STATUS = "Contacting Odyssey"
REFINING_STATUS = "Refining stream"
SCREENSHOT_LABEL = "Screenshot"
CAPTURE_FAILED_TEXT = "Failed to capture screenshot"
CAPTURE_SERVICE = "Screenshot"

_NOT_CONFIGURED_HINTS = {
    ChatProvider.CLOUD: "Set OPENROUTER_API_KEY or switch to Ollama.",
}


@dataclass
class Session:
    """Observable state rendered by the presentation layer."""

    current_prompt: str = ""
    is_processing: bool = False
    video_reference: Optional[str] = None
    workflow_steps: list[WorkflowStep] = field(default_factory=list)
    session_id: Optional[str] = None
    status_text: Optional[str] = None
    chat_transcript: list[ChatMessage] = field(default_factory=list)
    active_chat_provider: ChatProvider = ChatProvider.LOCAL


SessionListener = Callable[[Session], None]


class SessionOrchestrator:
    """Coordinates the video session and chat transcript."""

    def __init__(
        self,
        video_client: VideoGenerationClient,
        cloud_client: ChatClient,
        local_client: ChatClient,
        capture: CaptureSource,
        event_log: EventLog,
    ):
        """Initialize orchestrator.

        The active chat provider is chosen once, here: cloud when the cloud
        client has a credential, local otherwise.
        """
        self.video_client = video_client
        self.cloud_client = cloud_client
        self.local_client = local_client
        self.capture = capture
        self.event_log = event_log

        self.session = Session(
            active_chat_provider=ChatProvider.CLOUD if cloud_client.is_configured else ChatProvider.LOCAL,
        )
        self._generation_slot = asyncio.Lock()
        self._listeners: list[SessionListener] = []

    # -- observation -------------------------------------------------------

    def add_listener(self, listener: SessionListener) -> None:
        """Register a callback invoked after every applied state change."""
        self._listeners.append(listener)

    def _apply(self, **changes: Any) -> None:
        for name, value in changes.items():
            setattr(self.session, name, value)
        for listener in self._listeners:
            listener(self.session)

    def _append_message(self, message: ChatMessage) -> ChatMessage:
        self._apply(chat_transcript=[*self.session.chat_transcript, message])
        return message

    # -- video session -----------------------------------------------------

    @property
    def generation_in_flight(self) -> bool:
        return self._generation_slot.locked()

    def set_prompt(self, text: str) -> None:
        self._apply(current_prompt=text)

    async def submit_prompt(self, text: str) -> bool:
        """Start a fresh generation for a top-level prompt.

        Returns:
            True if the prompt was accepted, False if it was empty or a
            generation/refinement is already in flight.
        """
        prompt = text.strip()
        if not prompt:
            return False
        if self.generation_in_flight:
            logger.debug("Generation already in flight; prompt rejected")
            return False

        async with self._generation_slot:
            await self._run_generation(prompt, refine_session_id=None)
        return True

    async def tap_workflow_step(self, step: WorkflowStep) -> bool:
        """Follow up on a workflow step.

        Refines the current session when one exists, otherwise starts fresh.
        Returns False when rejected (empty prompt or slot busy).
        """
        prompt = step.follow_up_prompt.strip()
        if not prompt:
            return False
        if self.generation_in_flight:
            logger.debug(f"Generation already in flight; step {step.id} rejected")
            return False

        async with self._generation_slot:
            await self._run_generation(prompt, refine_session_id=self.session.session_id)
        return True

    async def _run_generation(self, prompt: str, refine_session_id: Optional[str]) -> None:
        self._apply(
            is_processing=True,
            status_text=REFINING_STATUS if refine_session_id else CONTACTING_STATUS,
        )

        service = self.video_client.service_name
        try:
            if refine_session_id:
                result = await self.video_client.refine(refine_session_id, prompt)
            else:
                result = await self.video_client.start(prompt)
        except Exception as e:
            if not isinstance(e, HowToError):
                logger.debug(f"Unexpected generation error: {e}", exc_info=True)
            self._record_failure(service, "Generation failed", e)
            self._apply(status_text=f"{service} error: {e}", is_processing=False)
        else:
            self._apply_result(result)
        finally:
            # Cancellation must not leave the session looking busy
            if self.session.is_processing:
                self._apply(is_processing=False)

    def _apply_result(self, result: GenerationResult) -> None:
        self._apply(
            video_reference=result.video_reference,
            workflow_steps=list(result.workflow_steps),
            # Never cleared once set; a response without an id keeps the old one.
            session_id=result.session_id or self.session.session_id,
            status_text=None,
            is_processing=False,
        )

    # -- chat --------------------------------------------------------------

    def chat_client_for(self, provider: ChatProvider) -> ChatClient:
        return self.cloud_client if provider == ChatProvider.CLOUD else self.local_client

    def switch_chat_provider(self, provider: ChatProvider | str) -> ChatProvider:
        """Switch the active chat provider.

        Raises:
            ValueError: provider is not one of the ChatProvider values
        """
        selected = ChatProvider(provider)
        self._apply(active_chat_provider=selected)
        return selected

    def clear_chat(self) -> None:
        self._apply(chat_transcript=[])

    async def send_chat_message(self, text: str) -> Optional[ChatMessage]:
        """Send a chat message to the active provider.

        The user message is appended before any network round trip. Exactly
        one assistant message (reply or error text) follows.

        Returns:
            The appended assistant message, or None for empty input
        """
        message = text.strip()
        if not message:
            return None

        prior = list(self.session.chat_transcript)
        self._append_message(ChatMessage.user(message))

        provider = self.session.active_chat_provider
        client = self.chat_client_for(provider)

        if not client.is_configured:
            self.event_log.error(client.service_name, "Chat provider not configured")
            notice = f"{client.service_name} is not configured."
            hint = _NOT_CONFIGURED_HINTS.get(provider)
            if hint:
                notice = f"{notice} {hint}"
            return self._append_message(ChatMessage.assistant(notice))

        try:
            reply = await client.send(message, prior)
        except Exception as e:
            if not isinstance(e, HowToError):
                logger.debug(f"Unexpected chat error: {e}", exc_info=True)
            self._record_failure(client.service_name, "Chat failed", e)
            return self._append_message(ChatMessage.assistant(f"{client.service_name} error: {e}"))

        return self._append_message(ChatMessage.assistant(reply))

    def add_screenshot_message(self) -> ChatMessage:
        """Capture an image and append it as a user message.

        On capture failure an assistant error message is appended instead.
        """
        try:
            image_data = self.capture()
        except CaptureFailed as e:
            self.event_log.error(CAPTURE_SERVICE, str(e))
            return self._append_message(ChatMessage.assistant(CAPTURE_FAILED_TEXT))

        return self._append_message(ChatMessage.user(SCREENSHOT_LABEL, image_data=image_data))

    # -- helpers -----------------------------------------------------------

    def _record_failure(self, service: str, action: str, error: Exception) -> None:
        url = error.url if isinstance(error, HttpError) else None
        status_code = error.status_code if isinstance(error, HttpError) else None
        self.event_log.error(service, f"{action}: {error}", url=url, status_code=status_code)


def create_orchestrator(
    config: AppConfig,
    capture: Optional[CaptureSource] = None,
    event_log: Optional[EventLog] = None,
) -> SessionOrchestrator:
    """Wire clients, capture source and event log from configuration.

    Args:
        config: Loaded AppConfig
        capture: Capture source (defaults to ScreenCapture)
        event_log: Shared event log (defaults to a new one sized from config)
    """
    log = event_log if event_log is not None else EventLog(capacity=config.event_log.capacity)
    return SessionOrchestrator(
        video_client=VideoGenerationClient(config.video, log),
        cloud_client=CloudChatClient(config.cloud_chat, log),
        local_client=LocalChatClient(config.local_chat, log),
        capture=capture if capture is not None else ScreenCapture(),
        event_log=log,
    )
