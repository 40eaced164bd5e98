"""Shared HTTP plumbing for provider clients.

Requests are made with `requests` (blocking) and run on a worker thread via
asyncio.to_thread, so callers on the event loop only see coroutines.
Every request writes start/success/failure entries to the injected EventLog.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Sequence, TypeVar
from urllib.parse import urlparse

import requests
from pydantic import BaseModel, ValidationError

from ..errors import DecodingError, HttpError
from ..event_log import EventLog
from ..models.chat import ChatMessage, ChatProvider

ModelT = TypeVar("ModelT", bound=BaseModel)


def join_url(base_url: str, path: str) -> str:
    """Join an endpoint path onto a base URL; absolute paths are returned as-is."""
    if urlparse(path).scheme:
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


class ServiceClient:
    """Base for clients of one remote HTTP service."""

    service_name = "Service"

    def __init__(self, event_log: EventLog, timeout: float = 60.0):
        self.event_log = event_log
        self.timeout = timeout

    def _post_json(self, url: str, headers: dict[str, str], payload: dict[str, Any]) -> Any:
        """POST a JSON body and return the decoded JSON response."""
        self.event_log.info(self.service_name, "Request start", url=url)
        try:
            response = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            self.event_log.error(self.service_name, f"Network error: {e}", url=url)
            raise HttpError(-1, f"Network error: {e}", url=url) from e
        except ValueError as e:
            # Header values that cannot be encoded (e.g. non-latin-1 credentials)
            self.event_log.error(self.service_name, f"Invalid request: {e}", url=url)
            raise HttpError(-1, f"Invalid request: {e}", url=url) from e
        return self._handle_response(response, url)

    def _get_json(self, url: str, headers: dict[str, str]) -> Any:
        """GET a URL and return the decoded JSON response."""
        try:
            response = requests.get(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            self.event_log.error(self.service_name, f"Network error: {e}", url=url)
            raise HttpError(-1, f"Network error: {e}", url=url) from e
        except ValueError as e:
            self.event_log.error(self.service_name, f"Invalid request: {e}", url=url)
            raise HttpError(-1, f"Invalid request: {e}", url=url) from e
        return self._handle_response(response, url, success_message=None)

    def _handle_response(
        self,
        response: requests.Response,
        url: str,
        success_message: str | None = "Request succeeded",
    ) -> Any:
        status_code = response.status_code
        if not 200 <= status_code < 300:
            body = response.text or "Unknown error"
            self.event_log.error(self.service_name, body, url=url, status_code=status_code)
            raise HttpError(status_code, body, url=url)

        if success_message:
            self.event_log.info(self.service_name, success_message, url=url, status_code=status_code)

        try:
            return response.json()
        except ValueError as e:
            self.event_log.error(self.service_name, f"Invalid JSON: {e}", url=url, status_code=status_code)
            raise DecodingError(self.service_name, str(e)) from e

    async def _apost_json(self, url: str, headers: dict[str, str], payload: dict[str, Any]) -> Any:
        return await asyncio.to_thread(self._post_json, url, headers, payload)

    async def _aget_json(self, url: str, headers: dict[str, str]) -> Any:
        return await asyncio.to_thread(self._get_json, url, headers)

    def _decode(self, model: type[ModelT], data: Any, url: str | None = None) -> ModelT:
        """Validate response data into a model; failures become DecodingError."""
        try:
            return model.model_validate(data)
        except ValidationError as e:
            detail = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            )
            self.event_log.error(self.service_name, f"Failed to parse response: {detail}", url=url)
            raise DecodingError(self.service_name, detail) from e


class ChatClient(ServiceClient, ABC):
    """Abstract interface for chat providers.

    Implementations serialize the prior transcript plus the new message into
    their provider's request shape and return the assistant's reply text.
    """

    @property
    @abstractmethod
    def provider(self) -> ChatProvider:
        """Which ChatProvider this client implements."""
        pass

    @property
    def is_configured(self) -> bool:
        """Whether the client has everything it needs to make a request."""
        return True

    @abstractmethod
    async def send(self, message: str, transcript: Sequence[ChatMessage]) -> str:
        """Send a message with the prior transcript as context.

        Args:
            message: New user message text
            transcript: Messages that precede `message`, oldest first

        Returns:
            Assistant reply text

        Raises:
            MissingCredentials: Provider requires an API key that is not set
            HttpError: Non-2xx response or transport failure
            DecodingError: Response body did not match the expected shape
        """
        pass
