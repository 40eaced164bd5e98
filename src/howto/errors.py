"""Error taxonomy for HowTo.

Provider clients raise these; the session orchestrator is the only place
that catches them and turns them into status lines, transcript entries and
event log records.
"""

from __future__ import annotations


class HowToError(Exception):
    """Base class for all HowTo errors."""
    pass


class MissingCredentials(HowToError):
    """A provider was used without an API key."""

    def __init__(self, service: str, hint: str | None = None):
        self.service = service
        self.hint = hint
        message = f"Missing {service} credentials."
        if hint:
            message = f"{message} {hint}"
        super().__init__(message)


class HttpError(HowToError):
    """Non-2xx response, or a transport failure (status_code == -1)."""

    def __init__(self, status_code: int, body: str, url: str | None = None):
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(f"HTTP {status_code}: {body}")


class DecodingError(HowToError):
    """Response body could not be parsed into the expected shape."""

    def __init__(self, service: str, detail: str):
        self.service = service
        self.detail = detail
        super().__init__(f"Failed to parse {service} response: {detail}")


class GenerationFailed(HowToError):
    """The service reported a terminal non-success job status."""

    def __init__(self, job_id: str, status: str, detail: str | None = None):
        self.job_id = job_id
        self.status = status
        self.detail = detail
        message = f"Job {job_id} ended with status '{status}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class GenerationTimeout(HowToError):
    """Job status polling exceeded its configured bound."""

    def __init__(self, job_id: str, attempts: int):
        self.job_id = job_id
        self.attempts = attempts
        super().__init__(f"Job {job_id} did not complete after {attempts} status checks")


class CaptureFailed(HowToError):
    """Screen or image capture could not produce image data."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to capture screenshot: {reason}")


class InvalidConfiguration(HowToError):
    """A configuration value could not be interpreted."""

    def __init__(self, key: str, value: str, reason: str):
        self.key = key
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid config: {key}={value!r} ({reason})")
