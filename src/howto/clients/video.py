"""Odyssey video generation client.

Creates a generation job, then polls the job status endpoint until the job
completes with an output URL, fails, or the polling bound is exceeded.
"""

import asyncio
import logging

from pydantic import BaseModel, Field

from ..config import VideoServiceConfig
from ..errors import GenerationFailed, GenerationTimeout, MissingCredentials
from ..event_log import EventLog
from ..models.workflow import GenerationResult, WorkflowStep
from .base import ServiceClient, join_url

logger = logging.getLogger(__name__)

VIDEO_DURATION_SECONDS = 4
VIDEO_ASPECT_RATIO = "16:9"

COMPLETED_STATUS = "completed"
FAILED_STATUSES = {"failed", "error", "cancelled", "canceled"}


class _JobCreated(BaseModel):
    id: str


class _JobStatus(BaseModel):
    status: str
    output_url: str | None = None
    error: str | None = None
    steps: list[WorkflowStep] = Field(default_factory=list)
    session_id: str | None = None


class VideoGenerationClient(ServiceClient):
    """Client for the Odyssey generation API.

    Endpoint paths may be relative (joined to base_url) or absolute URLs,
    which makes it easy to point the client at a mock server.
    """

    service_name = "Odyssey"

    def __init__(self, config: VideoServiceConfig, event_log: EventLog):
        super().__init__(event_log, timeout=config.request_timeout_seconds)
        self.config = config

    @property
    def has_credentials(self) -> bool:
        return bool(self.config.api_key)

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }
        if self.config.developer_email:
            headers["X-Developer-Email"] = self.config.developer_email
        return headers

    def job_url(self, job_id: str) -> str:
        return join_url(self.config.base_url, f"{self.config.jobs_path.rstrip('/')}/{job_id}")

    async def start(self, prompt: str) -> GenerationResult:
        """Start a new generation job and wait for its video.

        Raises:
            MissingCredentials: ODYSSEY_API_KEY is not configured
            HttpError: Job creation or a status poll failed
            DecodingError: A response did not match the expected shape
            GenerationFailed: The job reached a failed status
            GenerationTimeout: The job did not complete within the polling bound
        """
        job_id, status = await self._generate(prompt)
        return GenerationResult(
            video_reference=status.output_url,
            workflow_steps=status.steps,
            session_id=status.session_id or job_id,
        )

    async def refine(self, session_id: str, prompt: str) -> GenerationResult:
        """Refine an existing session.

        The service exposes no incremental-edit endpoint, so a refinement is
        a fresh job for the follow-up prompt. The session id is kept unless
        the service returns a new one.
        """
        logger.debug(f"Refining session {session_id} via new job")
        _, status = await self._generate(prompt)
        return GenerationResult(
            video_reference=status.output_url,
            workflow_steps=status.steps,
            session_id=status.session_id or session_id,
        )

    async def _generate(self, prompt: str) -> tuple[str, _JobStatus]:
        if not self.has_credentials:
            raise MissingCredentials(
                self.service_name,
                "Set ODYSSEY_API_KEY (and optionally ODYSSEY_DEVELOPER_EMAIL).",
            )

        endpoint = join_url(self.config.base_url, self.config.generate_path)
        payload = {
            "prompt": prompt,
            "duration": VIDEO_DURATION_SECONDS,
            "aspect_ratio": VIDEO_ASPECT_RATIO,
        }
        data = await self._apost_json(endpoint, self._headers(), payload)
        job = self._decode(_JobCreated, data, url=endpoint)
        logger.debug(f"Created generation job {job.id}")

        status = await self._wait_for_video(job.id)
        return job.id, status

    async def _wait_for_video(self, job_id: str) -> _JobStatus:
        endpoint = self.job_url(job_id)
        headers = {"Authorization": f"Bearer {self.config.api_key}"}
        max_attempts = self.config.max_poll_attempts
        attempts = 0

        while True:
            attempts += 1
            self.event_log.info(self.service_name, "Polling job", url=endpoint)
            data = await self._aget_json(endpoint, headers)
            status = self._decode(_JobStatus, data, url=endpoint)

            if status.status == COMPLETED_STATUS and status.output_url:
                self.event_log.info(self.service_name, "Job completed", url=endpoint)
                return status

            if status.status.lower() in FAILED_STATUSES:
                self.event_log.error(
                    self.service_name,
                    f"Job {status.status}: {status.error or 'no detail'}",
                    url=endpoint,
                )
                raise GenerationFailed(job_id, status.status, status.error)

            if max_attempts is not None and attempts >= max_attempts:
                self.event_log.error(
                    self.service_name,
                    f"Gave up after {attempts} status checks",
                    url=endpoint,
                )
                raise GenerationTimeout(job_id, attempts)

            await asyncio.sleep(self.config.poll_interval_seconds)
