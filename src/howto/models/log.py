"""Pydantic models for event log entries."""

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class LogLevel(str, Enum):
    INFO = "info"
    ERROR = "error"


class LogEntry(BaseModel):
    """Diagnostic record written by provider clients and the orchestrator.

    Owned by the EventLog; never mutated after creation.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique entry identifier")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Entry timestamp (UTC)"
    )
    service: str = Field(..., description="Originating service name (e.g., 'Odyssey')")
    level: LogLevel = Field(..., description="Entry severity")
    message: str = Field(..., description="Human-readable message")
    url: str | None = Field(None, description="Request URL, if any")
    status_code: int | None = Field(None, description="HTTP status code, if any")

    model_config = {"frozen": True}
