"""Pydantic models for HowTo."""

from .chat import ChatMessage, ChatProvider, ChatRole
from .log import LogEntry, LogLevel
from .workflow import GenerationResult, WorkflowStep

__all__ = [
    # Chat
    "ChatRole",
    "ChatProvider",
    "ChatMessage",
    # Video generation
    "WorkflowStep",
    "GenerationResult",
    # Event log
    "LogLevel",
    "LogEntry",
]
