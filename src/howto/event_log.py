"""Bounded in-memory event log for HowTo diagnostics.

Provider clients and the orchestrator append info/error entries here. The
log keeps at most `capacity` entries; older entries are evicted first.
Appends may arrive from worker threads (blocking HTTP calls run off the
event loop), so all access goes through a lock.
"""

import logging
import threading
from collections import deque
from pathlib import Path
from typing import Iterable

from .models.log import LogEntry, LogLevel

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 500


class EventLog:
    """Append-only ring buffer of LogEntry records."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        """Initialize event log.

        Args:
            capacity: Maximum number of retained entries (must be positive)
        """
        if capacity < 1:
            raise ValueError(f"Event log capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def append(self, entry: LogEntry) -> LogEntry:
        """Append an entry, evicting the oldest when full."""
        with self._lock:
            self._entries.append(entry)

        level = logging.ERROR if entry.level == LogLevel.ERROR else logging.INFO
        logger.log(level, f"[{entry.service}] {entry.message}")
        return entry

    def log(
        self,
        level: LogLevel,
        service: str,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
    ) -> LogEntry:
        return self.append(LogEntry(
            service=service,
            level=level,
            message=message,
            url=url,
            status_code=status_code,
        ))

    def info(self, service: str, message: str, url: str | None = None, status_code: int | None = None) -> LogEntry:
        return self.log(LogLevel.INFO, service, message, url=url, status_code=status_code)

    def error(self, service: str, message: str, url: str | None = None, status_code: int | None = None) -> LogEntry:
        return self.log(LogLevel.ERROR, service, message, url=url, status_code=status_code)

    @property
    def entries(self) -> list[LogEntry]:
        """Snapshot of retained entries in insertion order."""
        with self._lock:
            return list(self._entries)

    def errors(self) -> list[LogEntry]:
        return [e for e in self.entries if e.level == LogLevel.ERROR]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def export_text(self, errors_only: bool = False) -> str:
        """Render retained entries (optionally errors only) as plain text."""
        entries = self.errors() if errors_only else self.entries
        return format_entries(entries)

    def write_export(self, path: Path, errors_only: bool = False) -> int:
        """Write the plain-text export to a file.

        Returns:
            Number of entries written
        """
        entries = self.errors() if errors_only else self.entries
        path.parent.mkdir(parents=True, exist_ok=True)
        text = format_entries(entries)
        path.write_text(text + "\n" if text else "", encoding="utf-8")
        return len(entries)


def format_entry(entry: LogEntry) -> str:
    """Format one entry as `[ts] [service] [LEVEL] [status?] url? message`."""
    timestamp = entry.timestamp.isoformat(timespec="seconds").replace("+00:00", "Z")
    parts = [
        f"[{timestamp}]",
        f"[{entry.service}]",
        f"[{entry.level.value.upper()}]",
    ]
    if entry.status_code is not None:
        parts.append(f"[{entry.status_code}]")
    if entry.url:
        parts.append(entry.url)
    parts.append(entry.message)
    return " ".join(parts)


def format_entries(entries: Iterable[LogEntry]) -> str:
    return "\n".join(format_entry(entry) for entry in entries)
