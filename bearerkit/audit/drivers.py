"""Audit drivers.

A driver receives every ``AuditEvent`` the engine emits. Drivers:
    memory  - keeps events in a list (tests, single-process setups)
    logging - forwards events to the ``bearerkit.audit`` logger
    jsonl   - appends events to a rotating JSONL file
    null    - discards events

Driver failures are the caller's concern: the manager and guard log them and
carry on, so the operation that produced the event is never undone.
"""

from __future__ import annotations

import atexit
import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .events import AuditEvent
from .redaction import get_redactor

logger = logging.getLogger("bearerkit.audit")


class AuditDriver(ABC):
    """Base class for audit drivers."""

    @abstractmethod
    def log(self, event: AuditEvent) -> None:
        """Record an event."""

    def events_for(self, token_id: str) -> list[AuditEvent]:
        """Events recorded for a token, oldest first.

        Drivers that cannot read back return an empty list.
        """
        return []

    def close(self) -> None:
        """Release any resources held by the driver."""


class NullAuditDriver(AuditDriver):
    """Discards every event."""

    def log(self, event: AuditEvent) -> None:
        pass


class MemoryAuditDriver(AuditDriver):
    """Keeps events in memory."""

    def __init__(self):
        self._events: list[AuditEvent] = []
        self._lock = threading.Lock()

    def log(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    def events_for(self, token_id: str) -> list[AuditEvent]:
        with self._lock:
            return [event for event in self._events if event.token_id == token_id]

    @property
    def events(self) -> list[AuditEvent]:
        """All recorded events, oldest first."""
        with self._lock:
            return list(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class LoggingAuditDriver(AuditDriver):
    """Forwards events to a standard logger.

    Failure events are logged at WARNING, everything else at INFO.
    """

    def __init__(self, target: logging.Logger | None = None):
        self._logger = target or logger

    def log(self, event: AuditEvent) -> None:
        level = logging.WARNING if event.is_failure else logging.INFO
        self._logger.log(
            level,
            f"Token {event.kind.value}: token_id={event.token_id} ip={event.ip_address} "
            f"metadata={get_redactor().redact_value(event.metadata)}",
        )


class JsonlAuditDriver(AuditDriver):
    """Thread-safe JSONL audit driver with size-based rotation.

    Events are buffered and flushed every ``buffer_size`` entries, on
    ``flush()``/``close()`` and at interpreter exit.
    """

    def __init__(
        self,
        log_path: str | Path,
        max_file_size_bytes: int = 100 * 1024 * 1024,
        max_files: int = 10,
        redact_sensitive: bool = True,
        buffer_size: int = 1,
    ):
        self.log_path = Path(log_path)
        self.max_file_size_bytes = max_file_size_bytes
        self.max_files = max_files
        self.buffer_size = max(1, buffer_size)
        self._redactor = get_redactor() if redact_sensitive else None
        self._file_handle: Any | None = None
        self._buffer: list[str] = []
        self._lock = threading.Lock()
        self._current_file_size = 0

        self._open()
        atexit.register(self.close)

    def _open(self) -> None:
        """Open the log file, creating directories if needed."""
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._file_handle = open(self.log_path, "a", encoding="utf-8")
        self._current_file_size = self.log_path.stat().st_size
        logger.info(f"Audit logging to {self.log_path}")

    def _rotate(self) -> None:
        """Rotate the current log file (must be called with lock held)."""
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None

        timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S_%f")
        rotated_path = self.log_path.with_name(f"{self.log_path.stem}_{timestamp}{self.log_path.suffix}")
        self.log_path.rename(rotated_path)
        logger.info(f"Rotated audit log to: {rotated_path}")

        self._cleanup_old_logs()
        self._open()

    def _rotated_files(self) -> list[Path]:
        pattern = f"{self.log_path.stem}_*{self.log_path.suffix}"
        return sorted(self.log_path.parent.glob(pattern))

    def _cleanup_old_logs(self) -> None:
        """Remove rotated files beyond ``max_files`` (the live file counts as one)."""
        rotated = self._rotated_files()
        keep = max(self.max_files - 1, 0)
        for old_file in rotated[: len(rotated) - keep]:
            try:
                old_file.unlink()
                logger.debug(f"Removed old audit log: {old_file}")
            except OSError as e:
                logger.warning(f"Failed to remove old audit log {old_file}: {e}")

    def _flush_buffer(self) -> None:
        """Flush the buffer to disk (must be called with lock held)."""
        if not self._buffer:
            return

        if self._file_handle is None:
            self._open()

        if self._current_file_size >= self.max_file_size_bytes:
            self._rotate()

        for line in self._buffer:
            self._file_handle.write(line)
            self._current_file_size += len(line.encode("utf-8"))
        self._file_handle.flush()
        self._buffer.clear()

    def log(self, event: AuditEvent) -> None:
        entry = event.model_dump(mode="json", exclude_none=True)
        if self._redactor:
            entry["metadata"] = self._redactor.redact_value(entry.get("metadata", {}))
        line = json.dumps(entry, default=str) + "\n"

        with self._lock:
            self._buffer.append(line)
            if len(self._buffer) >= self.buffer_size:
                self._flush_buffer()

    def events_for(self, token_id: str) -> list[AuditEvent]:
        """Read back events for a token from the live and rotated files."""
        self.flush()
        events: list[AuditEvent] = []
        for path in [*self._rotated_files(), self.log_path]:
            if not path.exists():
                continue
            with open(path, encoding="utf-8") as f:
                for line in f:
                    if not line.strip():
                        continue
                    data = json.loads(line)
                    if data.get("token_id") == token_id:
                        events.append(AuditEvent.model_validate(data))
        return events

    def flush(self) -> None:
        """Manually flush buffered entries to disk."""
        with self._lock:
            self._flush_buffer()

    def close(self) -> None:
        """Flush remaining entries and close the file."""
        with self._lock:
            self._flush_buffer()
            if self._file_handle:
                self._file_handle.close()
                self._file_handle = None


def emit(driver: AuditDriver, event: AuditEvent) -> None:
    """Hand an event to a driver without letting a driver failure escape."""
    try:
        driver.log(event)
    except Exception as e:
        logger.error(f"Audit driver {type(driver).__name__} failed to record {event.kind.value} event: {e}")
