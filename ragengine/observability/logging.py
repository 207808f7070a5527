"""
Structured Logging

JSON-structured logging with context propagation.

Design decisions:
- Structured JSON output
- Log level filtering
- Context enrichment (knowledge base, document, operation)
- Multiple handlers
"""

import contextvars
import json
import sys
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, TextIO


class LogLevel(IntEnum):
    """Log levels matching Python's logging module."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def from_name(cls, name: str) -> "LogLevel":
        return cls[name.upper()]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LogRecord:
    """A structured log record."""

    level: LogLevel
    message: str
    timestamp: datetime = field(default_factory=_utcnow)

    logger_name: str = "ragengine"

    # Structured data
    data: dict[str, Any] = field(default_factory=dict)

    # Error info
    error: str | None = None
    error_type: str | None = None
    error_code: str | None = None
    stack_trace: str | None = None

    # Engine context
    knowledge_base_id: str | None = None
    document_id: str | None = None
    operation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        result: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "level": LogLevel(self.level).name,
            "logger": self.logger_name,
            "message": self.message,
        }

        if self.data:
            result["data"] = self.data

        if self.error:
            result["error"] = {
                "message": self.error,
                "type": self.error_type,
                "code": self.error_code,
                "stack_trace": self.stack_trace,
            }

        if self.knowledge_base_id:
            result["knowledge_base_id"] = self.knowledge_base_id
        if self.document_id:
            result["document_id"] = self.document_id
        if self.operation:
            result["operation"] = self.operation

        return result

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class LogHandler:
    """Base class for log handlers."""

    def __init__(self, level: LogLevel = LogLevel.DEBUG):
        self.level = level

    def should_handle(self, level: LogLevel) -> bool:
        return level >= self.level

    def handle(self, record: LogRecord) -> None:
        pass


class ConsoleHandler(LogHandler):
    """Outputs logs to console."""

    def __init__(
        self,
        level: LogLevel = LogLevel.DEBUG,
        stream: TextIO | None = None,
        json_output: bool = True,
    ):
        super().__init__(level)
        self.stream = stream or sys.stderr
        self.json_output = json_output

    def handle(self, record: LogRecord) -> None:
        if not self.should_handle(record.level):
            return

        if self.json_output:
            output = record.to_json()
        else:
            output = (
                f"[{record.timestamp.strftime('%Y-%m-%d %H:%M:%S')}] "
                f"{LogLevel(record.level).name:8s} {record.message}"
            )
            if record.knowledge_base_id:
                output += f" kb={record.knowledge_base_id}"
            if record.data:
                output += f" | {record.data}"
            if record.error:
                output += f" | ERROR: {record.error}"

        print(output, file=self.stream)


class FileHandler(LogHandler):
    """Appends JSON lines to a file."""

    def __init__(
        self,
        filename: str,
        level: LogLevel = LogLevel.DEBUG,
    ):
        super().__init__(level)
        self.filename = filename
        self._file: TextIO | None = None

    def handle(self, record: LogRecord) -> None:
        if not self.should_handle(record.level):
            return

        if self._file is None:
            self._file = open(self.filename, "a", encoding="utf-8")

        self._file.write(record.to_json() + "\n")
        self._file.flush()

    def close(self) -> None:
        if self._file:
            self._file.close()
            self._file = None


class BufferHandler(LogHandler):
    """Buffers logs in memory for testing."""

    def __init__(self, level: LogLevel = LogLevel.DEBUG, max_records: int = 1000):
        super().__init__(level)
        self.records: list[LogRecord] = []
        self._max_records = max_records

    def handle(self, record: LogRecord) -> None:
        if not self.should_handle(record.level):
            return

        self.records.append(record)

        if len(self.records) > self._max_records:
            self.records = self.records[-self._max_records :]

    def messages(self, level: LogLevel | None = None) -> list[str]:
        return [r.message for r in self.records if level is None or r.level == level]

    def clear(self) -> None:
        self.records.clear()


_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "log_context", default={}
)


class StructuredLogger:
    """
    Main structured logging interface.

    Context set through `context()` is attached to every record emitted
    inside the block, including from awaited coroutines.
    """

    def __init__(
        self,
        name: str = "ragengine",
        level: LogLevel | None = None,
        handlers: list[LogHandler] | None = None,
    ):
        self.name = name
        self._level = level
        self._handlers = handlers

    @property
    def level(self) -> LogLevel:
        return self._level if self._level is not None else _default_level

    @property
    def handlers(self) -> list[LogHandler]:
        # Unbound loggers follow whatever configure_logging() installed last
        if self._handlers is not None:
            return self._handlers
        return _get_default_handlers()

    def _log(
        self,
        level: LogLevel,
        message: str,
        data: dict[str, Any] | None = None,
        error: BaseException | None = None,
        **extra: Any,
    ) -> None:
        if level < self.level:
            return

        context = _log_context.get()

        record = LogRecord(
            level=level,
            message=message,
            logger_name=self.name,
            data={**(data or {}), **extra},
            knowledge_base_id=context.get("knowledge_base_id"),
            document_id=context.get("document_id"),
            operation=context.get("operation"),
        )

        if error is not None:
            record.error = str(error)
            record.error_type = type(error).__name__
            record.error_code = getattr(error, "code", None)
            record.stack_trace = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )

        for handler in self.handlers:
            try:
                handler.handle(record)
            except Exception as e:
                print(f"log handler {type(handler).__name__} failed: {e}", file=sys.stderr)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, error: BaseException | None = None, **kwargs: Any) -> None:
        self._log(LogLevel.ERROR, message, error=error, **kwargs)

    def critical(
        self, message: str, error: BaseException | None = None, **kwargs: Any
    ) -> None:
        self._log(LogLevel.CRITICAL, message, error=error, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log the exception currently being handled at ERROR level."""
        self.error(message, error=sys.exc_info()[1], **kwargs)

    @staticmethod
    @contextmanager
    def context(**kwargs: Any):
        """
        Context manager for adding context to logs.

        Usage:
            with logger.context(knowledge_base_id=kb.id, operation="ingest"):
                logger.info("Chunking document")
        """
        current = _log_context.get()
        token = _log_context.set({**current, **kwargs})

        try:
            yield
        finally:
            _log_context.reset(token)

    @staticmethod
    def clear_context() -> None:
        _log_context.set({})


_default_handlers: list[LogHandler] | None = None
_default_level: LogLevel = LogLevel.INFO


def _get_default_handlers() -> list[LogHandler]:
    global _default_handlers
    if _default_handlers is None:
        _default_handlers = [ConsoleHandler()]
    return _default_handlers


def get_logger(name: str = "ragengine") -> StructuredLogger:
    """Get a logger that uses the level and handlers installed by configure_logging()."""
    return StructuredLogger(name=name)


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    json_output: bool = True,
    log_file: str | None = None,
) -> StructuredLogger:
    """Install the default level and handlers shared by get_logger() loggers."""
    global _default_handlers, _default_level

    handlers: list[LogHandler] = [
        ConsoleHandler(level=level, json_output=json_output),
    ]

    if log_file:
        handlers.append(FileHandler(log_file, level=level))

    _default_handlers = handlers
    _default_level = level

    return StructuredLogger(level=level, handlers=handlers)
