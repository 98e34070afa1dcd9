"""
Structured Logging for the Opportunity Scanner

JSON structured logs with correlation IDs, OpenTelemetry trace context,
scanner-specific log fields (symbol, detector type, filter reason) and
sampling for the high-volume filtered-scan logs.
"""

import json
import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from opentelemetry import trace

# Context variables for correlation tracking
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
scan_batch_id_var: ContextVar[str | None] = ContextVar("scan_batch_id", default=None)

SCANNER_FIELDS = ("symbol", "detector_type", "filter_reason", "operation_type")


@dataclass
class LogSamplingConfig:
    """Configuration for log sampling."""

    # Filtered scans dominate DEBUG output on a full universe
    filtered_scan_sample_rate: float = 1.0

    # Operations that are never sampled
    critical_operations: set[str] = field(
        default_factory=lambda: {"signal_emitted", "detector_fault", "config_update"}
    )


class ScannerLogRecord(logging.LogRecord):
    """Log record carrying correlation, trace and scanner fields."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)

        # Correlation tracking
        self.correlation_id = correlation_id_var.get()
        self.scan_batch_id = scan_batch_id_var.get()

        # Tracing context
        span = trace.get_current_span()
        span_context = span.get_span_context()
        if span_context.is_valid:
            self.trace_id = format(span_context.trace_id, "032x")
            self.span_id = format(span_context.span_id, "016x")
        else:
            self.trace_id = None
            self.span_id = None


class LogSampler:
    """Samples high-frequency scanner logs."""

    def __init__(self, config: LogSamplingConfig) -> None:
        self.config = config
        self._counters: dict[str, int] = {}

    def should_log(self, record: logging.LogRecord) -> bool:
        """Determine if a log record should be emitted."""
        operation_type = getattr(record, "operation_type", "") or ""
        if operation_type in self.config.critical_operations:
            return True

        # Never sample WARNING and above
        if record.levelno >= logging.WARNING:
            return True

        if operation_type == "scan_filtered":
            return self._should_sample(operation_type, self.config.filtered_scan_sample_rate)
        return True

    def _should_sample(self, operation: str, sample_rate: float) -> bool:
        if sample_rate >= 1.0:
            return True
        if sample_rate <= 0:
            return False

        count = self._counters.get(operation, 0) + 1
        self._counters[operation] = count
        return (count % int(1 / sample_rate)) == 0


class ScannerJSONFormatter(logging.Formatter):
    """JSON formatter for structured scanner logs."""

    STANDARD_FIELDS = frozenset(
        {
            "name",
            "msg",
            "args",
            "levelname",
            "levelno",
            "pathname",
            "filename",
            "module",
            "exc_info",
            "exc_text",
            "stack_info",
            "lineno",
            "funcName",
            "created",
            "msecs",
            "relativeCreated",
            "thread",
            "threadName",
            "processName",
            "process",
            "taskName",
            "message",
            "correlation_id",
            "scan_batch_id",
            "trace_id",
            "span_id",
            *SCANNER_FIELDS,
        }
    )

    def __init__(self, include_extra: bool = True, sort_keys: bool = True) -> None:
        super().__init__()
        self.include_extra = include_extra
        self.sort_keys = sort_keys

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.thread,
        }

        for name in ("correlation_id", "scan_batch_id", "trace_id", "span_id"):
            value = getattr(record, name, None)
            if value:
                log_entry[name] = value

        scanner_fields = {
            name: getattr(record, name) for name in SCANNER_FIELDS if getattr(record, name, None)
        }
        if scanner_fields:
            log_entry["scanner"] = scanner_fields

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        if self.include_extra:
            extra = {
                key: self._serialize_value(value)
                for key, value in record.__dict__.items()
                if key not in self.STANDARD_FIELDS and not key.startswith("_")
            }
            if extra:
                log_entry["extra"] = extra

        return json.dumps(log_entry, sort_keys=self.sort_keys, default=self._serialize_value)

    def _serialize_value(self, value: Any) -> Any:
        """Serialize complex values for JSON output."""
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, (set, frozenset, tuple)):
            return list(value)
        if hasattr(value, "to_dict"):
            return value.to_dict()
        if hasattr(value, "__dict__"):
            return str(value)
        return value


class ScannerLogFilter(logging.Filter):
    """Applies sampling to handler output."""

    def __init__(self, sampler: LogSampler | None = None) -> None:
        super().__init__()
        self.sampler = sampler

    def filter(self, record: logging.LogRecord) -> bool:
        if self.sampler and not self.sampler.should_log(record):
            return False
        return True


# Correlation ID management
def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    """Get current correlation ID."""
    return correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str, None, None]:
    """Context manager for correlation ID scope."""
    if correlation_id is None:
        correlation_id = generate_correlation_id()

    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)


@contextmanager
def scan_batch_context(batch_id: str | None = None) -> Generator[str, None, None]:
    """Tag every log emitted during one ``scan_many`` batch."""
    if batch_id is None:
        batch_id = generate_correlation_id()

    token = scan_batch_id_var.set(batch_id)
    try:
        yield batch_id
    finally:
        scan_batch_id_var.reset(token)


def setup_structured_logging(
    level: str = "INFO",
    format_type: str = "json",
    enable_sampling: bool = False,
    sampling_config: LogSamplingConfig | None = None,
    log_file: str | None = None,
    stream: Any = None,
) -> logging.Handler:
    """
    Setup structured logging for the scanner.

    Args:
        level: Logging level
        format_type: Formatter type ('json' or 'text')
        enable_sampling: Whether to sample filtered-scan logs
        sampling_config: Log sampling configuration
        log_file: Optional log file path
        stream: Console stream, defaults to stdout

    Returns:
        The console handler that was installed
    """

    # Clear any existing handlers
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter: logging.Formatter
    if format_type == "json":
        formatter = ScannerJSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    log_filter = None
    if enable_sampling:
        if sampling_config is None:
            sampling_config = LogSamplingConfig()
        log_filter = ScannerLogFilter(LogSampler(sampling_config))

    console_handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    console_handler.setFormatter(formatter)
    if log_filter:
        console_handler.addFilter(log_filter)

    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        if log_filter:
            file_handler.addFilter(log_filter)
        root_logger.addHandler(file_handler)

    # Records created from here on carry correlation and trace ids
    logging.setLogRecordFactory(ScannerLogRecord)

    logging.getLogger(__name__).info("Structured logging configured successfully")
    return console_handler


def setup_logging_from_config(config: Any) -> logging.Handler:
    """Configure logging from a ``LoggingConfig``."""
    return setup_structured_logging(
        level=config.level,
        format_type="json" if config.json_format else "text",
        log_file=config.file,
    )
