"""
Structured JSON logging with OpenTelemetry Log Exporter.

This module configures:
- stdout JSON logs
- OpenTelemetry log pipeline (LoggerProvider + LogExporter)
- Trace/span correlation in every log line
"""

import json
import logging
import sys
from typing import Any, Dict

from opentelemetry import trace
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor

from libs.observability.otlp_exporter import build_log_exporter
from libs.observability.resource import (
    SERVICE_NAME_VALUE,
    build_resource,
    exporters_enabled,
)

# LogRecord attributes that are never copied into the JSON payload.
_RESERVED = frozenset(
    {
        "args",
        "msg",
        "exc_text",
        "stack_info",
        "created",
        "msecs",
        "relativeCreated",
        "levelno",
        "pathname",
        "filename",
        "module",
        "funcName",
        "lineno",
        "thread",
        "threadName",
        "process",
        "processName",
        "taskName",
        "levelname",
        "name",
        "exc_info",
    }
)


class JsonTraceFormatter(logging.Formatter):
    """
    JSON formatter including trace_id and span_id.

    Emits one JSON object per line with level, logger, message, time,
    trace/span ids (when a span is active), service name and every
    JSON-serializable field passed through ``extra``.
    """

    def format(self, record: logging.LogRecord) -> str:
        span_ctx = trace.get_current_span().get_span_context()

        payload: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "trace_id": f"{span_ctx.trace_id:032x}" if span_ctx.is_valid else None,
            "span_id": f"{span_ctx.span_id:016x}" if span_ctx.is_valid else None,
            "service": SERVICE_NAME_VALUE,
        }

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key.startswith("_") or key in payload or key in _RESERVED:
                continue
            try:
                json.dumps({key: value})
            except (TypeError, ValueError):
                value = str(value)
            payload[key] = value

        return json.dumps(payload, separators=(",", ":"))


def init_logging(level: int = logging.INFO) -> None:
    """
    Configure the root logger for the current process.

    Py4J and Spark driver loggers are capped at WARNING so job logs stay
    readable.

    Args:
        level: Minimum log level for the root logger.
    """
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(JsonTraceFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(stdout_handler)
    root.setLevel(level)

    for noisy in ("py4j", "pyspark"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    if not exporters_enabled():
        return

    logger_provider = LoggerProvider(resource=build_resource())
    logger_provider.add_log_record_processor(
        BatchLogRecordProcessor(build_log_exporter())
    )
    root.addHandler(LoggingHandler(level=level, logger_provider=logger_provider))


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get a module- or job-level logger.

    Args:
        name: Optional logger name. If None, the root logger is returned.

    Returns:
        A Logger instance.
    """
    return logging.getLogger(name)
